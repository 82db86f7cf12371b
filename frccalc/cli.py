"""FRCCalc CLI - async commands over the FRC service.

Commands:
- init: Initialize database schema
- reconcile: Reconcile a line-item payload and show the FRC
- decide: Record a decision for one line
- attach-invoice: Attach an invoice document to a line
- sign-off: Complete the costing
- history: Show recorded decision changes
- serve: Run the web API

Line items are read from a JSON payload file:
    {"estimate_lines": [...], "additional_lines": [...],
     "excluded_line_ids": [...], "rates": {"labour_rate": ...}}
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from frccalc.config import get_config
from frccalc.core.logging import configure_logging
from frccalc.db.connection import close_db, get_session, init_db
from frccalc.errors import FRCError
from frccalc.lineitems.snapshot import LineItemSnapshot, snapshot_from_payload
from frccalc.models import DisplayStatus, FRCResult
from frccalc.reconciliation.grouping import group_lines
from frccalc.reconciliation.service import FRCService

app = typer.Typer(
    name="frccalc",
    help="FRCCalc - Final repair costing reconciliation",
    no_args_is_help=True,
)

console = Console()

_STATUS_STYLES = {
    DisplayStatus.PENDING: "yellow",
    DisplayStatus.APPROVED: "green",
    DisplayStatus.ADJUSTED: "cyan",
    DisplayStatus.DECLINED: "red",
    DisplayStatus.REMOVED_DEDUCTION: "magenta",
}


def load_snapshot(assessment_id: str, payload_file: Path) -> LineItemSnapshot:
    """Build a snapshot from a JSON payload file."""
    try:
        payload = json.loads(payload_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise typer.BadParameter(f"Cannot read payload {payload_file}: {e}") from e
    if not isinstance(payload, dict):
        raise typer.BadParameter(f"Payload {payload_file} must be a JSON object")

    try:
        return snapshot_from_payload(assessment_id, payload)
    except ValueError as e:
        raise typer.BadParameter(f"Invalid line items in {payload_file}: {e}") from e


def parse_amount(value: str | None) -> Decimal | None:
    """Parse a money option; None passes through."""
    if value is None:
        return None
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise typer.BadParameter(f"{value!r} is not a number") from None
    if not amount.is_finite():
        raise typer.BadParameter(f"{value!r} is not a finite number")
    return amount


def _run(coro) -> None:
    """Run an async command, printing user-facing FRC errors."""
    configure_logging()

    async def _wrapped():
        try:
            await coro
        finally:
            await close_db()

    try:
        asyncio.run(_wrapped())
    except FRCError as e:
        console.print(f"[bold red]✗[/bold red] {e.user_message}")
        console.print(f"  {e}", style="dim")
        raise typer.Exit(code=1) from e


def _print_result(result: FRCResult) -> None:
    table = Table(title=f"Final repair costing: {result.assessment_id}")
    table.add_column("Line")
    table.add_column("Description")
    table.add_column("Category")
    table.add_column("Status")
    table.add_column("Baseline", justify="right")
    table.add_column("Effective", justify="right")
    table.add_column("Invoice")

    for group in group_lines(result.lines):
        for depth, view in enumerate([group.line, *group.replacements]):
            prefix = "  ↳ " if depth else ""
            style = _STATUS_STYLES[view.display_status]
            description = view.description
            if group.struck and not depth:
                description = f"[strike]{description}[/strike]"
            table.add_row(
                f"{prefix}{view.line_item_id}",
                description,
                view.category.value,
                f"[{style}]{view.display_status.value}[/{style}]",
                f"{view.baseline_amount:,.2f}",
                f"{view.effective_amount:,.2f}",
                view.invoice_match.value if view.invoice_match else "",
            )

    console.print(table)

    totals = result.aggregate
    console.print("\n[bold]Summary:[/bold]")
    console.print(f"  Baseline total: {totals.baseline_total:,.2f}")
    console.print(f"  New total: {totals.new_total:,.2f}")
    console.print(f"  Delta: {totals.delta:+,.2f}")
    console.print(f"  Pending lines: {totals.pending_count}")
    if result.frozen:
        console.print("  [bold]Signed off[/bold] (read-only)")


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def reconcile(
    assessment_id: str = typer.Argument(..., help="Assessment ID"),
    payload_file: Path = typer.Argument(..., help="Line-item payload (JSON)"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
):
    """Reconcile line items with recorded decisions."""
    snapshot = load_snapshot(assessment_id, payload_file)

    async def _reconcile():
        async with get_session() as session:
            result = await FRCService(session, assessment_id).reconcile(snapshot)

        if as_json:
            console.print_json(result.model_dump_json())
        else:
            _print_result(result)

    _run(_reconcile())


@app.command()
def decide(
    assessment_id: str = typer.Argument(..., help="Assessment ID"),
    payload_file: Path = typer.Argument(..., help="Line-item payload (JSON)"),
    line_item_id: str = typer.Argument(..., help="Line item ID"),
    status: str = typer.Argument(..., help="pending | approved | declined | adjusted"),
    value: str | None = typer.Option(None, "--value", help="Adjusted value"),
    user: str | None = typer.Option(None, "--user", "--by", help="Decision maker for audit trail"),
    expected_version: int | None = typer.Option(
        None, "--expected-version", help="Fail if the decision changed since this version"
    ),
):
    """Record a decision for one line."""
    snapshot = load_snapshot(assessment_id, payload_file)

    async def _decide():
        async with get_session() as session:
            service = FRCService(session, assessment_id)
            decision = await service.record_decision(
                snapshot,
                line_item_id,
                status,
                adjusted_value=value,
                decided_by=user,
                expected_version=expected_version,
            )

        amount = f" ({decision.adjusted_value:,.2f})" if decision.adjusted_value is not None else ""
        console.print(
            f"[bold green]✓[/bold green] {line_item_id}: {decision.status.value}{amount} "
            f"by {decision.decided_by} (version {decision.version})"
        )

    _run(_decide())


@app.command(name="attach-invoice")
def attach_invoice(
    assessment_id: str = typer.Argument(..., help="Assessment ID"),
    payload_file: Path = typer.Argument(..., help="Line-item payload (JSON)"),
    line_item_id: str = typer.Argument(..., help="Line item ID"),
    document_id: str = typer.Argument(..., help="Invoice document ID"),
    amount: str | None = typer.Option(None, "--amount", help="Invoiced amount"),
):
    """Attach an invoice document to a line."""
    snapshot = load_snapshot(assessment_id, payload_file)
    invoice_amount = parse_amount(amount)

    async def _attach():
        async with get_session() as session:
            match = await FRCService(session, assessment_id).attach_invoice(
                snapshot,
                line_item_id,
                document_id,
                invoice_amount,
            )

        console.print(
            f"[bold green]✓[/bold green] Invoice {match.invoice_document_id} attached to "
            f"{match.line_item_id} ({match.match_confidence.value} match)"
        )

    _run(_attach())


@app.command(name="sign-off")
def sign_off(
    assessment_id: str = typer.Argument(..., help="Assessment ID"),
    payload_file: Path = typer.Argument(..., help="Line-item payload (JSON)"),
    name: str = typer.Option(..., "--name", help="Signer name"),
    email: str | None = typer.Option(None, "--email", help="Signer email"),
    role: str | None = typer.Option(None, "--role", help="Signer role"),
    notes: str | None = typer.Option(None, "--notes", help="Sign-off notes"),
):
    """Sign off the costing once every line is decided."""
    snapshot = load_snapshot(assessment_id, payload_file)

    async def _sign_off():
        async with get_session() as session:
            record = await FRCService(session, assessment_id).sign_off(
                snapshot, name, email=email, role=role, notes=notes
            )

        console.print(
            f"[bold green]✓[/bold green] Costing signed off by {record.signed_off_by_name} "
            f"at {record.completed_at:%Y-%m-%d %H:%M}"
        )

    _run(_sign_off())


@app.command()
def history(
    assessment_id: str = typer.Argument(..., help="Assessment ID"),
    line_item_id: str | None = typer.Option(None, "--line", help="Only this line"),
    limit: int = typer.Option(50, "--limit", help="Maximum entries"),
):
    """Show recorded decision changes, newest first."""

    async def _history():
        async with get_session() as session:
            entries = await FRCService(session, assessment_id).history(
                line_item_id=line_item_id, limit=limit
            )

        if not entries:
            console.print("[yellow]No decisions recorded[/yellow]")
            return

        table = Table(title=f"Decision history: {assessment_id}")
        table.add_column("When")
        table.add_column("Line")
        table.add_column("Change")
        table.add_column("Value", justify="right")
        table.add_column("By")
        for entry in entries:
            old = entry.old_status.value if entry.old_status else "-"
            table.add_row(
                entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
                entry.line_item_id,
                f"{old} → {entry.new_status.value}",
                f"{entry.adjusted_value:,.2f}" if entry.adjusted_value is not None else "",
                entry.actor,
            )
        console.print(table)

    _run(_history())


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FRC web API."""
    import uvicorn

    typer.echo(f"Starting FRC API on http://{host}:{port}")
    uvicorn.run("frccalc.web.app:create_app", factory=True, host=host, port=port, reload=reload)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
