"""FastAPI app for the FRC API."""

from __future__ import annotations

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from frccalc.core.logging import clear_log_context, configure_logging
from frccalc.errors import (
    ConcurrentModificationError,
    FRCError,
    FRCSignOffError,
    InvalidDecisionError,
    LineItemNotEditableError,
    LineItemNotFoundError,
    ReconciliationInvariantError,
)
from frccalc.web.routes import frc

logger = structlog.get_logger()

# Checked in order; first match wins
ERROR_STATUS_CODES: list[tuple[type[FRCError], int]] = [
    (InvalidDecisionError, 422),
    (LineItemNotFoundError, 404),
    (ConcurrentModificationError, 409),
    (LineItemNotEditableError, 422),
    (FRCSignOffError, 409),
    (ReconciliationInvariantError, 500),
]


def status_code_for(exc: FRCError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        clear_log_context()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info("request_started", method=request.method, path=request.url.path)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info("request_completed", status_code=response.status_code)
        return response


async def frc_error_handler(request: Request, exc: FRCError) -> JSONResponse:
    """Map FRC errors to HTTP responses carrying only the user-facing message."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("frc_request_failed", path=request.url.path, error=str(exc))
    else:
        logger.info(
            "frc_request_rejected",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.user_message, "error": type(exc).__name__},
    )


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="FRCCalc",
        description="Final repair costing reconciliation API",
        version="1.0.0",
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(FRCError, frc_error_handler)
    app.include_router(frc.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
