"""Tests for structured logging setup."""

import logging

import pytest
import structlog

from frccalc.core.logging import bind_assessment, clear_log_context, configure_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    yield
    root.setLevel(level)
    root.handlers = handlers


class TestConfigureLogging:
    def test_level_from_config(self):
        configure_logging()

        assert logging.getLogger().level == logging.DEBUG

    def test_reconfigure_replaces_own_handler(self):
        root = logging.getLogger()
        before = len(root.handlers)

        configure_logging(level="warning")
        after_first = len(root.handlers)
        configure_logging(level="warning", json_logs=True)

        assert len(root.handlers) == after_first <= before + 1
        assert root.level == logging.WARNING


def test_assessment_context():
    clear_log_context()
    bind_assessment("assessment-1")

    assert structlog.contextvars.get_contextvars() == {"assessment_id": "assessment-1"}

    clear_log_context()
    assert structlog.contextvars.get_contextvars() == {}
