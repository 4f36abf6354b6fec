"""Tests for structured logging helpers."""

import structlog

from schemadiff.core.config import Settings
from schemadiff.core.logging import (
    LoggingContext,
    add_logger_name,
    configure_logging,
    get_logger,
    rename_message_field,
)


def test_rename_message_field():
    """Test that 'event' is renamed to 'message'."""
    event_dict = rename_message_field(None, "info", {"event": "Sandbox provisioned"})
    assert event_dict == {"message": "Sandbox provisioned"}


def test_add_logger_name_defaults():
    """Test the fallback logger name."""
    event_dict = add_logger_name(object(), "info", {})
    assert event_dict["logger"] == "schemadiff"


def test_logging_context_binds_and_unbinds():
    """Test that LoggingContext scopes context variables."""
    structlog.contextvars.clear_contextvars()

    with LoggingContext(user_key="user-1", sandbox_id="preview-abc"):
        bound = structlog.contextvars.get_contextvars()
        assert bound["user_key"] == "user-1"
        assert bound["sandbox_id"] == "preview-abc"

    assert "user_key" not in structlog.contextvars.get_contextvars()


def test_configure_logging_json(capsys):
    """Test that production logging renders JSON on stderr."""
    configure_logging(Settings(environment="production", log_format="json", log_level="INFO"))
    try:
        get_logger("schemadiff.test").info("Schemas compared", tables_added=2)
    finally:
        structlog.reset_defaults()

    captured = capsys.readouterr()
    assert captured.out == ""
    assert '"message": "Schemas compared"' in captured.err
    assert '"tables_added": 2' in captured.err
