"""Tests for structured logging setup."""

import logging

import pytest
import structlog

from streamscale.utils.config import Config
from streamscale.utils.logging import (
    add_app_context,
    configure_from_config,
    configure_logging,
    get_logger,
    stream_context,
)


@pytest.fixture(autouse=True)
def reset_structlog():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    structlog.reset_defaults()
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


class TestLogging:
    """Test logging helpers."""

    def test_add_app_context(self):
        """Test app name is added to entries."""
        event = add_app_context(None, "info", {"event": "hello"})

        assert event["app"] == "streamscale"

    @pytest.mark.parametrize("log_format", ["json", "console"])
    def test_configure_logging(self, log_format):
        """Test both renderers configure structlog."""
        configure_logging(log_level="DEBUG", log_format=log_format)

        assert structlog.is_configured()
        get_logger(__name__).info("configured", log_format=log_format)

    def test_configure_from_config(self):
        """Test logging configured from the logging section."""
        config = Config()
        config.set("logging.format", "console")

        configure_from_config(config)

        assert structlog.is_configured()

    def test_stream_context_binds_and_unbinds(self):
        """Test stream name is bound only inside the block."""
        with stream_context("orders", mutation="split"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["stream"] == "orders"
            assert bound["mutation"] == "split"

        assert "stream" not in structlog.contextvars.get_contextvars()
