"""Tests for JSON logging setup."""

import json
import logging

import pytest

from device_gateway.logging_config import setup_logging


@pytest.fixture
def restore_root_logger():
    """Undo handler and level changes made by setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Test structured output and redaction."""

    def test_json_fields(self, capsys, restore_root_logger):
        setup_logging("info")

        logging.getLogger("device_gateway.test").info("Adapter ready")

        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["message"] == "Adapter ready"
        assert record["level"] == "INFO"
        assert record["logger"] == "device_gateway.test"
        assert record["service"] == "device-gateway"
        assert "timestamp" in record

    def test_tokens_redacted(self, capsys, restore_root_logger):
        """Test secrets in the message and in extra fields never reach stdout."""
        setup_logging()

        logging.getLogger("device_gateway.test").warning(
            "Refresh failed: access_token=%s", "tok-123", extra={"header": "Bearer abc"}
        )

        out = capsys.readouterr().out
        assert "tok-123" not in out
        assert "abc" not in out
        assert "[REDACTED]" in out

    def test_repeated_setup_replaces_handler(self, restore_root_logger):
        first = setup_logging()
        second = setup_logging("DEBUG")

        root = logging.getLogger()
        assert first not in root.handlers
        assert second in root.handlers
        assert root.level == logging.DEBUG
