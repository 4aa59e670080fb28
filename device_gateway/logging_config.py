"""Structured JSON logging with secret redaction."""

from __future__ import annotations

import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from device_gateway.security.redaction import redact

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
RENAMED_FIELDS = {"asctime": "timestamp", "levelname": "level", "name": "logger"}
NOISY_LOGGERS = ("httpx", "httpcore")


class RedactionFilter(logging.Filter):
    """Scrub tokens and email addresses from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class GatewayJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined]
    """JSON formatter tagging each record with the service name.

    String values passed through ``extra=`` are redacted as well, since
    they bypass the message filter.
    """

    def add_fields(
        self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["service"] = "device-gateway"
        for key, value in log_record.items():
            if isinstance(value, str) and key != "message":
                log_record[key] = redact(value)


def setup_logging(log_level: str = "INFO") -> logging.Handler:
    """Configure structured JSON logging on stdout.

    Calling it again replaces the handler installed by the previous call.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The installed stdout handler
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name("device-gateway")
    handler.setFormatter(GatewayJsonFormatter(LOG_FORMAT, rename_fields=RENAMED_FIELDS))
    handler.addFilter(RedactionFilter())

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if existing.get_name() == handler.get_name():
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
