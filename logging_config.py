from __future__ import annotations

import logging
import time
from logging.config import dictConfig

from settings import get_settings

CONTEXT_KEYS = (
    "device_id",
    "reading_id",
    "session_key",
    "subscriber",
    "outcome",
    "status",
    "reason",
    "subscriber_count",
    "connection_count",
)

_configured = False


class ContextualFormatter(logging.Formatter):
    """Appends ``key=value`` for the context keys a record carries via ``extra``."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = [
            f"{key}={getattr(record, key)}"
            for key in CONTEXT_KEYS
            if getattr(record, key, None) is not None
        ]
        if context:
            return f"{message} | {' '.join(context)}"
        return message


def configure_logging() -> None:
    """Configure application-wide logging with contextual formatting."""
    global _configured
    if _configured:
        return

    log_level = get_settings().log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    # Push deliveries log from the "push" worker threads.
                    "fmt": "%(asctime)sZ | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": {
                # pywebpush goes through requests; keep connection chatter out.
                "urllib3": {"level": "WARNING"},
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
