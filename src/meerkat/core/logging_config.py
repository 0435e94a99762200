"""Logging configuration with secret sanitization."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

REDACTED = "***REDACTED***"

_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+")

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "stack_info",
        "exc_info",
        "exc_text",
        "message",
        "asctime",
    }
)


class SanitizingFormatter(logging.Formatter):
    """Text formatter that keeps tokens and passwords out of log output."""

    sensitive_fields = frozenset(
        {
            "access_token",
            "refresh_token",
            "password",
            "apikey",
            "anon_key",
            "authorization",
        }
    )

    def __init__(self, fmt: str | None = None) -> None:
        """Initialize formatter."""
        super().__init__(fmt or "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        """Format the record, appending sanitized extra fields."""
        line = _BEARER_PATTERN.sub(rf"\g<1>{REDACTED}", super().format(record))

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
        }
        if extra_fields:
            sanitized = self._sanitize_data(extra_fields)
            rendered = " ".join(f"{k}={v}" for k, v in sorted(sanitized.items()))
            line = f"{line} [{rendered}]"
        return line

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Mask values of sensitive keys, recursing into nested dicts."""
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            if self._is_sensitive_key(key):
                sanitized[key] = REDACTED
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_data(value)
            else:
                sanitized[key] = value
        return sanitized

    def _is_sensitive_key(self, key: str) -> bool:
        key_lower = key.lower()
        return any(sensitive in key_lower for sensitive in self.sensitive_fields)


def setup_logging(level: str = "WARNING", *, verbose: bool = False) -> None:
    """Configure the ``meerkat`` logger hierarchy to write to stderr.

    Args:
        level: Base logging level name
        verbose: Force DEBUG level
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(SanitizingFormatter())

    root = logging.getLogger("meerkat")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else level.upper())
    root.propagate = False
