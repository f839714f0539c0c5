"""Logging utilities with sanitization, correlation ID, and structured logging support.

This module provides:
- Log sanitization to mask shared secrets and decryption keys
- Correlation ID support for tracking requests through the system
- SanitizingFormatter for complete output sanitization including exceptions
- JSONFormatter for structured JSON logging (log aggregators)
"""

from __future__ import annotations

import contextvars
import json
import logging
import re
import threading
from datetime import UTC, datetime
from typing import Any, ClassVar

# Context variable for storing correlation IDs
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

# An encoded 256-bit key: 43 URL-safe base64 chars plus optional (possibly
# percent-encoded) padding
_KEY = r"[A-Za-z0-9_\-]{43}(?:=|%3D){0,2}(?![\w\-.%])"

# Shared patterns for sensitive data detection
# Used by both LogSanitizer and SanitizingFormatter
SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # Keys in retrieval paths (/<name>/<key>)
    (re.compile(rf"(/[^/\s?\"']+)/{_KEY}"), r"\1/***KEY***"),
    # Keys in JSON bodies or key=value pairs
    (re.compile(rf"(\bkey)['\"]?\s*[:=]\s*['\"]?{_KEY}"), r"\1=***KEY***"),
    # Shared secrets in form fields or key=value pairs
    (
        re.compile(r"(\bsecrets?)['\"]?\s*[:=]\s*['\"]?([^\s'\"&,\]]{3,})"),
        r"\1=***SECRET***",
    ),
    # Passwords in various contexts
    (
        re.compile(r"(password|passwd|pwd)['\"]?\s*[:=]\s*['\"]?([^\s'\"]{3,})"),
        r"\1=***PASSWORD***",
    ),
    # Authorization headers
    (re.compile(r"(Authorization|Bearer)\s*:\s*([A-Za-z0-9_\-\.=]+)"), r"\1: ***AUTH***"),
]

# Literal values (configured shared secrets) masked wherever they appear
_registered_secrets: set[str] = set()
_registered_lock = threading.Lock()


def register_secret(value: str) -> None:
    """Mask ``value`` in all subsequent log output.

    Args:
        value: Literal secret (values shorter than 4 characters are ignored)
    """
    if len(value) < 4:
        return
    with _registered_lock:
        _registered_secrets.add(value)


def clear_registered_secrets() -> None:
    """Forget all registered secrets."""
    with _registered_lock:
        _registered_secrets.clear()


def sanitize_text(text: str) -> str:
    """Apply all sanitization patterns to text.

    Args:
        text: The text to sanitize

    Returns:
        Sanitized text with sensitive data masked
    """
    for secret in sorted(_registered_secrets, key=len, reverse=True):
        text = text.replace(secret, "***SECRET***")
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class LogSanitizer(logging.Filter):
    """Filter that sanitizes sensitive data from log records.

    Protects against accidental logging of:
    - Shared upload secrets
    - Decryption keys in request paths and response bodies
    - Passwords and authorization headers

    Note: This filter sanitizes msg and args, but exception tracebacks
    are sanitized by SanitizingFormatter at format time.
    """

    PATTERNS: ClassVar[list[tuple[re.Pattern[str], str]]] = SENSITIVE_PATTERNS

    def filter(self, record: logging.LogRecord) -> bool:
        """Sanitize the log record message and args.

        Args:
            record: The log record to sanitize

        Returns:
            Always True (record is always processed)
        """
        if record.msg:
            record.msg = sanitize_text(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._sanitize_value(arg) for arg in record.args)

        return True

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return sanitize_text(value)
        elif isinstance(value, dict):
            return {k: self._sanitize_value(v) for k, v in value.items()}
        elif isinstance(value, list | tuple):
            sanitized = [self._sanitize_value(item) for item in value]
            return type(value)(sanitized)
        return value


class SanitizingFormatter(logging.Formatter):
    """Formatter that sanitizes the final formatted output.

    Unlike LogSanitizer (which operates on msg/args before formatting),
    this formatter sanitizes the final output after all formatting is done,
    catching keys and secrets in exception messages and stack traces.
    """

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        return sanitize_text(formatted)


class CorrelationIDFilter(logging.Filter):
    """Filter that adds correlation ID to log records.

    Correlation IDs tie together all log entries written while handling a
    single request, including those from worker threads.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        cid = correlation_id.get()
        record.correlation_id = cid if cid else "-"
        return True


def get_correlation_id() -> str | None:
    """Get the current correlation ID from context.

    Returns:
        Current correlation ID or None if not set
    """
    return correlation_id.get()


def set_correlation_id(cid: str) -> None:
    """Set the correlation ID in context.

    Args:
        cid: The correlation ID to set
    """
    correlation_id.set(cid)


def clear_correlation_id() -> None:
    """Clear the correlation ID from context."""
    correlation_id.set(None)


class JSONFormatter(logging.Formatter):
    """Formatter that outputs logs as JSON lines for log aggregators.

    Each log entry includes:
    - timestamp: ISO 8601 format
    - level: Log level name
    - logger: Logger name
    - message: Log message (sanitized)
    - correlation_id: Request correlation ID
    - Extra fields from log record
    """

    _STANDARD_ATTRS: ClassVar[frozenset[str]] = frozenset(
        {
            "name",
            "msg",
            "args",
            "created",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "module",
            "msecs",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "exc_info",
            "exc_text",
            "thread",
            "threadName",
            "taskName",
            "correlation_id",
            "message",
        }
    )

    def __init__(self, sanitize: bool = True) -> None:
        """Initialize JSON formatter.

        Args:
            sanitize: If True, sanitize sensitive data in output
        """
        super().__init__()
        self.sanitize = sanitize

    def format(self, record: logging.LogRecord) -> str:
        """Format the record as JSON.

        Args:
            record: The log record to format

        Returns:
            JSON-formatted log line
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "correlation_id"):
            log_entry["correlation_id"] = record.correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in self._STANDARD_ATTRS and not key.startswith("_"):
                try:
                    json.dumps(value)
                    log_entry[key] = value
                except (TypeError, ValueError):
                    log_entry[key] = str(value)

        if self.sanitize:
            log_entry = self._sanitize_dict(log_entry)

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def _sanitize_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, str):
                result[key] = sanitize_text(value)
            elif isinstance(value, dict):
                result[key] = self._sanitize_dict(dict(value))
            elif isinstance(value, list):
                result[key] = [
                    sanitize_text(item) if isinstance(item, str) else item for item in value
                ]
            else:
                result[key] = value
        return result
