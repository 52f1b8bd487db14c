"""Structured logging configuration for Hawaii Home Central."""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, UTC
from typing import Any, Dict, Optional, Set

# Context variable for request-scoped data
request_context: ContextVar[Dict[str, Any]] = ContextVar("request_context", default={})

# Headers that should be redacted in logs
SENSITIVE_HEADERS: Set[str] = {
    "authorization",
    "x-csrf-token",
    "cookie",
    "set-cookie",
    "x-api-key",
}

# Keys whose values are secrets regardless of their shape
SENSITIVE_KEYS: Set[str] = {
    "token",
    "share_token",
    "invite_token",
    "csrf_token",
    "access_token",
    "id_token",
    "refresh_token",
    "client_secret",
    "code",
    "state",
}

# Keys holding email addresses (masked, not dropped)
EMAIL_KEYS: Set[str] = {"email", "invitee_email", "author_email"}

_EMAIL_PATTERN = re.compile(r"^([^@\s]{1,64})@([^@\s]+)$")


def _is_token_like(value: str) -> bool:
    """Check if a string looks like a random token rather than a word or identifier name."""
    if len(value) < 16:
        return False
    cleaned = value
    if ":" in value:
        cleaned = value.split(":", 1)[1]
    cleaned = cleaned.replace("-", "").replace("_", "").replace(":", "")
    return cleaned.isalnum() and any(c.isdigit() for c in cleaned) and any(c.isalpha() for c in cleaned)


def _redact_value(value: Any) -> str:
    """Redact a sensitive value, keeping a short prefix/suffix of long tokens."""
    if not isinstance(value, str):
        return "[REDACTED]"

    # Short secrets (<12 chars): fully mask
    if len(value) < 12:
        return "<REDACTED>"

    if ":" in value:
        prefix, rest = value.split(":", 1)
        rest = rest.strip()
        if rest and len(rest) >= 8:
            return f"{prefix}:{rest[:4]}***{rest[-4:]}"

    return f"{value[:3]}***{value[-3:]}"


def _mask_email(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    match = _EMAIL_PATTERN.match(value.strip())
    if not match:
        return "<REDACTED>"
    local, domain = match.groups()
    return f"{local[0]}***@{domain}"


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive data from dictionaries or strings.

    Redacts:
    - Authorization, cookie and CSRF header values
    - Share/invite/session tokens and OAuth secrets
    - Email addresses (local part masked)
    - Token-like strings anywhere in the payload
    """
    if isinstance(data, dict):
        redacted = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if "cookie" in key_lower:
                if isinstance(value, str):
                    redacted[key] = re.sub(r"=[^;]*", "=<REDACTED>", value)
                else:
                    redacted[key] = "[REDACTED]"
            elif key_lower in SENSITIVE_HEADERS or key_lower in SENSITIVE_KEYS:
                redacted[key] = _redact_value(value)
            elif key_lower in EMAIL_KEYS:
                redacted[key] = _mask_email(value)
            else:
                redacted[key] = redact_sensitive_data(value)
        return redacted
    elif isinstance(data, list):
        return [redact_sensitive_data(item) for item in data]
    elif isinstance(data, str):
        if _is_token_like(data):
            return _redact_value(data)
    return data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        ctx = request_context.get()
        if ctx:
            log_data["request_id"] = ctx.get("request_id")
            log_data["path"] = ctx.get("path")

        if hasattr(record, "data") and record.data:
            log_data["data"] = redact_sensitive_data(record.data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console."""
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")

        ctx = request_context.get()
        request_id = ctx.get("request_id", "-")[:8] if ctx else "-"

        message = (
            f"{timestamp} | {color}{record.levelname:8}{self.RESET} | {request_id} | "
            f"{record.name} | {record.getMessage()}"
        )

        if hasattr(record, "data") and record.data:
            message += f" | {redact_sensitive_data(record.data)}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that accepts a structured ``data`` payload."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})
        if "data" in kwargs:
            extra["data"] = kwargs.pop("data")
        kwargs["extra"] = extra
        return msg, kwargs


_loggers: Dict[str, ContextLogger] = {}


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger."""
    if name not in _loggers:
        logger = logging.getLogger(name)
        _loggers[name] = ContextLogger(logger, {})
    return _loggers[name]


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure application logging."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    if json_output:
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(ConsoleFormatter())
    root_logger.addHandler(console_handler)

    # File handler (always JSON)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    # Quiet noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
