"""Logging setup: secret redaction, per-request context, plain or JSON output."""

from __future__ import annotations

import json
import logging
import re
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Generator, Iterable, List, Optional

REDACTED = "[redacted]"

# Attributes copied from the active log context onto every record.
CONTEXT_FIELDS = ("request_id", "cart_id", "item_id")

_TOKEN_PATTERNS = (
    re.compile(r"(Bearer\s+)([A-Za-z0-9\-._~+/=]+)", re.IGNORECASE),
    re.compile(r"(api_token=)([^&\s]+)", re.IGNORECASE),
    re.compile(r"(X-API-Key[=:]\s*)([^&\s]+)", re.IGNORECASE),
)

_context: ContextVar[Dict[str, str]] = ContextVar("cartwise_log_context", default={})


@contextmanager
def log_context(**fields: Optional[str]) -> Generator[None, None, None]:
    """Attach ``request_id``/``cart_id``/``item_id`` to every record logged inside the block."""

    merged = dict(_context.get())
    merged.update({key: value for key, value in fields.items() if value})
    token = _context.set(merged)
    try:
        yield
    finally:
        _context.reset(token)


def current_context() -> Dict[str, str]:
    return dict(_context.get())


class Redactor:
    """Masks auth tokens and any configured secret values in text."""

    def __init__(self, secrets: Iterable[str] = ()):
        self.secrets: List[str] = [secret.strip() for secret in secrets if secret and secret.strip()]

    def __call__(self, text: str) -> str:
        for pattern in _TOKEN_PATTERNS:
            text = pattern.sub(r"\1" + REDACTED, text)
        for secret in self.secrets:
            text = text.replace(secret, REDACTED)
        return text


class ContextFilter(logging.Filter):
    """Copies the active log context onto records that do not already carry the field."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _context.get().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class SensitiveDataFilter(logging.Filter):
    """Filter that redacts tokens and configured secrets from log records."""

    def __init__(self, secrets: Iterable[str]):
        super().__init__()
        self.redact = Redactor(secrets)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = self.redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = ()

        if self.redact.secrets:
            for key, value in list(vars(record).items()):
                if isinstance(value, str):
                    setattr(record, key, self.redact(value))
        return True


class PlainFormatter(logging.Formatter):
    """Pipe-separated lines with context fields appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = " ".join(
            f"{field}={value}" for field in CONTEXT_FIELDS if (value := getattr(record, field, None))
        )
        return f"{line} | {context}" if context else line


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - override
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            if value := getattr(record, field, None):
                payload[field] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(level_name: str, fmt: str, secrets: Iterable[str]) -> None:
    """Install a single root handler; ``fmt`` is ``plain`` or ``json``."""

    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    formatter: logging.Formatter = JsonFormatter() if (fmt or "").lower() == "json" else PlainFormatter()

    redaction = SensitiveDataFilter(secrets)
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    handler.addFilter(redaction)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    logging.captureWarnings(True)

    # uvicorn installs its own handlers; route its records through ours instead.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = []
        server_logger.setLevel(level)
        server_logger.propagate = True
        server_logger.addFilter(redaction)


__all__ = [
    "CONTEXT_FIELDS",
    "REDACTED",
    "ContextFilter",
    "JsonFormatter",
    "PlainFormatter",
    "Redactor",
    "SensitiveDataFilter",
    "configure_logging",
    "current_context",
    "log_context",
]
