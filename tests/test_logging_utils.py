"""Tests for logging utilities and sensitive data redaction."""

from __future__ import annotations

import json
import logging

import pytest

from cartwise.logging_utils import (
    ContextFilter,
    JsonFormatter,
    PlainFormatter,
    SensitiveDataFilter,
    configure_logging,
    log_context,
)


def _record(msg: str, *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="cartwise.test.redaction",
        level=logging.INFO,
        pathname=__file__,
        lineno=0,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.parametrize("fmt", ["plain", "json"])
def test_sensitive_data_filter_redacts_tokens(fmt):
    secret = "top-secret-token"
    configure_logging("INFO", fmt, [secret])

    handler = logging.getLogger().handlers[0]
    record = _record("Authorization header Bearer %s", secret)

    for filter_ in handler.filters:
        filter_.filter(record)

    formatted = handler.format(record)
    assert secret not in formatted
    assert "[redacted]" in formatted


def test_known_patterns_masked_without_configured_secrets():
    record = _record("GET /carts?api_token=abc123 X-API-Key=def456")

    SensitiveDataFilter([]).filter(record)

    message = record.getMessage()
    assert "abc123" not in message
    assert "def456" not in message


def test_json_formatter_includes_cart_context():
    record = _record("Cart moved", cart_id="cart-1", request_id="req-9")

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Cart moved"
    assert payload["cart_id"] == "cart-1"
    assert payload["request_id"] == "req-9"
    assert "item_id" not in payload


def test_configure_logging_sets_level():
    configure_logging("warning", "plain", [])

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("uvicorn.access").propagate is True


def test_log_context_is_copied_onto_records_and_restored():
    record = _record("Line fulfilled")

    with log_context(cart_id="cart-7"):
        with log_context(item_id="line-2", request_id=None):
            ContextFilter().filter(record)

    assert record.cart_id == "cart-7"
    assert record.item_id == "line-2"
    assert not hasattr(record, "request_id")

    later = _record("Outside")
    ContextFilter().filter(later)
    assert not hasattr(later, "cart_id")


def test_plain_formatter_appends_context_pairs():
    record = _record("Cart completed", cart_id="cart-1")

    line = PlainFormatter().format(record)

    assert line.endswith("| cart_id=cart-1")
    assert "Cart completed" in line
