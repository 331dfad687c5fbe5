"""Request ids on responses and on the records logged while serving them."""

from __future__ import annotations

import logging

import pytest

from cartwise.logging_utils import ContextFilter
from tests.integration.utils import auth_headers, create_cart


class _Recorder(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []
        self.addFilter(ContextFilter())

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture()
def access_records(client):
    recorder = _Recorder()
    access_logger = logging.getLogger("cartwise.access")
    access_logger.addHandler(recorder)
    yield recorder.records
    access_logger.removeHandler(recorder)


def test_request_id_echoed_when_provided(client):
    response = client.get("/carts", headers={"X-Request-ID": "trip-req-1"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "trip-req-1"


def test_request_id_generated_per_request(client):
    first = client.get("/carts").headers.get("X-Request-ID")
    second = client.get("/carts").headers.get("X-Request-ID")

    assert first and second
    assert len(first) >= 8
    assert first != second


def test_request_id_kept_on_error_responses(client):
    cart = create_cart(client, "Errands")
    headers = {**auth_headers(), "X-Request-ID": "trip-req-2"}

    missing = client.get("/carts/no-such-cart", headers=headers)
    assert missing.status_code == 404
    assert missing.headers["X-Request-ID"] == "trip-req-2"

    conflict = client.post(f"/carts/{cart['id']}/reopen", headers=headers)
    assert conflict.status_code == 409
    assert conflict.headers["X-Request-ID"] == "trip-req-2"


def test_access_log_carries_request_id(client, access_records):
    client.post(
        "/carts",
        json={"name": "Logged", "budget": 5},
        headers={**auth_headers(), "X-Request-ID": "trip-req-3"},
    )

    served = [record for record in access_records if "POST /carts" in record.getMessage()]
    assert served
    assert served[-1].request_id == "trip-req-3"
    assert "status=201" in served[-1].getMessage()
