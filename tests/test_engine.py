import dataclasses

import pytest
from sqlalchemy.exc import OperationalError

from receivables.db import engine as engine_module
from receivables.db.engine import get_engine, is_retryable
from receivables.services import ledger
from receivables.services.errors import RetryableConflict


@pytest.fixture()
def short_lock_wait(monkeypatch):
    monkeypatch.setattr(
        engine_module, "settings", dataclasses.replace(engine_module.settings, lock_timeout=0.1)
    )
    get_engine().dispose()
    get_engine.cache_clear()
    yield
    get_engine().dispose()
    get_engine.cache_clear()


@pytest.fixture()
def held_write_lock(short_lock_wait):
    conn = get_engine().connect()
    trans = conn.begin()
    yield
    trans.rollback()
    conn.close()


class _PgError(Exception):
    def __init__(self, pgcode):
        super().__init__("could not serialize access")
        self.pgcode = pgcode


def test_locked_database_is_retryable():
    exc = OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))
    assert is_retryable(exc)


@pytest.mark.parametrize("pgcode, expected", [("40001", True), ("40P01", True), ("42P01", False)])
def test_postgres_serialization_codes_are_retryable(pgcode, expected):
    exc = OperationalError("UPDATE invoices", {}, _PgError(pgcode))
    assert is_retryable(exc) is expected


def test_allocation_under_a_held_lock_is_a_retryable_conflict(make_invoice, make_payment, request):
    invoice = make_invoice("1000.00")
    payment = make_payment("400.00")
    request.getfixturevalue("held_write_lock")

    with pytest.raises(RetryableConflict) as excinfo:
        ledger.allocate(payment.id, invoice.id, "100.00")

    assert excinfo.value.retryable is True


def test_api_reports_lock_conflict_as_retryable_409(client, make_invoice, make_payment, request):
    invoice = make_invoice("1000.00")
    payment = make_payment("400.00")
    request.getfixturevalue("held_write_lock")

    resp = client.post(
        "/payments/link",
        json={"payment_id": payment.id, "invoice_id": invoice.id, "amount": "100.00"},
    )

    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "retryable_conflict"
    assert body["retryable"] is True


def test_lock_released_allocation_goes_through(make_invoice, make_payment, short_lock_wait):
    invoice = make_invoice("1000.00")
    payment = make_payment("400.00")

    conn = get_engine().connect()
    trans = conn.begin()
    with pytest.raises(RetryableConflict):
        ledger.allocate(payment.id, invoice.id, "100.00")
    trans.rollback()
    conn.close()

    assert ledger.allocate(payment.id, invoice.id, "100.00").amount == 100
