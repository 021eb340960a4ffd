from datetime import datetime, timezone
from decimal import Decimal

import pytest

from paycore import db
from paycore.status import GatewayStatusSource, PaymentsTableStatusSource, StatusSource


def fake_fetch(row):
    calls = []

    def fetch_one(query, params, database_url):
        calls.append((query, params, database_url))
        return row

    return fetch_one, calls


@pytest.mark.asyncio
async def test_payments_table_row_becomes_status_record(monkeypatch):
    fetch_one, calls = fake_fetch(
        {
            "reference": "R1",
            "status": "success",
            "amount": Decimal("100.00"),
            "currency": "ZMW",
            "transaction_id": "TXN1",
            "paid_at": datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc),
            "gateway_response": "Approved",
        }
    )
    monkeypatch.setattr(db, "fetch_one", fetch_one)
    source = PaymentsTableStatusSource("postgresql://test/payments")

    record = await source.fetch_status("R1")

    assert record.status == "completed"
    assert record.amount == 100.0
    assert record.paid_at == "2026-10-19T10:00:00+00:00"
    assert calls[0][1] == ("R1",)
    assert calls[0][2] == "postgresql://test/payments"


@pytest.mark.asyncio
async def test_missing_row_is_none(monkeypatch):
    fetch_one, _ = fake_fetch(None)
    monkeypatch.setattr(db, "fetch_one", fetch_one)

    assert await PaymentsTableStatusSource().fetch_status("nope") is None


@pytest.mark.asyncio
async def test_unknown_stored_status_is_none(monkeypatch):
    fetch_one, _ = fake_fetch({"reference": "R1", "status": "mystery"})
    monkeypatch.setattr(db, "fetch_one", fetch_one)

    assert await PaymentsTableStatusSource().fetch_status("R1") is None


@pytest.mark.asyncio
async def test_gateway_status_source_delegates_to_verify():
    class FakeGateway:
        async def verify(self, reference):
            return reference

    source = GatewayStatusSource(FakeGateway())

    assert await source.fetch_status("R1") == "R1"
    assert isinstance(source, StatusSource)
