"""Status-query collaborators polled by PaymentStatusTracker."""
import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

from . import db
from .gateway import PaymentGatewayClient, map_gateway_status
from .models import PaymentStatusRecord
from .settings import DATABASE_URL

logger = logging.getLogger(__name__)


@runtime_checkable
class StatusSource(Protocol):
    async def fetch_status(self, reference: str) -> Optional[PaymentStatusRecord]:
        ...


class GatewayStatusSource:
    def __init__(self, gateway: PaymentGatewayClient):
        self.gateway = gateway

    async def fetch_status(self, reference: str) -> Optional[PaymentStatusRecord]:
        return await self.gateway.verify(reference)


class PaymentsTableStatusSource:
    """Reads the payments table that the webhook handler keeps up to date."""

    query = (
        "SELECT reference, status, amount, currency, transaction_id, paid_at, gateway_response "
        "FROM payments WHERE reference = %s"
    )

    def __init__(self, database_url: str = DATABASE_URL):
        self.database_url = database_url

    def _fetch_row(self, reference: str) -> Optional[dict]:
        return db.fetch_one(self.query, (reference,), self.database_url)

    async def fetch_status(self, reference: str) -> Optional[PaymentStatusRecord]:
        row = await asyncio.to_thread(self._fetch_row, reference)
        if not row:
            return None

        status = map_gateway_status(row["status"])
        if status is None:
            logger.warning("Unknown payment status %r stored for %s", row["status"], reference)
            return None

        paid_at = row.get("paid_at")
        return PaymentStatusRecord(
            status=status,
            amount=float(row.get("amount") or 0),
            currency=row.get("currency"),
            reference=row["reference"],
            transaction_id=row.get("transaction_id"),
            paid_at=paid_at.isoformat() if hasattr(paid_at, "isoformat") else paid_at,
            gateway_response=row.get("gateway_response"),
        )
