import logging
from typing import Optional

import httpx

from .exceptions import PaycoreError
from .models import GatewayEnvelope, GatewayPayload, PaymentOutcome, PaymentRequest, PaymentStatusRecord
from .validation import sanitize_description

logger = logging.getLogger(__name__)

GATEWAY_STATUS_MAP = {
    "success": "completed",
    "successful": "completed",
    "completed": "completed",
    "pending": "queued",
    "queued": "queued",
    "processing": "processing",
    "failed": "failed",
    "declined": "failed",
    "cancelled": "cancelled",
    "abandoned": "cancelled",
}


class PaymentGatewayError(PaycoreError):
    """The gateway answered a status query with an error or an unreadable body."""


def map_gateway_status(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    return GATEWAY_STATUS_MAP.get(raw.strip().lower())


def build_payload(
    request: PaymentRequest,
    reference: Optional[str] = None,
    currency: Optional[str] = None,
) -> GatewayPayload:
    is_mobile_money = request.payment_method == "mobile_money"
    return GatewayPayload(
        amount=float(request.amount),
        payment_method=request.payment_method,
        phone_number=request.phone_number or None,
        provider=request.provider if is_mobile_money else None,
        description=sanitize_description(request.description),
        reference=reference,
        currency=currency,
        email=request.email or None,
        transaction_type=request.transaction_type,
    )


class PaymentGatewayClient:
    """
    Talks to the hosted payment-initiation function over HTTP.

    The function answers with an envelope `{"data": ..., "error": ...}`.
    Transport faults (the request never got an answer) and explicit declines
    both come back as a failed PaymentOutcome, told apart by `failure_kind`.
    Nothing is retried here.
    """

    def __init__(self, url: str, timeout: float = 15.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, body: dict) -> httpx.Response:
        return await self._client.post(self.url, json=body, timeout=self.timeout)

    async def initiate(
        self,
        request: PaymentRequest,
        reference: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> PaymentOutcome:
        payload = build_payload(request, reference, currency)
        body = {"action": "initialize", **payload.model_dump(by_alias=True, exclude_none=True)}

        try:
            r = await self._post(body)
        except httpx.RequestError as exc:
            logger.warning("Payment gateway unreachable for %s: %r", reference, exc)
            return self._unreachable(reference, str(exc))
        except Exception:
            logger.exception("Unexpected error calling payment gateway for %s", reference)
            return self._unreachable(reference)

        try:
            envelope = GatewayEnvelope.model_validate(r.json())
        except ValueError:
            logger.error("Unreadable gateway response for %s (HTTP %s)", reference, r.status_code)
            return self._declined(reference, f"Invalid response from payment service (HTTP {r.status_code})")

        if envelope.error is not None:
            return self._declined(reference, envelope.error.message)

        data = envelope.data
        if data is None:
            return self._declined(reference, "Payment service returned no data")
        if not data.success:
            return self._declined(reference, data.error or data.message or "Payment initialization failed")

        transaction_id = data.transaction_id or data.reference
        if not transaction_id:
            return self._declined(reference, "Payment service did not return a transaction id")

        logger.info("Payment %s initiated as transaction %s", reference, transaction_id)
        return PaymentOutcome(
            success=True,
            transaction_id=transaction_id,
            reference=data.reference or reference,
            payment_url=data.payment_url,
        )

    def _unreachable(self, reference: Optional[str], message: str = "") -> PaymentOutcome:
        return PaymentOutcome(
            success=False,
            failure_kind="transport",
            error_message=message or "Unable to reach the payment service",
            reference=reference,
        )

    def _declined(self, reference: Optional[str], message: str) -> PaymentOutcome:
        logger.info("Payment %s declined by gateway: %s", reference, message)
        return PaymentOutcome(success=False, failure_kind="declined", error_message=message, reference=reference)

    async def verify(self, reference: str) -> Optional[PaymentStatusRecord]:
        """Ask the gateway for the current status of `reference`.

        Transport errors propagate; the status tracker turns them into observer
        callbacks.
        """
        r = await self._post({"action": "verify", "reference": reference})
        try:
            body = r.json()
        except ValueError:
            raise PaymentGatewayError(f"Invalid response from payment service (HTTP {r.status_code})")
        if not isinstance(body, dict):
            raise PaymentGatewayError("Invalid response from payment service")

        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise PaymentGatewayError(message or "Payment verification failed")

        data = body.get("data")
        if not data:
            return None
        if not isinstance(data, dict):
            raise PaymentGatewayError("Invalid payment status from payment service")

        status = map_gateway_status(data.get("status"))
        if status is None:
            logger.warning("Unknown gateway status %r for %s", data.get("status"), reference)
            status = "failed"

        return PaymentStatusRecord(
            status=status,
            amount=data.get("amount") or 0,
            currency=data.get("currency"),
            reference=data.get("reference") or reference,
            transaction_id=data.get("transaction_id") or data.get("id"),
            paid_at=data.get("paid_at"),
            gateway_response=data.get("gateway_response"),
        )
