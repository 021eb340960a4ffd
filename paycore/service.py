import logging
import secrets
import string
import time
from decimal import Decimal
from typing import Optional, Union

from .fees import calculate_breakdown, to_decimal
from .gateway import PaymentGatewayClient
from .models import FeeBreakdown, PaymentConfig, PaymentRequest, PaymentResult
from .phone import detect_provider, normalize_phone
from .status import GatewayStatusSource, StatusSource
from .tracker import PaymentStatusTracker
from .validation import validate_payment_request

logger = logging.getLogger(__name__)

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_payment_reference(prefix: str = "WC") -> str:
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(6))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def format_amount(amount: Union[float, Decimal], currency: str = "ZMW") -> str:
    return f"{currency} {to_decimal(amount):,.2f}"


class PaymentService:
    """
    Validation -> fee breakdown -> gateway call, with status tracking on top.

    Configuration is passed in explicitly so tests can swap fee schedules,
    amount limits and polling settings.
    """

    def __init__(
        self,
        config: PaymentConfig,
        gateway: Optional[PaymentGatewayClient] = None,
        status_source: Optional[StatusSource] = None,
    ):
        self.config = config
        self.gateway = gateway or PaymentGatewayClient(config.gateway_url, timeout=config.gateway_timeout)
        self.status_source = status_source or GatewayStatusSource(self.gateway)

    async def aclose(self):
        await self.gateway.aclose()

    def quote(self, amount: Union[float, Decimal], transaction_type: Optional[str] = None) -> FeeBreakdown:
        return calculate_breakdown(
            amount,
            transaction_type,
            self.config.fee_schedule,
            self.config.default_fee_percentage,
        )

    def prepare(self, request: PaymentRequest) -> PaymentRequest:
        """Normalize UI input (international phone numbers) before validation."""
        if request.phone_number:
            return request.model_copy(update={"phone_number": normalize_phone(request.phone_number)})
        return request

    async def submit(self, request: PaymentRequest, reference: Optional[str] = None) -> PaymentResult:
        request = self.prepare(request)
        validation = validate_payment_request(
            request,
            min_amount=self.config.min_amount,
            max_amount=self.config.max_amount,
        )
        if not validation.is_valid:
            logger.info("Rejected payment request: %s", validation.error)
            return PaymentResult(validation=validation)
        for warning in validation.warnings:
            logger.info("Payment request warning: %s", warning)

        breakdown = self.quote(request.amount, request.transaction_type)
        reference = reference or generate_payment_reference()
        outcome = await self.gateway.initiate(request, reference=reference, currency=self.config.currency)

        if outcome.success:
            logger.info(
                "Payment %s submitted: %s %s (fee %s)",
                reference,
                self.config.currency,
                breakdown.total_amount,
                breakdown.platform_fee,
            )
        return PaymentResult(validation=validation, breakdown=breakdown, outcome=outcome)

    async def process_mobile_money(
        self,
        amount: float,
        phone_number: str,
        provider: Optional[str] = None,
        description: str = "",
        email: Optional[str] = None,
        transaction_type: str = "marketplace",
    ) -> PaymentResult:
        request = PaymentRequest(
            amount=amount,
            payment_method="mobile_money",
            phone_number=phone_number,
            provider=provider or detect_provider(phone_number),
            email=email,
            description=description,
            transaction_type=transaction_type,
        )
        return await self.submit(request)

    async def process_card(
        self,
        amount: float,
        description: str = "",
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        transaction_type: str = "marketplace",
    ) -> PaymentResult:
        request = PaymentRequest(
            amount=amount,
            payment_method="card",
            phone_number=phone_number,
            email=email,
            description=description,
            transaction_type=transaction_type,
        )
        return await self.submit(request)

    def create_tracker(self, **callbacks) -> PaymentStatusTracker:
        return PaymentStatusTracker(
            self.status_source,
            poll_interval=self.config.poll_interval,
            max_tracking_time=self.config.max_tracking_time,
            **callbacks,
        )
