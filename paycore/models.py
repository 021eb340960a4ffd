from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PaymentMethod = Literal["mobile_money", "card"]
Provider = Literal["mtn", "airtel", "zamtel"]
TransactionType = Literal["marketplace", "resource", "donation", "subscription"]
TrackingState = Literal["not_started", "queued", "processing", "completed", "failed", "cancelled"]
FailureKind = Literal["transport", "declined"]

PAYMENT_METHODS = ("mobile_money", "card")
PROVIDERS = ("mtn", "airtel", "zamtel")
TRANSACTION_TYPES = ("marketplace", "resource", "donation", "subscription")
TERMINAL_STATES = ("completed", "failed", "cancelled")

# Platform fee percentage per transaction category
FEE_SCHEDULE: Dict[str, Decimal] = {
    "marketplace": Decimal("5"),
    "resource": Decimal("5"),
    "donation": Decimal("0"),
    "subscription": Decimal("0"),
}
DEFAULT_TRANSACTION_TYPE = "marketplace"


class PaymentRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float
    payment_method: str
    phone_number: Optional[str] = None
    provider: Optional[str] = None
    email: Optional[str] = None
    description: str = ""
    transaction_type: str = DEFAULT_TRANSACTION_TYPE


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class FeeBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_amount: Decimal
    platform_fee: Decimal
    provider_receives: Decimal
    fee_percentage: Decimal


class GatewayPayload(BaseModel):
    """Request body sent to the payment-initiation operation."""

    model_config = ConfigDict(populate_by_name=True)

    amount: float
    payment_method: PaymentMethod = Field(alias="paymentMethod")
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")
    provider: Optional[Provider] = None
    description: str
    reference: Optional[str] = None
    currency: Optional[str] = None
    email: Optional[str] = None
    transaction_type: TransactionType = Field(default="marketplace", alias="transactionType")


class GatewayData(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    reference: Optional[str] = None
    payment_url: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None


class GatewayError(BaseModel):
    message: str = "Payment service error"


class GatewayEnvelope(BaseModel):
    data: Optional[GatewayData] = None
    error: Optional[GatewayError] = None


class PaymentOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    reference: Optional[str] = None
    payment_url: Optional[str] = None


class PaymentResult(BaseModel):
    validation: ValidationResult
    breakdown: Optional[FeeBreakdown] = None
    outcome: Optional[PaymentOutcome] = None

    @property
    def success(self) -> bool:
        return self.outcome is not None and self.outcome.success


class PaymentStatusRecord(BaseModel):
    status: str
    amount: float = 0
    currency: Optional[str] = None
    reference: str
    transaction_id: Optional[str] = None
    paid_at: Optional[str] = None
    gateway_response: Optional[str] = None


class TrackedPayment(BaseModel):
    """Read-only view of the payment a tracker is following."""

    model_config = ConfigDict(frozen=True)

    reference: str
    status: TrackingState = "not_started"
    amount: Optional[float] = None
    currency: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_at: Optional[str] = None
    gateway_response: Optional[str] = None
    tracking_start_time: Optional[float] = None
    polling_start_time: Optional[float] = None
    last_updated: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


class PaymentConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    gateway_url: str
    gateway_timeout: float = Field(default=15.0, gt=0)
    currency: str = Field(default="ZMW", min_length=3, max_length=3)
    fee_schedule: Dict[str, Decimal] = Field(default_factory=lambda: dict(FEE_SCHEDULE))
    default_fee_percentage: Decimal = Decimal("5")
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    poll_interval: float = Field(default=5.0, gt=0)
    max_tracking_time: float = Field(default=300.0, gt=0)
