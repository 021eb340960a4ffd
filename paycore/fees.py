from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional, Union

from .models import DEFAULT_TRANSACTION_TYPE, FEE_SCHEDULE, FeeBreakdown

Number = Union[int, float, Decimal, str]

CENTS = Decimal("0.01")
FEE_EXEMPT_TYPES = ("donation", "subscription")


def to_decimal(amount: Number) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # shortest float repr: 0.1 -> Decimal("0.1")
    return Decimal(str(amount))


def get_fee_percentage(
    transaction_type: Optional[str] = None,
    schedule: Optional[Mapping[str, Decimal]] = None,
    default_percentage: Optional[Number] = None,
) -> Decimal:
    if transaction_type in FEE_EXEMPT_TYPES:
        return Decimal("0")
    schedule = FEE_SCHEDULE if schedule is None else schedule
    if transaction_type in schedule:
        return to_decimal(schedule[transaction_type])
    if transaction_type in FEE_SCHEDULE:
        return FEE_SCHEDULE[transaction_type]
    if default_percentage is not None:
        return to_decimal(default_percentage)
    return to_decimal(schedule.get(DEFAULT_TRANSACTION_TYPE, FEE_SCHEDULE[DEFAULT_TRANSACTION_TYPE]))


def calculate_platform_fee(
    amount: Number,
    fee_percentage: Number,
    transaction_type: Optional[str] = None,
) -> Decimal:
    if transaction_type in FEE_EXEMPT_TYPES:
        return Decimal("0.00")
    value = to_decimal(amount) * to_decimal(fee_percentage) / Decimal(100)
    if not value.is_finite():
        return Decimal("0.00")
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_breakdown(
    amount: Number,
    transaction_type: Optional[str] = None,
    schedule: Optional[Mapping[str, Decimal]] = None,
    default_percentage: Optional[Number] = None,
) -> FeeBreakdown:
    total = to_decimal(amount)
    fee_percentage = get_fee_percentage(transaction_type, schedule, default_percentage)
    platform_fee = calculate_platform_fee(total, fee_percentage, transaction_type)
    return FeeBreakdown(
        total_amount=total,
        platform_fee=platform_fee,
        provider_receives=total - platform_fee,
        fee_percentage=fee_percentage,
    )
