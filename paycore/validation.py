import math
import re
from typing import Optional

from .models import PAYMENT_METHODS, TRANSACTION_TYPES, PaymentRequest, ValidationResult
from .phone import PROVIDER_NAMES, PROVIDER_PREFIXES, is_valid_phone

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
HTML_TAG_RE = re.compile(r"<[^>]*>")
MAX_DESCRIPTION_LENGTH = 200


def _fail(error: str) -> ValidationResult:
    return ValidationResult(is_valid=False, error=error)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def sanitize_description(description: Optional[str]) -> str:
    return HTML_TAG_RE.sub("", description or "").strip()[:MAX_DESCRIPTION_LENGTH]


def validate_payment_request(
    request: PaymentRequest,
    *,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
) -> ValidationResult:
    """
    Check a payment request before anything is sent to the gateway.

    Rules run in order and the first failure wins: amount, payment method,
    transaction type, mobile-money provider/phone, email. A phone number that
    belongs to a different carrier than the selected provider is returned as a
    warning; it does not block the request.
    """
    amount = request.amount
    if amount is None or not math.isfinite(amount) or amount <= 0:
        return _fail("Please enter a valid payment amount greater than zero")
    if min_amount is not None and amount < min_amount:
        return _fail(f"Minimum payment amount is {min_amount:.2f}")
    if max_amount is not None and amount > max_amount:
        return _fail(f"Maximum payment amount is {max_amount:.2f}")

    if request.payment_method not in PAYMENT_METHODS:
        return _fail("Please choose mobile money or card as the payment method")

    if request.transaction_type not in TRANSACTION_TYPES:
        return _fail(f"Unsupported transaction type: {request.transaction_type}")

    warnings = []
    if request.payment_method == "mobile_money":
        if not request.provider or not request.phone_number:
            return _fail("Please select a provider and enter your phone number")
        if request.provider not in PROVIDER_PREFIXES:
            return _fail(f"Unsupported mobile money provider: {request.provider}")
        if not is_valid_phone(request.phone_number, request.provider):
            detected = next(
                (provider for provider in PROVIDER_PREFIXES if is_valid_phone(request.phone_number, provider)),
                None,
            )
            if detected is None:
                prefix = PROVIDER_PREFIXES[request.provider]
                return _fail(f"Invalid phone number format. Use a 10 digit number starting with {prefix}")
            warnings.append(
                f"This number looks like a {PROVIDER_NAMES[detected]} number, "
                f"but {PROVIDER_NAMES[request.provider]} was selected"
            )

    if request.email and not is_valid_email(request.email):
        return _fail("Please enter a valid email address")

    return ValidationResult(is_valid=True, warnings=warnings)
