class PaycoreError(Exception):
    """Base class for errors raised by the payment core itself."""


class PaymentConfigError(PaycoreError):
    """Configuration is missing or inconsistent."""


class TrackerError(PaycoreError):
    """A PaymentStatusTracker was driven incorrectly (programmer error)."""
