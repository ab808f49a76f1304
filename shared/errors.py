"""
Error taxonomy for order fulfillment.

Order errors abort the request and map to an HTTP status code. Notification
errors never abort a request: they are captured per channel in a
NotificationOutcome and reported back to the caller.
"""

from typing import Optional


class OrderError(Exception):
    """Base class for errors that abort an order request."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrderError):
    """Malformed, missing or inconsistent request fields (user-correctable)."""

    status_code = 400

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Field '{field}' is required")
        self.field = field


class PaymentVerificationError(OrderError):
    """The gateway signature did not match. Never retried automatically."""

    status_code = 400


class GatewayError(OrderError):
    """The payment gateway call failed."""

    status_code = 500


class PersistenceError(OrderError):
    """The order store rejected or failed the write."""

    status_code = 500


class NotificationDeliveryError(Exception):
    """A single channel failed to deliver a message."""


class SessionUnavailable(NotificationDeliveryError):
    """The chat session cannot be used (failed, exhausted retries or destroyed)."""


class NotReadyError(SessionUnavailable):
    """The chat session did not become ready within the wait timeout."""
