"""
Domain-specific exception hierarchy for the scheduling core.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail


class StoreError(SchedulingError):
    """Raised when the availability store rejects or cannot serve a request."""


class StoreConflictError(StoreError):
    """Raised when a write violates a unique constraint."""


class PaymentGatewayError(SchedulingError):
    """Raised when the payment gateway cannot create a deposit intent."""


class AuthenticationError(SchedulingError):
    """Raised when sign-in or session handling fails."""


class Unauthorized(SchedulingError):
    """Raised when no authenticated identity is available for an operation."""


class ValidationFailed(SchedulingError, ValueError):
    """Raised when caller input is incomplete or inconsistent."""


class DossierCreationFailed(SchedulingError):
    """Raised when the store rejects the dossier insert."""


class PaymentIntentFailed(SchedulingError):
    """Raised when a deposit intent fails and degrading is disabled."""


class BookingCreationFailed(SchedulingError):
    """Raised when the store rejects the booking insert."""


class SlotTaken(BookingCreationFailed):
    """Raised when the chosen slot was reserved by someone else first."""


class BookingNotFound(SchedulingError):
    """Raised when a booking id does not exist."""


class InvalidBookingTransition(SchedulingError):
    """Raised when a booking's current status does not allow the change."""
