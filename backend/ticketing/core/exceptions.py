"""
Typed error taxonomy for the reservation and payment workflow.

Services raise these instead of HTTP errors; the API layer maps them to
responses through `status_code`, and the worker uses the concrete type to
decide between retrying and dead-lettering a job.
"""


class BookingEngineError(Exception):
    """Base class for all domain-level errors."""

    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BookingEngineError):
    """Bad quantity or fields. Raised before inventory is touched."""

    status_code = 422


class NotFoundError(BookingEngineError):
    status_code = 404


class ConflictError(BookingEngineError):
    """Reservation refused atomically: insufficient tickets or inactive event."""

    status_code = 409


class InvalidStateTransitionError(ConflictError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Illegal state transition attempted: {from_state} -> {to_state}")


class GatewayError(BookingEngineError):
    """Payment-order creation failed. The whole reservation is rolled back."""

    status_code = 502


class SignatureError(BookingEngineError):
    status_code = 400


class QueueDeliveryError(BookingEngineError):
    """
    A reconciliation job could not be enqueued after commit.
    The booking stays committed; the failure goes to the alerting path.
    """

    status_code = 503


class TransientStoreError(BookingEngineError):
    """Store read/write failed in a way worth retrying."""

    status_code = 503


class AuthenticationError(BookingEngineError):
    status_code = 401


class PermissionDeniedError(BookingEngineError):
    status_code = 403
