"""
Domain exceptions for the booking engine.

Every rejection carries a stable ``code`` (the error kind) and a human
readable ``message`` that is safe to show to the member. Business errors
subclass ``ValueError`` so GraphQL resolvers can keep the usual
``except ValueError`` handling.
"""
from typing import Any, Dict, Optional


class BookingError(ValueError):
    """Base class for all business rule rejections."""

    code = "BookingError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(BookingError):
    """Malformed input or a request that makes no sense for the current state."""

    code = "ValidationError"


class WaitlistClosedError(ValidationError):
    code = "WaitlistClosedError"


class NotFoundError(BookingError):
    code = "NotFoundError"


class PermissionDeniedError(BookingError):
    """Role-inappropriate action, e.g. a client cancelling inside the lead time."""

    code = "PermissionError"


class DuplicateBookingError(BookingError):
    code = "DuplicateBookingError"


class PastClassError(BookingError):
    code = "PastClassError"


class EntitlementError(BookingError):
    """The member's subscription does not allow this booking."""

    code = "EntitlementError"


class NoSubscriptionError(EntitlementError):
    code = "NoSubscriptionError"


class InsufficientCreditError(EntitlementError):
    code = "InsufficientCreditError"


class CategoryMismatchError(EntitlementError):
    code = "CategoryMismatchError"


class EquipmentMismatchError(EntitlementError):
    code = "EquipmentMismatchError"


class ScheduleConflictError(BookingError):
    """Instructor or room is already busy; ``conflict`` describes the other class."""

    code = "ScheduleConflictError"

    def __init__(self, message: str, conflict: Any) -> None:
        self.conflict = conflict
        super().__init__(message, details={"conflict": conflict.to_dict()})


class TransactionFailure(Exception):
    """Storage failure. The transaction was rolled back, nothing was applied."""

    code = "TransactionFailure"
    message = "Internal server error"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail or self.message)
