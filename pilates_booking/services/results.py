"""
Typed results returned by the booking engine.

Every result carries ``success`` and a member-facing ``message``; rejections
add the stable ``error_code`` of the exception that caused them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

STATUS_CONFIRMED = "confirmed"
STATUS_WAITLISTED = "waitlisted"
STATUS_REJECTED = "rejected"


@dataclass
class BookingResult:
    success: bool
    status: str
    message: str
    class_id: Optional[int] = None
    booking_id: Optional[int] = None
    waitlist_position: Optional[int] = None
    waitlist_entry_id: Optional[int] = None
    error_code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def confirmed(cls, class_id: int, booking_id: int) -> "BookingResult":
        return cls(
            success=True,
            status=STATUS_CONFIRMED,
            message="Class booked successfully",
            class_id=class_id,
            booking_id=booking_id,
        )

    @classmethod
    def waitlisted(cls, class_id: int, entry_id: int, position: int) -> "BookingResult":
        return cls(
            success=True,
            status=STATUS_WAITLISTED,
            message=f"Class is full. You have been added to the waitlist at position #{position}.",
            class_id=class_id,
            waitlist_position=position,
            waitlist_entry_id=entry_id,
        )

    @classmethod
    def rejected(cls, error_code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "BookingResult":
        return cls(
            success=False,
            status=STATUS_REJECTED,
            message=message,
            error_code=error_code,
            details=details or {},
        )


@dataclass
class CancellationResult:
    success: bool
    message: str
    booking_id: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    hours_before_class: Optional[float] = None
    waitlist_promoted: bool = False
    promoted_user_id: Optional[int] = None
    error_code: Optional[str] = None

    @classmethod
    def rejected(cls, error_code: str, message: str, booking_id: Optional[int] = None) -> "CancellationResult":
        return cls(success=False, message=message, booking_id=booking_id, error_code=error_code)


@dataclass
class WaitlistResult:
    success: bool
    message: str
    entry_id: Optional[int] = None
    class_id: Optional[int] = None
    position: Optional[int] = None
    error_code: Optional[str] = None

    @classmethod
    def rejected(cls, error_code: str, message: str) -> "WaitlistResult":
        return cls(success=False, message=message, error_code=error_code)


@dataclass
class CheckInResult:
    success: bool
    message: str
    booking_id: Optional[int] = None
    check_in_time: Optional[datetime] = None
    error_code: Optional[str] = None

    @classmethod
    def rejected(cls, error_code: str, message: str) -> "CheckInResult":
        return cls(success=False, message=message, error_code=error_code)


@dataclass
class CompletionResult:
    success: bool
    message: str
    booking_id: Optional[int] = None
    status: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def rejected(cls, error_code: str, message: str) -> "CompletionResult":
        return cls(success=False, message=message, error_code=error_code)
