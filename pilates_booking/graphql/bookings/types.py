"""
GraphQL types for bookings and waitlists.
"""
from datetime import datetime
from typing import Optional
import strawberry

from pilates_booking.repositories.base import BookingData, WaitlistEntryData
from pilates_booking.services.results import (
    BookingResult,
    CancellationResult,
    CheckInResult,
    CompletionResult,
    WaitlistResult,
)


@strawberry.type
class Booking:
    """Booking GraphQL type"""
    id: int
    user_id: int
    class_id: int
    subscription_id: Optional[int]
    status: str
    created_at: datetime
    checked_in: bool
    check_in_time: Optional[datetime]

    @classmethod
    def from_data(cls, data: BookingData) -> "Booking":
        return cls(
            id=data.id,
            user_id=data.user_id,
            class_id=data.class_id,
            subscription_id=data.subscription_id,
            status=data.status,
            created_at=data.created_at,
            checked_in=data.checked_in,
            check_in_time=data.check_in_time
        )


@strawberry.type
class WaitlistEntry:
    """Waitlist entry GraphQL type"""
    id: int
    user_id: int
    class_id: int
    position: int
    created_at: datetime

    @classmethod
    def from_data(cls, data: WaitlistEntryData) -> "WaitlistEntry":
        return cls(
            id=data.id,
            user_id=data.user_id,
            class_id=data.class_id,
            position=data.position,
            created_at=data.created_at
        )


# Response types
@strawberry.type
class BookingResponse:
    """Response for booking attempts"""
    success: bool
    status: str
    message: str
    booking_id: Optional[int] = None
    waitlist_position: Optional[int] = None
    waitlist_entry_id: Optional[int] = None
    error_code: Optional[str] = None

    @classmethod
    def from_result(cls, result: BookingResult) -> "BookingResponse":
        return cls(
            success=result.success,
            status=result.status,
            message=result.message,
            booking_id=result.booking_id,
            waitlist_position=result.waitlist_position,
            waitlist_entry_id=result.waitlist_entry_id,
            error_code=result.error_code
        )


@strawberry.type
class CancellationResponse:
    """Response for booking cancellation"""
    success: bool
    message: str
    booking_id: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    hours_before_class: Optional[float] = None
    waitlist_promoted: bool = False
    error_code: Optional[str] = None

    @classmethod
    def from_result(cls, result: CancellationResult) -> "CancellationResponse":
        return cls(
            success=result.success,
            message=result.message,
            booking_id=result.booking_id,
            cancelled_at=result.cancelled_at,
            hours_before_class=result.hours_before_class,
            waitlist_promoted=result.waitlist_promoted,
            error_code=result.error_code
        )


@strawberry.type
class WaitlistResponse:
    """Response for waitlist join/leave"""
    success: bool
    message: str
    entry_id: Optional[int] = None
    class_id: Optional[int] = None
    position: Optional[int] = None
    error_code: Optional[str] = None

    @classmethod
    def from_result(cls, result: WaitlistResult) -> "WaitlistResponse":
        return cls(
            success=result.success,
            message=result.message,
            entry_id=result.entry_id,
            class_id=result.class_id,
            position=result.position,
            error_code=result.error_code
        )


@strawberry.type
class CheckInResponse:
    """Response for check-in operations"""
    success: bool
    checkin_time: Optional[datetime]
    message: str
    error_code: Optional[str] = None

    @classmethod
    def from_result(cls, result: CheckInResult) -> "CheckInResponse":
        return cls(
            success=result.success,
            checkin_time=result.check_in_time,
            message=result.message,
            error_code=result.error_code
        )


@strawberry.type
class CompletionResponse:
    """Response for marking a booking completed"""
    success: bool
    message: str
    booking_id: Optional[int] = None
    status: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def from_result(cls, result: CompletionResult) -> "CompletionResponse":
        return cls(
            success=result.success,
            message=result.message,
            booking_id=result.booking_id,
            status=result.status,
            error_code=result.error_code
        )
