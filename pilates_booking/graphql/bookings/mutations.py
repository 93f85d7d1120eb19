"""
GraphQL mutations for bookings and waitlists.
"""
import logging
from typing import Optional
import strawberry

from pilates_booking.graphql.auth.permissions import IsAuthenticated, IsStaff
from pilates_booking.graphql.bookings.types import (
    BookingResponse,
    CancellationResponse,
    CheckInResponse,
    CompletionResponse,
    WaitlistResponse,
)
from pilates_booking.services.booking_engine import BookingEngine

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR = "Internal server error"


@strawberry.type
class BookingMutation:
    """Booking mutations"""

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def book_class(
        self,
        info: strawberry.Info,
        class_id: int,
        user_id: Optional[int] = None,
        override_restrictions: bool = False
    ) -> BookingResponse:
        """Book a class; staff may book on behalf of a member, with or without a subscription"""
        engine: BookingEngine = info.context.engine
        actor = info.context.actor

        try:
            result = await engine.book_class(
                user_id or actor.user_id, class_id, actor=actor,
                override_restrictions=override_restrictions
            )
            return BookingResponse.from_result(result)
        except Exception as e:
            logger.error("book_class failed for class %s: %s", class_id, e)
            return BookingResponse(success=False, status="rejected", message=UNEXPECTED_ERROR)

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def cancel_booking(
        self,
        info: strawberry.Info,
        booking_id: int
    ) -> CancellationResponse:
        """Cancel a booking and promote the waitlist if the class was full"""
        engine: BookingEngine = info.context.engine

        try:
            result = await engine.cancel_booking(booking_id, info.context.actor)
            return CancellationResponse.from_result(result)
        except Exception as e:
            logger.error("cancel_booking failed for booking %s: %s", booking_id, e)
            return CancellationResponse(success=False, message=UNEXPECTED_ERROR, booking_id=booking_id)

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def join_waitlist(
        self,
        info: strawberry.Info,
        class_id: int,
        user_id: Optional[int] = None
    ) -> WaitlistResponse:
        """Join the waitlist of a full class"""
        engine: BookingEngine = info.context.engine
        actor = info.context.actor

        try:
            result = await engine.join_waitlist(user_id or actor.user_id, class_id, actor=actor)
            return WaitlistResponse.from_result(result)
        except Exception as e:
            logger.error("join_waitlist failed for class %s: %s", class_id, e)
            return WaitlistResponse(success=False, message=UNEXPECTED_ERROR)

    @strawberry.mutation(permission_classes=[IsAuthenticated])
    async def leave_waitlist(
        self,
        info: strawberry.Info,
        entry_id: int
    ) -> WaitlistResponse:
        """Leave a waitlist"""
        engine: BookingEngine = info.context.engine

        try:
            result = await engine.leave_waitlist(entry_id, actor=info.context.actor)
            return WaitlistResponse.from_result(result)
        except Exception as e:
            logger.error("leave_waitlist failed for entry %s: %s", entry_id, e)
            return WaitlistResponse(success=False, message=UNEXPECTED_ERROR)

    @strawberry.mutation(permission_classes=[IsStaff])
    async def check_in_booking(
        self,
        info: strawberry.Info,
        booking_id: int
    ) -> CheckInResponse:
        """Check a member in for their booking"""
        engine: BookingEngine = info.context.engine

        try:
            result = await engine.check_in(booking_id, info.context.actor)
            return CheckInResponse.from_result(result)
        except Exception as e:
            logger.error("check_in failed for booking %s: %s", booking_id, e)
            return CheckInResponse(success=False, checkin_time=None, message=UNEXPECTED_ERROR)

    @strawberry.mutation(permission_classes=[IsStaff])
    async def complete_booking(
        self,
        info: strawberry.Info,
        booking_id: int
    ) -> CompletionResponse:
        """Mark an attended booking as completed"""
        engine: BookingEngine = info.context.engine

        try:
            result = await engine.complete_booking(booking_id, info.context.actor)
            return CompletionResponse.from_result(result)
        except Exception as e:
            logger.error("complete_booking failed for booking %s: %s", booking_id, e)
            return CompletionResponse(success=False, message=UNEXPECTED_ERROR, booking_id=booking_id)
