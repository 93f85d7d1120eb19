"""
Cancellation cascade.

Reverses a booking (row deleted, slot released, credit refunded) and, when the
class was full, promotes the head of its waitlist in the same transaction.
Promotion runs inside a savepoint: if it fails, only the promotion is rolled
back and the cancellation still succeeds.
"""
import logging
from datetime import datetime
from typing import List, Optional

from pilates_booking.core.config import Settings, get_settings
from pilates_booking.core.exceptions import (
    EntitlementError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from pilates_booking.core.identity import Actor
from pilates_booking.core.logging_config import log_booking_event
from pilates_booking.repositories.base import (
    BOOKING_CONFIRMED,
    BookingData,
    BookingRepository,
    ClassSessionData,
)
from pilates_booking.services.booking_coordinator import BookingTransactionCoordinator
from pilates_booking.services.notifications import NotificationEvent, promoted_event
from pilates_booking.services.results import CancellationResult

logger = logging.getLogger(__name__)


class CancellationCascade:
    def __init__(
        self,
        repo: BookingRepository,
        settings: Optional[Settings] = None,
        events: Optional[List[NotificationEvent]] = None
    ):
        self.repo = repo
        self.settings = settings or get_settings()
        self.coordinator = BookingTransactionCoordinator(repo, self.settings, events)
        self.capacity = self.coordinator.capacity
        self.credits = self.coordinator.credits
        self.waitlist = self.coordinator.waitlist

    @property
    def events(self) -> List[NotificationEvent]:
        return self.coordinator.events

    async def cancel_booking(self, booking_id: int, actor: Actor, now: datetime) -> CancellationResult:
        booking = await self.repo.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")

        await self.repo.lock_class(booking.class_id)
        # re-read under the class lock, a concurrent cancel may have won
        booking = await self.repo.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")

        if not actor.can_act_for(booking.user_id):
            raise PermissionDeniedError("Access denied")
        if booking.status != BOOKING_CONFIRMED:
            raise ValidationError(f"Booking is already {booking.status}")

        session = await self.repo.get_class_session(booking.class_id)
        if session is None:
            raise NotFoundError("Class not found or not available")

        hours_before = (session.starts_at(self.settings.tz) - now).total_seconds() / 3600
        lead_hours = self.settings.cancellation_lead_hours
        if not actor.is_staff and hours_before < lead_hours:
            raise PermissionDeniedError(
                f"Cannot cancel booking less than {lead_hours:g} hours before class. "
                f"Class starts in {hours_before:.1f} hours.",
                details={"hours_before_class": round(hours_before, 1)},
            )

        was_full = await self.capacity.confirmed_count(session.id) >= session.capacity

        await self.repo.delete_booking(booking.id)
        await self.capacity.release_slot(session.id)
        if booking.subscription_id is not None:
            await self.credits.refund(booking.subscription_id)

        promoted: Optional[BookingData] = None
        if was_full and session.is_active:
            promoted = await self.promote_next(session, now)

        log_booking_event(
            "cancel", booking.user_id, session.id,
            detail=f"booking={booking.id} by={actor.user_id} promoted={promoted is not None}"
        )

        if promoted:
            message = (
                "Booking cancelled successfully. The next person on the waitlist "
                "has been automatically booked and notified."
            )
        else:
            message = "Booking cancelled successfully"

        return CancellationResult(
            success=True,
            message=message,
            booking_id=booking.id,
            cancelled_at=now,
            hours_before_class=round(hours_before, 1),
            waitlist_promoted=promoted is not None,
            promoted_user_id=promoted.user_id if promoted else None,
        )

    async def promote_next(self, session: ClassSessionData, now: datetime) -> Optional[BookingData]:
        """Book the head of the waitlist into the freed slot; None when nobody was booked"""
        mark = len(self.events)
        try:
            async with self.repo.savepoint():
                return await self._promote(session, now)
        except Exception as e:
            del self.events[mark:]
            logger.error("Waitlist promotion for class %s failed and was rolled back: %s", session.id, e)
            return None

    async def _promote(self, session: ClassSessionData, now: datetime) -> Optional[BookingData]:
        await self.waitlist.prune_class(session, now)
        today = self.coordinator.local_today(now)

        while True:
            head = await self.waitlist.peek(session.id)
            if head is None:
                return None

            if await self.repo.find_user_booking(head.user_id, session.id):
                logger.warning(
                    "User %s already booked class %s, removing from waitlist",
                    head.user_id, session.id
                )
                await self.waitlist.remove(head.id)
                continue

            try:
                account = await self.credits.resolve_for_booking(
                    head.user_id, session, today, prefer_active=True
                )
            except EntitlementError as e:
                if self.settings.skip_lapsed_waitlist_entrants:
                    logger.warning(
                        "Skipping waitlisted user %s for class %s: %s",
                        head.user_id, session.id, e.message
                    )
                    await self.waitlist.remove(head.id)
                    continue
                logger.warning(
                    "Waitlisted user %s cannot be promoted into class %s, slot left open: %s",
                    head.user_id, session.id, e.message
                )
                return None

            if not await self.capacity.try_reserve_slot(session.id):
                logger.warning("Class %s has no free slot to promote into", session.id)
                return None

            await self.waitlist.dequeue(session.id)
            booking = await self.coordinator.confirm_seat(head.user_id, session, account, now)
            self.events.append(promoted_event(
                head.user_id,
                session.id,
                f"Great news! A spot opened up in \"{session.name}\" on "
                f"{session.date.isoformat()} at {session.start_time.strftime('%H:%M')}. "
                "You are now booked automatically!",
                now,
            ))
            log_booking_event("promote", head.user_id, session.id, detail=f"booking={booking.id}")
            return booking
