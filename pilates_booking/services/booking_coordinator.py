"""
Booking transaction coordinator.

Answers a single booking request inside one open transaction:

    Validating -> Rejected | Confirmed | Waitlisted

All validation and entitlement checks run before the first write. Once a slot
is reserved, booking row and credit move together; any later failure rolls the
whole transaction back. Reminder notifications are only recorded here and are
dispatched by the engine after commit.
"""
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from pilates_booking.core.config import Settings, get_settings
from pilates_booking.core.exceptions import (
    DuplicateBookingError,
    NotFoundError,
    PastClassError,
    PermissionDeniedError,
    ValidationError,
)
from pilates_booking.core.identity import Actor
from pilates_booking.core.logging_config import log_booking_event
from pilates_booking.repositories.base import (
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BookingData,
    BookingRepository,
    ClassSessionData,
    SubscriptionData,
    WaitlistEntryData,
)
from pilates_booking.services.capacity_ledger import CapacityLedger
from pilates_booking.services.notifications import NotificationEvent, reminder_event
from pilates_booking.services.results import BookingResult
from pilates_booking.services.subscription_credit import SubscriptionCreditAccount
from pilates_booking.services.waitlist_queue import WaitlistQueue

logger = logging.getLogger(__name__)


class BookingTransactionCoordinator:
    def __init__(
        self,
        repo: BookingRepository,
        settings: Optional[Settings] = None,
        events: Optional[List[NotificationEvent]] = None
    ):
        self.repo = repo
        self.settings = settings or get_settings()
        self.events: List[NotificationEvent] = events if events is not None else []
        self.capacity = CapacityLedger(repo)
        self.credits = SubscriptionCreditAccount(repo)
        self.waitlist = WaitlistQueue(repo, self.settings)

    def local_today(self, now: datetime) -> date:
        return now.astimezone(self.settings.tz).date()

    @staticmethod
    def authorize_for(actor: Actor, user_id: int) -> None:
        """Clients act only for themselves; staff may act for any member"""
        if not actor.can_act_for(user_id):
            raise PermissionDeniedError("Access denied")

    async def load_bookable_session(
        self,
        class_id: int,
        now: datetime,
        past_message: str = "Cannot book past classes"
    ) -> ClassSessionData:
        session = await self.repo.get_class_session(class_id)
        if session is None or not session.is_active:
            raise NotFoundError("Class not found or not available")
        if session.starts_at(self.settings.tz) <= now:
            raise PastClassError(past_message)
        return session

    async def ensure_not_booked(self, user_id: int, class_id: int) -> None:
        if await self.repo.find_user_booking(user_id, class_id):
            raise DuplicateBookingError("You already have a booking for this class")

        entry = await self.repo.find_waitlist_entry(user_id, class_id)
        if entry:
            raise DuplicateBookingError(
                f"You are already on the waitlist for this class (position #{entry.position}).",
                details={"waitlist_position": entry.position},
            )

    async def book_class(
        self,
        user_id: int,
        class_id: int,
        actor: Actor,
        now: datetime,
        override_restrictions: bool = False
    ) -> BookingResult:
        """
        Confirm a seat or queue the member.

        With ``override_restrictions`` staff seat a member without a subscription:
        no entitlement checks run and no credit is charged.
        """
        self.authorize_for(actor, user_id)
        if override_restrictions and not actor.is_staff:
            raise PermissionDeniedError("Only staff can override booking restrictions")
        await self.repo.lock_class(class_id)

        session = await self.load_bookable_session(class_id, now)
        await self.ensure_not_booked(user_id, class_id)
        account = None
        if not override_restrictions:
            account = await self.credits.resolve_for_booking(user_id, session, self.local_today(now))

        if await self.capacity.try_reserve_slot(class_id):
            booking = await self.confirm_seat(user_id, session, account, now)
            log_booking_event("book", user_id, class_id, detail=f"booking={booking.id}")
            return BookingResult.confirmed(class_id, booking.id)

        entry = await self.waitlist.enqueue(user_id, session, now)
        log_booking_event("waitlist", user_id, class_id, detail=f"position={entry.position}")
        return BookingResult.waitlisted(class_id, entry.id, entry.position)

    async def confirm_seat(
        self,
        user_id: int,
        session: ClassSessionData,
        account: Optional[SubscriptionData],
        now: datetime
    ) -> BookingData:
        """Write the booking and consume the credit for an already reserved slot"""
        booking = await self.repo.insert_booking(
            user_id=user_id,
            class_id=session.id,
            subscription_id=account.id if account else None,
            created_at=now,
        )
        if account is not None:
            await self.credits.reserve(account.id)
        self.queue_reminder(user_id, session, now)
        return booking

    def queue_reminder(self, user_id: int, session: ClassSessionData, now: datetime) -> None:
        minutes = self.settings.reminder_minutes
        when = session.starts_at(self.settings.tz) - timedelta(minutes=minutes)
        if when <= now:
            return
        self.events.append(reminder_event(
            user_id,
            session.id,
            when,
            f"Reminder: Your {session.name} class starts in {minutes} minutes!",
        ))

    async def join_waitlist(
        self,
        user_id: int,
        class_id: int,
        actor: Actor,
        now: datetime
    ) -> Tuple[WaitlistEntryData, ClassSessionData]:
        self.authorize_for(actor, user_id)
        await self.repo.lock_class(class_id)

        session = await self.load_bookable_session(
            class_id, now, past_message="Cannot join waitlist for past classes"
        )
        await self.ensure_not_booked(user_id, class_id)
        await self.credits.resolve_for_booking(user_id, session, self.local_today(now))

        entry = await self.waitlist.enqueue(user_id, session, now)
        log_booking_event("waitlist", user_id, class_id, detail=f"position={entry.position}")
        return entry, session

    async def leave_waitlist(self, entry_id: int, actor: Actor) -> WaitlistEntryData:
        entry = await self.repo.get_waitlist_entry(entry_id)
        if entry is None:
            raise NotFoundError("Waitlist entry not found")
        self.authorize_for(actor, entry.user_id)

        await self.repo.lock_class(entry.class_id)
        removed = await self.waitlist.remove(entry_id)
        log_booking_event("leave_waitlist", removed.user_id, removed.class_id)
        return removed

    async def check_in(self, booking_id: int, actor: Actor, now: datetime) -> BookingData:
        if not actor.is_staff:
            raise PermissionDeniedError("Only staff can check members in")

        booking = await self.repo.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        await self.repo.lock_class(booking.class_id)

        if booking.status != BOOKING_CONFIRMED:
            raise ValidationError("Only confirmed bookings can be checked in")
        if booking.checked_in:
            raise ValidationError("User is already checked in")

        updated = await self.repo.update_booking(booking_id, checked_in=True, check_in_time=now)
        log_booking_event("check_in", booking.user_id, booking.class_id, detail=f"by={actor.user_id}")
        return updated

    async def complete_booking(self, booking_id: int, actor: Actor, now: datetime) -> BookingData:
        """Close out an attended booking once the class has started.

        A completed booking no longer holds a seat, so the slot is released.
        Nobody is promoted: the class can no longer be booked.
        """
        if not actor.is_staff:
            raise PermissionDeniedError("Only staff can complete bookings")

        booking = await self.repo.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        await self.repo.lock_class(booking.class_id)

        if booking.status != BOOKING_CONFIRMED:
            raise ValidationError("Only confirmed bookings can be completed")
        session = await self.repo.get_class_session(booking.class_id)
        if session is not None and session.starts_at(self.settings.tz) > now:
            raise ValidationError("Cannot complete a booking before the class starts")

        updated = await self.repo.update_booking(booking_id, status=BOOKING_COMPLETED)
        await self.capacity.release_slot(booking.class_id)
        log_booking_event("complete", booking.user_id, booking.class_id, detail=f"by={actor.user_id}")
        return updated
