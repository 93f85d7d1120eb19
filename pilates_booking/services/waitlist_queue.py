"""
FIFO waitlist per class session.

Positions of a class are always the gapless sequence 1..N: every removal
shifts the entries behind it one place forward.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pilates_booking.core.config import Settings, get_settings
from pilates_booking.core.exceptions import (
    DuplicateBookingError,
    NotFoundError,
    ValidationError,
    WaitlistClosedError,
)
from pilates_booking.repositories.base import (
    BookingRepository,
    ClassSessionData,
    WaitlistEntryData,
)

logger = logging.getLogger(__name__)


class WaitlistQueue:
    def __init__(self, repo: BookingRepository, settings: Optional[Settings] = None):
        self.repo = repo
        self.settings = settings or get_settings()

    @property
    def close_window(self) -> timedelta:
        return timedelta(hours=self.settings.waitlist_close_hours)

    def is_closed(self, session: ClassSessionData, now: datetime) -> bool:
        """Waitlists close a fixed time before the class starts"""
        return now >= session.starts_at(self.settings.tz) - self.close_window

    async def enqueue(
        self,
        user_id: int,
        session: ClassSessionData,
        now: datetime
    ) -> WaitlistEntryData:
        if await self.repo.count_confirmed_bookings(session.id) < session.capacity:
            raise ValidationError(
                "Class has available spots. Please book directly instead of joining waitlist."
            )

        if await self.repo.find_user_booking(user_id, session.id):
            raise DuplicateBookingError("You are already booked for this class")

        existing = await self.repo.find_waitlist_entry(user_id, session.id)
        if existing:
            raise DuplicateBookingError(
                f"You are already on the waitlist for this class (position #{existing.position}).",
                details={"waitlist_position": existing.position},
            )

        if self.is_closed(session, now):
            raise WaitlistClosedError(
                f"The waitlist closes {self.settings.waitlist_close_hours:g} hours before class start"
            )

        position = await self.repo.max_waitlist_position(session.id) + 1
        entry = await self.repo.insert_waitlist_entry(
            user_id=user_id,
            class_id=session.id,
            position=position,
            created_at=now,
        )
        logger.info("User %s joined waitlist of class %s at position %s", user_id, session.id, position)
        return entry

    async def peek(self, class_id: int) -> Optional[WaitlistEntryData]:
        entries = await self.repo.list_waitlist(class_id)
        return entries[0] if entries else None

    async def dequeue(self, class_id: int) -> Optional[WaitlistEntryData]:
        """Remove and return the head of the queue"""
        head = await self.peek(class_id)
        if head is None:
            return None
        await self._delete_and_close_gap(head)
        return head

    async def remove(self, entry_id: int) -> WaitlistEntryData:
        entry = await self.repo.get_waitlist_entry(entry_id)
        if entry is None:
            raise NotFoundError("Waitlist entry not found")
        await self._delete_and_close_gap(entry)
        return entry

    async def entries(self, class_id: int) -> List[WaitlistEntryData]:
        return await self.repo.list_waitlist(class_id)

    async def clear(self, class_id: int) -> int:
        return await self.repo.delete_waitlist_for_class(class_id)

    async def prune_class(self, session: ClassSessionData, now: datetime) -> int:
        """Drop the whole waitlist of one class once it has closed"""
        if session.is_active and not self.is_closed(session, now):
            return 0
        removed = await self.clear(session.id)
        if removed:
            logger.info("Pruned %s waitlist entries of class %s", removed, session.id)
        return removed

    async def prune_closing(self, now: datetime) -> int:
        """Drop waitlists of every class starting within the close window"""
        horizon = (now.astimezone(self.settings.tz) + self.close_window).date()
        removed = 0
        for session in await self.repo.list_waitlisted_sessions(horizon):
            removed += await self.prune_class(session, now)
        return removed

    async def _delete_and_close_gap(self, entry: WaitlistEntryData) -> None:
        if not await self.repo.delete_waitlist_entry(entry.id):
            raise NotFoundError("Waitlist entry not found")
        await self.repo.shift_waitlist_after(entry.class_id, entry.position)
