"""
In-memory implementation of the booking repository.

Used by tests and local runs without a database. A store-wide ``asyncio.Lock``
is held for the whole transaction, so transactions run one at a time. Each
transaction works on a deep copy of the store that replaces the committed
state only when the block completes.
"""
import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from pilates_booking.core.exceptions import TransactionFailure
from pilates_booking.repositories.base import (
    BOOKING_CONFIRMED,
    CLASS_ACTIVE,
    SUBSCRIPTION_ACTIVE,
    SUBSCRIPTION_EXPIRED,
    BookingData,
    BookingRepository,
    ClassSessionData,
    RepositoryFactory,
    SubscriptionData,
    WaitlistEntryData,
)


@dataclass
class _Store:
    classes: Dict[int, ClassSessionData] = field(default_factory=dict)
    bookings: Dict[int, BookingData] = field(default_factory=dict)
    waitlist: Dict[int, WaitlistEntryData] = field(default_factory=dict)
    subscriptions: Dict[int, SubscriptionData] = field(default_factory=dict)
    last_ids: Dict[str, int] = field(default_factory=dict)

    def next_id(self, table: str) -> int:
        self.last_ids[table] = self.last_ids.get(table, 0) + 1
        return self.last_ids[table]


class InMemoryBookingRepository(BookingRepository):
    def __init__(self, store: _Store):
        self.store = store

    # class sessions

    async def lock_class(self, class_id: int) -> None:
        # the factory lock already covers the whole transaction
        return None

    async def get_class_session(self, class_id: int) -> Optional[ClassSessionData]:
        session = self.store.classes.get(class_id)
        return replace(session) if session else None

    async def list_active_sessions_on(
        self,
        day: date,
        *,
        instructor_id: Optional[int] = None,
        room: Optional[str] = None,
        exclude_class_id: Optional[int] = None,
    ) -> List[ClassSessionData]:
        sessions = [
            s for s in self.store.classes.values()
            if s.date == day
            and s.status == CLASS_ACTIVE
            and (instructor_id is None or s.instructor_id == instructor_id)
            and (room is None or s.room == room)
            and (exclude_class_id is None or s.id != exclude_class_id)
        ]
        return [replace(s) for s in sorted(sessions, key=lambda s: (s.start_time, s.id))]

    async def add_class_session(self, **fields) -> ClassSessionData:
        fields.setdefault("enrolled", 0)
        session = ClassSessionData(id=self.store.next_id("classes"), **fields)
        self.store.classes[session.id] = session
        return replace(session)

    async def update_class_session(self, class_id: int, **fields) -> Optional[ClassSessionData]:
        session = self.store.classes.get(class_id)
        if not session:
            return None
        for key, value in fields.items():
            setattr(session, key, value)
        return replace(session)

    async def try_increment_enrolled(self, class_id: int) -> bool:
        session = self.store.classes.get(class_id)
        if not session or session.status != CLASS_ACTIVE or session.enrolled >= session.capacity:
            return False
        session.enrolled += 1
        return True

    async def decrement_enrolled(self, class_id: int) -> bool:
        session = self.store.classes.get(class_id)
        if not session or session.enrolled <= 0:
            return False
        session.enrolled -= 1
        return True

    async def list_waitlisted_sessions(self, until: date) -> List[ClassSessionData]:
        waiting = {e.class_id for e in self.store.waitlist.values()}
        sessions = [
            s for s in self.store.classes.values()
            if s.id in waiting and s.date <= until
        ]
        return [replace(s) for s in sorted(sessions, key=lambda s: (s.date, s.start_time))]

    # bookings

    async def get_booking(self, booking_id: int) -> Optional[BookingData]:
        booking = self.store.bookings.get(booking_id)
        return replace(booking) if booking else None

    async def find_user_booking(self, user_id: int, class_id: int) -> Optional[BookingData]:
        for booking in self.store.bookings.values():
            if booking.user_id == user_id and booking.class_id == class_id:
                return replace(booking)
        return None

    async def count_confirmed_bookings(self, class_id: int) -> int:
        return sum(
            1 for b in self.store.bookings.values()
            if b.class_id == class_id and b.status == BOOKING_CONFIRMED
        )

    async def insert_booking(
        self,
        *,
        user_id: int,
        class_id: int,
        subscription_id: Optional[int],
        created_at: datetime,
    ) -> BookingData:
        if any(b.user_id == user_id and b.class_id == class_id for b in self.store.bookings.values()):
            raise TransactionFailure(f"duplicate booking for user {user_id} in class {class_id}")
        booking = BookingData(
            id=self.store.next_id("bookings"),
            user_id=user_id,
            class_id=class_id,
            subscription_id=subscription_id,
            status=BOOKING_CONFIRMED,
            created_at=created_at,
        )
        self.store.bookings[booking.id] = booking
        return replace(booking)

    async def delete_booking(self, booking_id: int) -> bool:
        return self.store.bookings.pop(booking_id, None) is not None

    async def update_booking(self, booking_id: int, **fields) -> Optional[BookingData]:
        booking = self.store.bookings.get(booking_id)
        if not booking:
            return None
        for key, value in fields.items():
            setattr(booking, key, value)
        return replace(booking)

    async def list_bookings_for_class(self, class_id: int) -> List[BookingData]:
        bookings = [b for b in self.store.bookings.values() if b.class_id == class_id]
        return [replace(b) for b in sorted(bookings, key=lambda b: (b.created_at, b.id))]

    # waitlist

    async def get_waitlist_entry(self, entry_id: int) -> Optional[WaitlistEntryData]:
        entry = self.store.waitlist.get(entry_id)
        return replace(entry) if entry else None

    async def find_waitlist_entry(self, user_id: int, class_id: int) -> Optional[WaitlistEntryData]:
        for entry in self.store.waitlist.values():
            if entry.user_id == user_id and entry.class_id == class_id:
                return replace(entry)
        return None

    async def list_waitlist(self, class_id: int) -> List[WaitlistEntryData]:
        entries = [e for e in self.store.waitlist.values() if e.class_id == class_id]
        return [replace(e) for e in sorted(entries, key=lambda e: e.position)]

    async def max_waitlist_position(self, class_id: int) -> int:
        return max(
            (e.position for e in self.store.waitlist.values() if e.class_id == class_id),
            default=0,
        )

    async def insert_waitlist_entry(
        self, *, user_id: int, class_id: int, position: int, created_at: datetime
    ) -> WaitlistEntryData:
        if await self.find_waitlist_entry(user_id, class_id):
            raise TransactionFailure(f"user {user_id} already waiting for class {class_id}")
        entry = WaitlistEntryData(
            id=self.store.next_id("waitlist"),
            user_id=user_id,
            class_id=class_id,
            position=position,
            created_at=created_at,
        )
        self.store.waitlist[entry.id] = entry
        return replace(entry)

    async def delete_waitlist_entry(self, entry_id: int) -> bool:
        return self.store.waitlist.pop(entry_id, None) is not None

    async def shift_waitlist_after(self, class_id: int, position: int) -> int:
        moved = 0
        for entry in self.store.waitlist.values():
            if entry.class_id == class_id and entry.position > position:
                entry.position -= 1
                moved += 1
        return moved

    async def delete_waitlist_for_class(self, class_id: int) -> int:
        doomed = [e.id for e in self.store.waitlist.values() if e.class_id == class_id]
        for entry_id in doomed:
            del self.store.waitlist[entry_id]
        return len(doomed)

    # subscriptions

    async def get_subscription(self, subscription_id: int) -> Optional[SubscriptionData]:
        account = self.store.subscriptions.get(subscription_id)
        return replace(account) if account else None

    async def list_subscriptions_for_user(self, user_id: int) -> List[SubscriptionData]:
        accounts = [a for a in self.store.subscriptions.values() if a.user_id == user_id]
        accounts.sort(key=lambda a: (a.created_at, a.id), reverse=True)
        return [replace(a) for a in accounts]

    async def add_subscription(self, **fields) -> SubscriptionData:
        fields.setdefault("created_at", datetime.now(timezone.utc))
        account = SubscriptionData(id=self.store.next_id("subscriptions"), **fields)
        self.store.subscriptions[account.id] = account
        return replace(account)

    async def try_decrement_remaining(self, subscription_id: int) -> bool:
        account = self.store.subscriptions.get(subscription_id)
        if not account or account.remaining_classes <= 0:
            return False
        account.remaining_classes -= 1
        return True

    async def increment_remaining(self, subscription_id: int) -> bool:
        account = self.store.subscriptions.get(subscription_id)
        if not account:
            return False
        account.remaining_classes += 1
        return True

    async def expire_subscriptions_ending_before(self, day: date) -> int:
        expired = 0
        for account in self.store.subscriptions.values():
            if account.status == SUBSCRIPTION_ACTIVE and account.end_date < day:
                account.status = SUBSCRIPTION_EXPIRED
                expired += 1
        return expired

    # transaction control

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        snapshot = copy.deepcopy(self.store)
        try:
            yield
        except BaseException:
            self.store = snapshot
            raise


class InMemoryRepositoryFactory(RepositoryFactory):
    def __init__(self):
        self._store = _Store()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryBookingRepository]:
        async with self._lock:
            repo = InMemoryBookingRepository(copy.deepcopy(self._store))
            yield repo
            # only reached when the body completed
            self._store = repo.store
