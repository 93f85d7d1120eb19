"""
Repository contract for the booking engine.

The coordinator and cascade only ever talk to a ``BookingRepository`` bound to
one open transaction. A ``RepositoryFactory`` opens those transactions:

    async with factory.transaction() as repo:
        ...  # commit on success, rollback on any exception

Two implementations exist: SQLAlchemy (SQLite / PostgreSQL) and an in-memory
store. Records crossing this boundary are plain dataclasses, never ORM rows.
"""
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Awaitable, Callable, List, Optional, TypeVar

T = TypeVar("T")

CLASS_ACTIVE = "active"
CLASS_CANCELLED = "cancelled"

BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"
BOOKING_COMPLETED = "completed"

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_PAUSED = "paused"
SUBSCRIPTION_CANCELLED = "cancelled"
SUBSCRIPTION_EXPIRED = "expired"

CATEGORY_GROUP = "group"
CATEGORY_PERSONAL = "personal"

EQUIPMENT_MAT = "mat"
EQUIPMENT_REFORMER = "reformer"
EQUIPMENT_BOTH = "both"


@dataclass
class ClassSessionData:
    """Class session as seen by the engine"""
    id: int
    name: str
    date: date
    start_time: time
    duration_minutes: int
    capacity: int
    enrolled: int
    instructor_id: int
    equipment_type: str = EQUIPMENT_MAT
    category: str = CATEGORY_GROUP
    status: str = CLASS_ACTIVE
    room: Optional[str] = None

    def starts_at(self, tz: tzinfo) -> datetime:
        return datetime.combine(self.date, self.start_time, tzinfo=tz)

    def ends_at(self, tz: tzinfo) -> datetime:
        return self.starts_at(tz) + timedelta(minutes=self.duration_minutes)

    @property
    def is_active(self) -> bool:
        return self.status == CLASS_ACTIVE


@dataclass
class BookingData:
    id: int
    user_id: int
    class_id: int
    subscription_id: Optional[int]
    status: str
    created_at: datetime
    checked_in: bool = False
    check_in_time: Optional[datetime] = None


@dataclass
class WaitlistEntryData:
    id: int
    user_id: int
    class_id: int
    position: int
    created_at: datetime


@dataclass
class SubscriptionData:
    id: int
    user_id: int
    plan_id: Optional[int]
    remaining_classes: int
    status: str
    start_date: date
    end_date: date
    equipment_access: str = EQUIPMENT_MAT
    category: str = CATEGORY_GROUP
    created_at: Optional[datetime] = None


class BookingRepository(ABC):
    """Data access for one open transaction."""

    # ---- class sessions -------------------------------------------------

    @abstractmethod
    async def lock_class(self, class_id: int) -> None:
        """Serialize writers of this class until the transaction ends."""

    @abstractmethod
    async def get_class_session(self, class_id: int) -> Optional[ClassSessionData]:
        ...

    @abstractmethod
    async def list_active_sessions_on(
        self,
        day: date,
        *,
        instructor_id: Optional[int] = None,
        room: Optional[str] = None,
        exclude_class_id: Optional[int] = None,
    ) -> List[ClassSessionData]:
        """Active sessions on ``day``, filtered by instructor and/or room."""

    @abstractmethod
    async def add_class_session(self, **fields) -> ClassSessionData:
        ...

    @abstractmethod
    async def update_class_session(self, class_id: int, **fields) -> Optional[ClassSessionData]:
        ...

    @abstractmethod
    async def try_increment_enrolled(self, class_id: int) -> bool:
        """Atomically ``enrolled += 1`` if ``enrolled < capacity`` and the class is active."""

    @abstractmethod
    async def decrement_enrolled(self, class_id: int) -> bool:
        """``enrolled -= 1`` unless already zero."""

    @abstractmethod
    async def list_waitlisted_sessions(self, until: date) -> List[ClassSessionData]:
        """Sessions dated on or before ``until`` that still have waitlist entries."""

    # ---- bookings -------------------------------------------------------

    @abstractmethod
    async def get_booking(self, booking_id: int) -> Optional[BookingData]:
        ...

    @abstractmethod
    async def find_user_booking(self, user_id: int, class_id: int) -> Optional[BookingData]:
        """Any booking row for the pair, whatever its status"""

    @abstractmethod
    async def count_confirmed_bookings(self, class_id: int) -> int:
        ...

    @abstractmethod
    async def insert_booking(
        self,
        *,
        user_id: int,
        class_id: int,
        subscription_id: Optional[int],
        created_at: datetime,
    ) -> BookingData:
        ...

    @abstractmethod
    async def delete_booking(self, booking_id: int) -> bool:
        ...

    @abstractmethod
    async def update_booking(self, booking_id: int, **fields) -> Optional[BookingData]:
        ...

    @abstractmethod
    async def list_bookings_for_class(self, class_id: int) -> List[BookingData]:
        ...

    # ---- waitlist -------------------------------------------------------

    @abstractmethod
    async def get_waitlist_entry(self, entry_id: int) -> Optional[WaitlistEntryData]:
        ...

    @abstractmethod
    async def find_waitlist_entry(self, user_id: int, class_id: int) -> Optional[WaitlistEntryData]:
        ...

    @abstractmethod
    async def list_waitlist(self, class_id: int) -> List[WaitlistEntryData]:
        """Entries ordered by position."""

    @abstractmethod
    async def max_waitlist_position(self, class_id: int) -> int:
        """0 when the waitlist is empty."""

    @abstractmethod
    async def insert_waitlist_entry(
        self, *, user_id: int, class_id: int, position: int, created_at: datetime
    ) -> WaitlistEntryData:
        ...

    @abstractmethod
    async def delete_waitlist_entry(self, entry_id: int) -> bool:
        ...

    @abstractmethod
    async def shift_waitlist_after(self, class_id: int, position: int) -> int:
        """Decrement every position greater than ``position``; returns rows moved."""

    @abstractmethod
    async def delete_waitlist_for_class(self, class_id: int) -> int:
        ...

    # ---- subscriptions --------------------------------------------------

    @abstractmethod
    async def get_subscription(self, subscription_id: int) -> Optional[SubscriptionData]:
        ...

    @abstractmethod
    async def list_subscriptions_for_user(self, user_id: int) -> List[SubscriptionData]:
        """Newest first."""

    @abstractmethod
    async def add_subscription(self, **fields) -> SubscriptionData:
        ...

    @abstractmethod
    async def try_decrement_remaining(self, subscription_id: int) -> bool:
        """Atomically ``remaining_classes -= 1`` if it is above zero."""

    @abstractmethod
    async def increment_remaining(self, subscription_id: int) -> bool:
        ...

    @abstractmethod
    async def expire_subscriptions_ending_before(self, day: date) -> int:
        """Mark active subscriptions whose end date is before ``day`` as expired."""

    # ---- transaction control -------------------------------------------

    @abstractmethod
    def savepoint(self) -> AbstractAsyncContextManager[None]:
        """Nested unit that rolls back alone when its body raises."""


class RepositoryFactory(ABC):
    """Opens transactions; the only way services get a repository."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[BookingRepository]:
        """Commit when the body completes, roll back when it raises.

        Storage errors surface as ``TransactionFailure``.
        """


async def with_transaction(
    factory: RepositoryFactory,
    fn: Callable[[BookingRepository], Awaitable[T]],
) -> T:
    """Run ``fn`` inside one transaction and return its result.

    All of ``fn``'s writes are applied together or not at all.
    """
    async with factory.transaction() as repo:
        return await fn(repo)


__all__ = [
    "BookingRepository",
    "RepositoryFactory",
    "with_transaction",
    "ClassSessionData",
    "BookingData",
    "WaitlistEntryData",
    "SubscriptionData",
]
