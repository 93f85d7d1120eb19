"""
SQLAlchemy implementation of the booking repository.

Works on SQLite (aiosqlite) and PostgreSQL (asyncpg). Every method delegates to
the crud modules and maps ORM rows to the plain records of ``base``.
"""
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pilates_booking.core.conversions import ensure_aware
from pilates_booking.core.exceptions import TransactionFailure
from pilates_booking.crud import (
    bookingsCrud,
    classSessionCrud,
    subscriptionsCrud,
    waitlistCrud,
)
from pilates_booking.models import Booking, ClassSession, SubscriptionAccount, WaitlistEntry
from pilates_booking.repositories.base import (
    BookingData,
    BookingRepository,
    ClassSessionData,
    RepositoryFactory,
    SubscriptionData,
    WaitlistEntryData,
)

logger = logging.getLogger(__name__)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without an offset; they are stored as UTC
    if value is None:
        return None
    return ensure_aware(value, timezone.utc)


def _to_utc(value: datetime) -> datetime:
    return ensure_aware(value, timezone.utc).astimezone(timezone.utc)


def _class_to_data(row: ClassSession) -> ClassSessionData:
    return ClassSessionData(
        id=row.id,
        name=row.name,
        date=row.date,
        start_time=row.start_time,
        duration_minutes=row.duration_minutes,
        capacity=row.capacity,
        enrolled=row.enrolled,
        instructor_id=row.instructor_id,
        equipment_type=row.equipment_type,
        category=row.category,
        status=row.status,
        room=row.room,
    )


def _booking_to_data(row: Booking) -> BookingData:
    return BookingData(
        id=row.id,
        user_id=row.user_id,
        class_id=row.class_id,
        subscription_id=row.subscription_id,
        status=row.status,
        created_at=_utc(row.created_at),
        checked_in=bool(row.checked_in),
        check_in_time=_utc(row.check_in_time),
    )


def _waitlist_to_data(row: WaitlistEntry) -> WaitlistEntryData:
    return WaitlistEntryData(
        id=row.id,
        user_id=row.user_id,
        class_id=row.class_id,
        position=row.position,
        created_at=_utc(row.created_at),
    )


def _subscription_to_data(row: SubscriptionAccount) -> SubscriptionData:
    return SubscriptionData(
        id=row.id,
        user_id=row.user_id,
        plan_id=row.plan_id,
        remaining_classes=row.remaining_classes,
        status=row.status,
        start_date=row.start_date,
        end_date=row.end_date,
        equipment_access=row.equipment_access,
        category=row.category,
        created_at=_utc(row.created_at),
    )


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, db: AsyncSession):
        self.db = db

    @property
    def dialect(self) -> str:
        return self.db.bind.dialect.name

    # class sessions

    async def lock_class(self, class_id: int) -> None:
        if self.dialect == "postgresql":
            await self.db.execute(select(func.pg_advisory_xact_lock(class_id)))
        # SQLite transactions start with BEGIN IMMEDIATE and are already exclusive

    async def get_class_session(self, class_id: int) -> Optional[ClassSessionData]:
        row = await classSessionCrud.get_class_session_by_id(self.db, class_id)
        return _class_to_data(row) if row else None

    async def list_active_sessions_on(
        self,
        day: date,
        *,
        instructor_id: Optional[int] = None,
        room: Optional[str] = None,
        exclude_class_id: Optional[int] = None,
    ) -> List[ClassSessionData]:
        rows = await classSessionCrud.get_active_sessions_on_date(
            self.db, day,
            instructor_id=instructor_id,
            room=room,
            exclude_class_id=exclude_class_id,
        )
        return [_class_to_data(row) for row in rows]

    async def add_class_session(self, **fields) -> ClassSessionData:
        row = await classSessionCrud.create_class_session(self.db, **fields)
        return _class_to_data(row)

    async def update_class_session(self, class_id: int, **fields) -> Optional[ClassSessionData]:
        row = await classSessionCrud.update_class_session(self.db, class_id, **fields)
        return _class_to_data(row) if row else None

    async def try_increment_enrolled(self, class_id: int) -> bool:
        return await classSessionCrud.increment_enrolled_if_available(self.db, class_id)

    async def decrement_enrolled(self, class_id: int) -> bool:
        return await classSessionCrud.decrement_enrolled(self.db, class_id)

    async def list_waitlisted_sessions(self, until: date) -> List[ClassSessionData]:
        rows = await classSessionCrud.get_sessions_with_waitlist(self.db, until)
        return [_class_to_data(row) for row in rows]

    # bookings

    async def get_booking(self, booking_id: int) -> Optional[BookingData]:
        row = await bookingsCrud.get_booking_by_id(self.db, booking_id)
        return _booking_to_data(row) if row else None

    async def find_user_booking(self, user_id: int, class_id: int) -> Optional[BookingData]:
        row = await bookingsCrud.get_user_booking(self.db, user_id, class_id)
        return _booking_to_data(row) if row else None

    async def count_confirmed_bookings(self, class_id: int) -> int:
        return await bookingsCrud.count_confirmed_bookings(self.db, class_id)

    async def insert_booking(
        self,
        *,
        user_id: int,
        class_id: int,
        subscription_id: Optional[int],
        created_at: datetime,
    ) -> BookingData:
        row = await bookingsCrud.create_booking(
            self.db,
            user_id=user_id,
            class_id=class_id,
            subscription_id=subscription_id,
            created_at=_to_utc(created_at),
        )
        return _booking_to_data(row)

    async def delete_booking(self, booking_id: int) -> bool:
        return await bookingsCrud.delete_booking(self.db, booking_id)

    async def update_booking(self, booking_id: int, **fields) -> Optional[BookingData]:
        if fields.get("check_in_time") is not None:
            fields["check_in_time"] = _to_utc(fields["check_in_time"])
        row = await bookingsCrud.update_booking(self.db, booking_id, **fields)
        return _booking_to_data(row) if row else None

    async def list_bookings_for_class(self, class_id: int) -> List[BookingData]:
        rows = await bookingsCrud.get_class_bookings(self.db, class_id)
        return [_booking_to_data(row) for row in rows]

    # waitlist

    async def get_waitlist_entry(self, entry_id: int) -> Optional[WaitlistEntryData]:
        row = await waitlistCrud.get_waitlist_entry_by_id(self.db, entry_id)
        return _waitlist_to_data(row) if row else None

    async def find_waitlist_entry(self, user_id: int, class_id: int) -> Optional[WaitlistEntryData]:
        row = await waitlistCrud.get_user_waitlist_entry(self.db, user_id, class_id)
        return _waitlist_to_data(row) if row else None

    async def list_waitlist(self, class_id: int) -> List[WaitlistEntryData]:
        rows = await waitlistCrud.get_class_waitlist(self.db, class_id)
        return [_waitlist_to_data(row) for row in rows]

    async def max_waitlist_position(self, class_id: int) -> int:
        return await waitlistCrud.get_max_position(self.db, class_id)

    async def insert_waitlist_entry(
        self, *, user_id: int, class_id: int, position: int, created_at: datetime
    ) -> WaitlistEntryData:
        row = await waitlistCrud.create_waitlist_entry(
            self.db,
            user_id=user_id,
            class_id=class_id,
            position=position,
            created_at=_to_utc(created_at),
        )
        return _waitlist_to_data(row)

    async def delete_waitlist_entry(self, entry_id: int) -> bool:
        return await waitlistCrud.delete_waitlist_entry(self.db, entry_id)

    async def shift_waitlist_after(self, class_id: int, position: int) -> int:
        return await waitlistCrud.close_position_gap(self.db, class_id, position)

    async def delete_waitlist_for_class(self, class_id: int) -> int:
        return await waitlistCrud.delete_class_waitlist(self.db, class_id)

    # subscriptions

    async def get_subscription(self, subscription_id: int) -> Optional[SubscriptionData]:
        row = await subscriptionsCrud.get_subscription_by_id(self.db, subscription_id)
        return _subscription_to_data(row) if row else None

    async def list_subscriptions_for_user(self, user_id: int) -> List[SubscriptionData]:
        rows = await subscriptionsCrud.get_user_subscriptions(self.db, user_id)
        return [_subscription_to_data(row) for row in rows]

    async def add_subscription(self, **fields) -> SubscriptionData:
        if fields.get("created_at") is not None:
            fields["created_at"] = _to_utc(fields["created_at"])
        row = await subscriptionsCrud.create_subscription(self.db, **fields)
        return _subscription_to_data(row)

    async def try_decrement_remaining(self, subscription_id: int) -> bool:
        return await subscriptionsCrud.consume_class_credit(self.db, subscription_id)

    async def increment_remaining(self, subscription_id: int) -> bool:
        return await subscriptionsCrud.refund_class_credit(self.db, subscription_id)

    async def expire_subscriptions_ending_before(self, day: date) -> int:
        return await subscriptionsCrud.expire_lapsed_subscriptions(self.db, day)

    # transaction control

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        async with self.db.begin_nested():
            yield


class SqlAlchemyRepositoryFactory(RepositoryFactory):
    """One session and one database transaction per ``transaction()`` block"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlAlchemyBookingRepository]:
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    yield SqlAlchemyBookingRepository(db)
        except SQLAlchemyError as e:
            logger.error("Database transaction failed and was rolled back: %s", e)
            raise TransactionFailure(str(e)) from e
