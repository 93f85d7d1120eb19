"""
Shared fixtures for the booking engine tests.

Core services run against both repository implementations through the
parametrised ``factory`` fixture: the in-memory store and a SQLite file
database (aiosqlite).
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List

import pytest

from pilates_booking.core.config import Settings
from pilates_booking.core.identity import Actor, ROLE_ADMIN, ROLE_INSTRUCTOR, ROLE_RECEPTION
from pilates_booking.db.database import create_engine, create_session_factory, init_models
from pilates_booking.repositories.base import ClassSessionData, RepositoryFactory, SubscriptionData
from pilates_booking.repositories.memory_repository import InMemoryRepositoryFactory
from pilates_booking.repositories.sql_repository import SqlAlchemyRepositoryFactory
from pilates_booking.services.booking_engine import BookingEngine
from pilates_booking.services.notifications import NotificationDispatcher

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
CLASS_DAY = date(2026, 3, 5)
CLASS_START = datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)

INSTRUCTOR_ID = 100
RECEPTION = Actor(900, ROLE_RECEPTION)
ADMIN = Actor(901, ROLE_ADMIN)
INSTRUCTOR = Actor(INSTRUCTOR_ID, ROLE_INSTRUCTOR)


def client(user_id: int) -> Actor:
    return Actor(user_id)


class RecordingDispatcher(NotificationDispatcher):
    """Keeps every dispatched notification in memory"""

    def __init__(self):
        self.reminders: List[tuple] = []
        self.promotions: List[tuple] = []

    async def schedule_reminder(self, user_id, class_id, when_iso, message):
        self.reminders.append((user_id, class_id, when_iso, message))

    async def notify_promoted(self, user_id, class_id, message):
        self.promotions.append((user_id, class_id, message))


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite+aiosqlite://", create_tables=False)


@pytest.fixture
def memory_factory() -> InMemoryRepositoryFactory:
    return InMemoryRepositoryFactory()


@pytest.fixture
async def sqlite_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    await init_models(engine)
    yield SqlAlchemyRepositoryFactory(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture(params=["memory", "sqlite"])
async def factory(request, tmp_path):
    if request.param == "memory":
        yield InMemoryRepositoryFactory()
        return
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    await init_models(engine)
    yield SqlAlchemyRepositoryFactory(create_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def engine(factory, dispatcher, settings) -> BookingEngine:
    return BookingEngine(factory, dispatcher, settings)


async def add_class(factory: RepositoryFactory, **overrides) -> ClassSessionData:
    fields = {
        "name": "Reformer Flow",
        "date": CLASS_DAY,
        "start_time": time(9, 0),
        "duration_minutes": 60,
        "capacity": 1,
        "instructor_id": INSTRUCTOR_ID,
        "equipment_type": "reformer",
        "category": "group",
        "status": "active",
        "room": "Reformer Room",
    }
    fields.update(overrides)
    async with factory.transaction() as repo:
        return await repo.add_class_session(**fields)


async def add_subscription(factory: RepositoryFactory, user_id: int, **overrides) -> SubscriptionData:
    fields = {
        "user_id": user_id,
        "plan_id": 1,
        "remaining_classes": 5,
        "status": "active",
        "start_date": date(2026, 1, 1),
        "end_date": date(2026, 12, 31),
        "equipment_access": "both",
        "category": "group",
    }
    fields.update(overrides)
    async with factory.transaction() as repo:
        return await repo.add_subscription(**fields)


async def snapshot(factory: RepositoryFactory, class_id: int) -> Dict:
    """Current enrolled count, bookings and waitlist of one class"""
    async with factory.transaction() as repo:
        session = await repo.get_class_session(class_id)
        bookings = await repo.list_bookings_for_class(class_id)
        waitlist = await repo.list_waitlist(class_id)
    return {
        "enrolled": session.enrolled,
        "confirmed": [b for b in bookings if b.status == "confirmed"],
        "waitlist": waitlist,
        "positions": [e.position for e in waitlist],
        "waiting_users": [e.user_id for e in waitlist],
    }


async def remaining(factory: RepositoryFactory, subscription_id: int) -> int:
    async with factory.transaction() as repo:
        account = await repo.get_subscription(subscription_id)
    return account.remaining_classes


def hours_before_class(hours: float) -> datetime:
    return CLASS_START - timedelta(hours=hours)
