"""
Tests for class creation, rescheduling and class cancellation.
"""
from datetime import time

import pytest

from pilates_booking.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ScheduleConflictError,
    ValidationError,
)
from pilates_booking.services.schedule_service import ScheduleService
from tests.conftest import (
    ADMIN,
    CLASS_DAY,
    INSTRUCTOR,
    INSTRUCTOR_ID,
    NOW,
    RECEPTION,
    add_class,
    add_subscription,
    client,
    snapshot,
)


@pytest.fixture
def schedule(factory, settings):
    return ScheduleService(factory, settings)


async def _create(schedule, actor=RECEPTION, **overrides):
    fields = {
        "name": "Mat Basics",
        "instructor_id": INSTRUCTOR_ID,
        "day": CLASS_DAY,
        "start_time": "09:00",
        "duration_minutes": 60,
        "capacity": 8,
        "equipment_type": "mat",
        "room": "Mat Room",
    }
    fields.update(overrides)
    return await schedule.create_class_session(actor, **fields)


class TestCreateClassSession:
    async def test_creates_active_class(self, schedule):
        session = await _create(schedule, name="  Mat Basics  ")

        assert session.id is not None
        assert session.name == "Mat Basics"
        assert session.start_time == time(9, 0)
        assert session.enrolled == 0
        assert session.status == "active"
        assert session.room == "Mat Room"

    async def test_clients_cannot_create(self, schedule):
        with pytest.raises(PermissionDeniedError):
            await _create(schedule, actor=client(1))

    async def test_instructor_can_create(self, schedule):
        session = await _create(schedule, actor=INSTRUCTOR)

        assert session.instructor_id == INSTRUCTOR_ID

    async def test_validation_collects_every_error(self, schedule):
        with pytest.raises(ValidationError) as exc:
            await _create(schedule, duration_minutes=5, capacity=0, start_time="25:00", category="vip")

        errors = exc.value.details["errors"]
        assert "Duration must be between 15-180 minutes" in errors
        assert "Capacity must be between 1-50" in errors
        assert "Time must be in HH:MM format" in errors
        assert "Category must be personal or group" in errors

    async def test_instructor_conflict_is_rejected(self, schedule):
        existing = await _create(schedule, start_time="09:30", duration_minutes=30)

        with pytest.raises(ScheduleConflictError) as exc:
            await _create(schedule, room="Studio B")

        assert exc.value.conflict.class_id == existing.id
        assert exc.value.conflict.end_time == "10:00"
        assert exc.value.message.startswith("Scheduling conflict: instructor 100")

    async def test_room_conflict_is_rejected(self, schedule):
        await _create(schedule)

        with pytest.raises(ScheduleConflictError) as exc:
            await _create(schedule, instructor_id=55, start_time="09:45")

        assert exc.value.conflict.resource_kind == "room"
        assert exc.value.message.startswith("Room conflict: Mat Room")

    async def test_classes_without_room_share_the_slot(self, schedule):
        await _create(schedule, room=None)

        session = await _create(schedule, instructor_id=55, room=None)

        assert session.room is None

    async def test_back_to_back_classes_are_allowed(self, schedule):
        await _create(schedule)

        session = await _create(schedule, start_time="10:00")

        assert session.start_time == time(10, 0)


class TestRescheduleClassSession:
    async def test_moves_class(self, schedule):
        session = await _create(schedule)

        moved = await schedule.reschedule_class_session(
            ADMIN, session.id, start_time="11:15", duration_minutes=45
        )

        assert moved.start_time == time(11, 15)
        assert moved.duration_minutes == 45

    async def test_overlapping_itself_is_not_a_conflict(self, schedule):
        session = await _create(schedule)

        moved = await schedule.reschedule_class_session(RECEPTION, session.id, start_time="09:30")

        assert moved.start_time == time(9, 30)

    async def test_conflict_with_other_class(self, schedule):
        await _create(schedule)
        later = await _create(schedule, start_time="11:00")

        with pytest.raises(ScheduleConflictError):
            await schedule.reschedule_class_session(RECEPTION, later.id, start_time="09:30")

    async def test_empty_room_clears_room(self, schedule):
        session = await _create(schedule)

        moved = await schedule.reschedule_class_session(RECEPTION, session.id, room="")

        assert moved.room is None

    async def test_capacity_cannot_drop_below_enrolled(self, schedule, engine, factory):
        session = await _create(schedule, capacity=3, equipment_type="reformer")
        for user_id in (1, 2):
            await add_subscription(factory, user_id)
            await engine.book_class(user_id, session.id, now=NOW)

        with pytest.raises(ValidationError):
            await schedule.reschedule_class_session(RECEPTION, session.id, capacity=1)

    async def test_only_front_desk_reschedules(self, schedule):
        session = await _create(schedule)

        with pytest.raises(PermissionDeniedError):
            await schedule.reschedule_class_session(INSTRUCTOR, session.id, start_time="10:00")

    async def test_unknown_class(self, schedule):
        with pytest.raises(NotFoundError):
            await schedule.reschedule_class_session(RECEPTION, 999, start_time="10:00")


class TestCancelClassSession:
    async def test_cancel_drops_waitlist_and_keeps_bookings(self, schedule, engine, factory):
        session = await add_class(factory, capacity=1)
        for user_id in (1, 2):
            await add_subscription(factory, user_id)
            await engine.book_class(user_id, session.id, now=NOW)

        cancelled = await schedule.cancel_class_session(INSTRUCTOR, session.id, now=NOW)

        assert cancelled.status == "cancelled"
        state = await snapshot(factory, session.id)
        assert [b.user_id for b in state["confirmed"]] == [1]
        assert state["waitlist"] == []
        rebook = await engine.book_class(2, session.id, now=NOW)
        assert rebook.error_code == "NotFoundError"

    async def test_other_instructor_cannot_cancel(self, schedule, factory):
        session = await add_class(factory, instructor_id=55)

        with pytest.raises(PermissionDeniedError):
            await schedule.cancel_class_session(INSTRUCTOR, session.id, now=NOW)

    async def test_cancelled_class_frees_the_slot(self, schedule):
        session = await _create(schedule)
        await schedule.cancel_class_session(RECEPTION, session.id, now=NOW)

        replacement = await _create(schedule)

        assert replacement.id != session.id

    async def test_cancel_twice(self, schedule):
        session = await _create(schedule)
        await schedule.cancel_class_session(RECEPTION, session.id, now=NOW)

        with pytest.raises(ValidationError):
            await schedule.cancel_class_session(RECEPTION, session.id, now=NOW)
