"""
Tests for the capacity ledger and the waitlist queue.
"""
from datetime import timedelta

import pytest

from pilates_booking.core.exceptions import (
    DuplicateBookingError,
    NotFoundError,
    ValidationError,
    WaitlistClosedError,
)
from pilates_booking.services.capacity_ledger import CapacityLedger
from pilates_booking.services.waitlist_queue import WaitlistQueue
from tests.conftest import NOW, add_class, hours_before_class, snapshot


async def _fill(factory, session, user_ids):
    """Book ``user_ids`` straight into the class, bypassing credits"""
    async with factory.transaction() as repo:
        for user_id in user_ids:
            assert await repo.try_increment_enrolled(session.id)
            await repo.insert_booking(
                user_id=user_id, class_id=session.id, subscription_id=None, created_at=NOW
            )


async def _enqueue(factory, settings, session, user_ids, now=NOW):
    async with factory.transaction() as repo:
        queue = WaitlistQueue(repo, settings)
        return [await queue.enqueue(user_id, session, now) for user_id in user_ids]


class TestCapacityLedger:
    """Atomic slot accounting."""

    async def test_reserve_until_full(self, factory):
        session = await add_class(factory, capacity=2)

        async with factory.transaction() as repo:
            ledger = CapacityLedger(repo)
            results = [await ledger.try_reserve_slot(session.id) for _ in range(3)]

        assert results == [True, True, False]
        assert (await snapshot(factory, session.id))["enrolled"] == 2

    async def test_cancelled_class_has_no_slots(self, factory):
        session = await add_class(factory, capacity=5, status="cancelled")

        async with factory.transaction() as repo:
            assert await CapacityLedger(repo).try_reserve_slot(session.id) is False

    async def test_release_never_goes_below_zero(self, factory):
        session = await add_class(factory, capacity=2)

        async with factory.transaction() as repo:
            ledger = CapacityLedger(repo)
            await ledger.release_slot(session.id)

        assert (await snapshot(factory, session.id))["enrolled"] == 0

    async def test_is_full_counts_confirmed_bookings(self, factory):
        session = await add_class(factory, capacity=1)
        await _fill(factory, session, [1])

        async with factory.transaction() as repo:
            ledger = CapacityLedger(repo)
            assert await ledger.confirmed_count(session.id) == 1
            assert await ledger.is_full(session) is True


class TestWaitlistQueue:
    """FIFO queue with gapless positions."""

    async def test_enqueue_assigns_increasing_positions(self, factory, settings):
        session = await add_class(factory)
        await _fill(factory, session, [1])

        entries = await _enqueue(factory, settings, session, [2, 3, 4])

        assert [e.position for e in entries] == [1, 2, 3]

    async def test_enqueue_rejects_when_class_has_room(self, factory, settings):
        session = await add_class(factory, capacity=2)
        await _fill(factory, session, [1])

        with pytest.raises(ValidationError) as exc:
            await _enqueue(factory, settings, session, [2])
        assert "available spots" in exc.value.message

    async def test_enqueue_rejects_duplicates(self, factory, settings):
        session = await add_class(factory)
        await _fill(factory, session, [1])
        await _enqueue(factory, settings, session, [2])

        with pytest.raises(DuplicateBookingError):
            await _enqueue(factory, settings, session, [1])
        with pytest.raises(DuplicateBookingError) as exc:
            await _enqueue(factory, settings, session, [2])
        assert "position #1" in exc.value.message

    async def test_enqueue_rejects_inside_close_window(self, factory, settings):
        session = await add_class(factory)
        await _fill(factory, session, [1])

        with pytest.raises(WaitlistClosedError):
            await _enqueue(factory, settings, session, [2], now=hours_before_class(1.5))

    async def test_dequeue_returns_head_and_renumbers(self, factory, settings):
        session = await add_class(factory)
        await _fill(factory, session, [1])
        await _enqueue(factory, settings, session, [2, 3, 4])

        async with factory.transaction() as repo:
            head = await WaitlistQueue(repo, settings).dequeue(session.id)

        state = await snapshot(factory, session.id)
        assert head.user_id == 2
        assert state["waiting_users"] == [3, 4]
        assert state["positions"] == [1, 2]

    async def test_dequeue_empty_queue(self, factory, settings):
        session = await add_class(factory)

        async with factory.transaction() as repo:
            assert await WaitlistQueue(repo, settings).dequeue(session.id) is None

    async def test_remove_middle_entry_closes_gap(self, factory, settings):
        session = await add_class(factory)
        await _fill(factory, session, [1])
        entries = await _enqueue(factory, settings, session, [2, 3, 4])

        async with factory.transaction() as repo:
            await WaitlistQueue(repo, settings).remove(entries[1].id)

        state = await snapshot(factory, session.id)
        assert state["waiting_users"] == [2, 4]
        assert state["positions"] == [1, 2]

    async def test_second_remove_fails_without_shifting_again(self, factory, settings):
        session = await add_class(factory)
        await _fill(factory, session, [1])
        entries = await _enqueue(factory, settings, session, [2, 3, 4])

        async with factory.transaction() as repo:
            await WaitlistQueue(repo, settings).remove(entries[0].id)
        with pytest.raises(NotFoundError):
            async with factory.transaction() as repo:
                await WaitlistQueue(repo, settings).remove(entries[0].id)

        assert (await snapshot(factory, session.id))["positions"] == [1, 2]

    async def test_prune_closing_only_touches_classes_about_to_start(self, factory, settings):
        soon = await add_class(factory)
        later = await add_class(factory, date=soon.date + timedelta(days=1))
        for session in (soon, later):
            await _fill(factory, session, [1])
            await _enqueue(factory, settings, session, [2, 3])

        async with factory.transaction() as repo:
            removed = await WaitlistQueue(repo, settings).prune_closing(hours_before_class(1))

        assert removed == 2
        assert (await snapshot(factory, soon.id))["waitlist"] == []
        assert (await snapshot(factory, later.id))["positions"] == [1, 2]
