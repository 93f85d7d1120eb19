"""
Tests for the periodic housekeeping service.
"""
import asyncio
import logging
from datetime import date
from unittest.mock import AsyncMock

from pilates_booking.core.exceptions import TransactionFailure
from pilates_booking.services.maintenance import MaintenanceService
from tests.conftest import NOW, add_class, add_subscription, hours_before_class, remaining


class TestMaintenanceService:
    async def test_run_once_prunes_and_expires(self, engine, factory):
        session = await add_class(factory, capacity=1)
        await add_subscription(factory, 1)
        await add_subscription(factory, 2)
        lapsed = await add_subscription(factory, 3, end_date=date(2026, 3, 1))
        await engine.book_class(1, session.id, now=NOW)
        await engine.book_class(2, session.id, now=NOW)

        stats = await MaintenanceService(engine).run_once(now=hours_before_class(1))

        assert stats == {"waitlist_entries_pruned": 1, "subscriptions_expired": 1}
        async with factory.transaction() as repo:
            assert (await repo.get_subscription(lapsed.id)).status == "expired"
        assert await remaining(factory, lapsed.id) == 5

    async def test_nothing_to_do(self, engine):
        stats = await MaintenanceService(engine).run_once(now=NOW)

        assert stats == {"waitlist_entries_pruned": 0, "subscriptions_expired": 0}

    async def test_storage_failure_in_one_job_does_not_stop_the_other(self, engine, caplog):
        engine.prune_waitlists = AsyncMock(side_effect=TransactionFailure("disk I/O error"))
        engine.expire_subscriptions = AsyncMock(return_value=2)

        with caplog.at_level(logging.ERROR):
            stats = await MaintenanceService(engine).run_once(now=NOW)

        assert stats == {"waitlist_entries_pruned": 0, "subscriptions_expired": 2}
        assert "Waitlist pruning failed: disk I/O error" in caplog.text

    async def test_start_and_stop(self, engine):
        engine.prune_waitlists = AsyncMock(return_value=0)
        engine.expire_subscriptions = AsyncMock(return_value=0)
        service = MaintenanceService(engine, interval_seconds=3600)

        service.start()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await service.stop()

        engine.prune_waitlists.assert_awaited()
        assert service._task is None

    async def test_unexpected_error_is_logged_and_the_loop_keeps_running(self, engine, caplog):
        engine.prune_waitlists = AsyncMock(side_effect=RuntimeError("boom"))
        engine.expire_subscriptions = AsyncMock(return_value=1)
        service = MaintenanceService(engine, interval_seconds=0.01)

        with caplog.at_level(logging.ERROR):
            service.start()
            await asyncio.sleep(0.05)
            running = not service._task.done()
            await service.stop()

        assert running
        assert engine.prune_waitlists.await_count >= 2
        assert engine.expire_subscriptions.await_count >= 2
        assert "Waitlist pruning failed" in caplog.text
