"""
Periodic housekeeping: close waitlists of classes about to start and expire
subscriptions past their end date.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from pilates_booking.core.exceptions import TransactionFailure
from pilates_booking.services.booking_engine import BookingEngine

logger = logging.getLogger(__name__)


class MaintenanceService:
    def __init__(self, engine: BookingEngine, interval_seconds: Optional[int] = None):
        self.engine = engine
        self.interval_seconds = interval_seconds or engine.settings.maintenance_interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Run every housekeeping job once.

        Returns:
            Counts of pruned waitlist entries and expired subscriptions
        """
        stats = {"waitlist_entries_pruned": 0, "subscriptions_expired": 0}
        try:
            stats["waitlist_entries_pruned"] = await self.engine.prune_waitlists(now)
        except TransactionFailure as e:
            logger.error("Waitlist pruning failed: %s", e.detail)
        except Exception:
            logger.exception("Waitlist pruning failed")
        try:
            stats["subscriptions_expired"] = await self.engine.expire_subscriptions(now)
        except TransactionFailure as e:
            logger.error("Subscription expiry failed: %s", e.detail)
        except Exception:
            logger.exception("Subscription expiry failed")

        if any(stats.values()):
            logger.info("Maintenance run: %s", stats)
        return stats

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name="booking-maintenance")
            logger.info("Maintenance loop started, every %s seconds", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Maintenance loop stopped")
