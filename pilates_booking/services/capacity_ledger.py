"""
Capacity ledger: a thin wrapper over the class's ``enrolled`` counter.
"""
import logging

from pilates_booking.repositories.base import BookingRepository, ClassSessionData

logger = logging.getLogger(__name__)


class CapacityLedger:
    def __init__(self, repo: BookingRepository):
        self.repo = repo

    async def confirmed_count(self, class_id: int) -> int:
        return await self.repo.count_confirmed_bookings(class_id)

    async def try_reserve_slot(self, class_id: int) -> bool:
        """Test-and-increment in one conditional update"""
        reserved = await self.repo.try_increment_enrolled(class_id)
        if not reserved:
            logger.debug("No free slot left in class %s", class_id)
        return reserved

    async def release_slot(self, class_id: int) -> None:
        if not await self.repo.decrement_enrolled(class_id):
            logger.warning("Release on class %s with no enrolled members", class_id)

    async def is_full(self, session: ClassSessionData) -> bool:
        return await self.confirmed_count(session.id) >= session.capacity
