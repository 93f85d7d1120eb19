"""
GraphQL queries for bookings and waitlists.
"""
import logging
from typing import List, Optional
import strawberry

from pilates_booking.graphql.auth.permissions import IsAuthenticated, IsStaff
from pilates_booking.graphql.bookings.types import Booking, WaitlistEntry
from pilates_booking.services.booking_engine import BookingEngine

logger = logging.getLogger(__name__)


@strawberry.type
class BookingQuery:
    """Booking queries"""

    @strawberry.field(permission_classes=[IsAuthenticated])
    async def booking(
        self,
        info: strawberry.Info,
        id: int
    ) -> Optional[Booking]:
        """Get a booking by ID; members only see their own"""
        engine: BookingEngine = info.context.engine

        try:
            booking_data = await engine.get_booking(id, actor=info.context.actor)
            return Booking.from_data(booking_data)
        except ValueError:
            return None
        except Exception as e:
            logger.error("booking query failed for %s: %s", id, e)
            return None

    @strawberry.field(permission_classes=[IsStaff])
    async def class_waitlist(
        self,
        info: strawberry.Info,
        class_id: int
    ) -> List[WaitlistEntry]:
        """Waitlist of a class in promotion order"""
        engine: BookingEngine = info.context.engine

        try:
            entries = await engine.class_waitlist(class_id)
            return [WaitlistEntry.from_data(entry) for entry in entries]
        except Exception as e:
            logger.error("class_waitlist query failed for class %s: %s", class_id, e)
            return []
