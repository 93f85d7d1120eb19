"""
GraphQL queries for the class schedule.
"""
import datetime
from typing import Optional
import strawberry

from pilates_booking.core.conversions import coerce_int
from pilates_booking.graphql.auth.permissions import IsStaff
from pilates_booking.graphql.schedule.types import ScheduleConflict
from pilates_booking.services.booking_engine import BookingEngine
from pilates_booking.services.conflict_detector import RESOURCE_INSTRUCTOR


@strawberry.type
class ScheduleQuery:
    """Schedule queries"""

    @strawberry.field(permission_classes=[IsStaff])
    async def check_schedule_conflict(
        self,
        info: strawberry.Info,
        date: datetime.date,
        time: str,
        duration: int,
        resource_id: str,
        kind: str,
        exclude_class_id: Optional[int] = None
    ) -> Optional[ScheduleConflict]:
        """First class overlapping the slot for an instructor or room, if any"""
        engine: BookingEngine = info.context.engine

        resource = coerce_int(resource_id) if kind == RESOURCE_INSTRUCTOR else resource_id
        # invalid input surfaces as a GraphQL error
        conflict = await engine.check_schedule_conflict(
            date, time, duration, resource, kind, exclude_class_id
        )
        return ScheduleConflict.from_data(conflict) if conflict else None
