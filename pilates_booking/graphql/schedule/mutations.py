"""
GraphQL mutations for the class schedule.
"""
import logging
import strawberry

from pilates_booking.core.exceptions import BookingError, ScheduleConflictError
from pilates_booking.graphql.auth.permissions import IsStaff
from pilates_booking.graphql.schedule.types import (
    ClassSession,
    ClassSessionResponse,
    CreateClassSessionInput,
    RescheduleClassSessionInput,
    ScheduleConflict,
)
from pilates_booking.services.schedule_service import ScheduleService

logger = logging.getLogger(__name__)


def _rejected(e: BookingError) -> ClassSessionResponse:
    conflict = None
    if isinstance(e, ScheduleConflictError):
        conflict = ScheduleConflict.from_data(e.conflict)
    errors = e.details.get("errors")
    message = f"{e.message}: {'; '.join(errors)}" if errors else e.message
    return ClassSessionResponse(
        success=False,
        class_session=None,
        message=message,
        conflict=conflict,
        error_code=e.code
    )


@strawberry.type
class ScheduleMutation:
    """Schedule mutations"""

    @strawberry.mutation(permission_classes=[IsStaff])
    async def create_class_session(
        self,
        info: strawberry.Info,
        input: CreateClassSessionInput
    ) -> ClassSessionResponse:
        """Schedule a new class, rejecting instructor and room overlaps"""
        schedule: ScheduleService = info.context.schedule

        try:
            session = await schedule.create_class_session(
                info.context.actor,
                name=input.name,
                instructor_id=input.instructor_id,
                day=input.date,
                start_time=input.time,
                duration_minutes=input.duration,
                capacity=input.capacity,
                equipment_type=input.equipment_type,
                category=input.category,
                room=input.room
            )
            return ClassSessionResponse(
                success=True,
                class_session=ClassSession.from_data(session),
                message="Class created successfully"
            )
        except BookingError as e:
            return _rejected(e)
        except Exception as e:
            logger.error("create_class_session failed: %s", e)
            return ClassSessionResponse(
                success=False,
                class_session=None,
                message="Internal server error"
            )

    @strawberry.mutation(permission_classes=[IsStaff])
    async def reschedule_class_session(
        self,
        info: strawberry.Info,
        input: RescheduleClassSessionInput
    ) -> ClassSessionResponse:
        """Move or resize a class"""
        schedule: ScheduleService = info.context.schedule

        try:
            session = await schedule.reschedule_class_session(
                info.context.actor,
                input.class_id,
                day=input.date,
                start_time=input.time,
                duration_minutes=input.duration,
                instructor_id=input.instructor_id,
                room=input.room,
                capacity=input.capacity
            )
            return ClassSessionResponse(
                success=True,
                class_session=ClassSession.from_data(session),
                message="Class updated successfully"
            )
        except BookingError as e:
            return _rejected(e)
        except Exception as e:
            logger.error("reschedule_class_session failed for class %s: %s", input.class_id, e)
            return ClassSessionResponse(
                success=False,
                class_session=None,
                message="Internal server error"
            )

    @strawberry.mutation(permission_classes=[IsStaff])
    async def cancel_class_session(
        self,
        info: strawberry.Info,
        class_id: int
    ) -> ClassSessionResponse:
        """Cancel a class"""
        schedule: ScheduleService = info.context.schedule

        try:
            session = await schedule.cancel_class_session(info.context.actor, class_id)
            return ClassSessionResponse(
                success=True,
                class_session=ClassSession.from_data(session),
                message="Class cancelled successfully"
            )
        except BookingError as e:
            return _rejected(e)
        except Exception as e:
            logger.error("cancel_class_session failed for class %s: %s", class_id, e)
            return ClassSessionResponse(
                success=False,
                class_session=None,
                message="Internal server error"
            )
