"""
Schedule management: create, reschedule and cancel class sessions.

Instructor overlap is always enforced; room overlap only when the class has a
room.
"""
import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

from pilates_booking.core.config import Settings, get_settings
from pilates_booking.core.conversions import coerce_int, parse_hhmm
from pilates_booking.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ScheduleConflictError,
    ValidationError,
)
from pilates_booking.core.identity import Actor
from pilates_booking.repositories.base import (
    CATEGORY_GROUP,
    CATEGORY_PERSONAL,
    CLASS_CANCELLED,
    EQUIPMENT_BOTH,
    EQUIPMENT_MAT,
    EQUIPMENT_REFORMER,
    BookingRepository,
    ClassSessionData,
    RepositoryFactory,
)
from pilates_booking.services.conflict_detector import (
    RESOURCE_INSTRUCTOR,
    RESOURCE_ROOM,
    ConflictDetector,
)
from pilates_booking.services.waitlist_queue import WaitlistQueue

logger = logging.getLogger(__name__)

MIN_DURATION, MAX_DURATION = 15, 180
MIN_CAPACITY, MAX_CAPACITY = 1, 50
CATEGORIES = (CATEGORY_GROUP, CATEGORY_PERSONAL)
EQUIPMENT_TYPES = (EQUIPMENT_MAT, EQUIPMENT_REFORMER, EQUIPMENT_BOTH)


def _validate_fields(fields: Dict[str, Any]) -> List[str]:
    """Return the list of validation messages for the provided fields"""
    errors = []
    if "name" in fields and not (fields["name"] or "").strip():
        errors.append("Class name is required")
    if "duration_minutes" in fields:
        duration = coerce_int(fields["duration_minutes"])
        if duration is None or not MIN_DURATION <= duration <= MAX_DURATION:
            errors.append(f"Duration must be between {MIN_DURATION}-{MAX_DURATION} minutes")
    if "capacity" in fields:
        capacity = coerce_int(fields["capacity"])
        if capacity is None or not MIN_CAPACITY <= capacity <= MAX_CAPACITY:
            errors.append(f"Capacity must be between {MIN_CAPACITY}-{MAX_CAPACITY}")
    if "start_time" in fields and parse_hhmm(fields["start_time"]) is None:
        errors.append("Time must be in HH:MM format")
    if "category" in fields and fields["category"] not in CATEGORIES:
        errors.append("Category must be personal or group")
    if "equipment_type" in fields and fields["equipment_type"] not in EQUIPMENT_TYPES:
        errors.append("Invalid equipment type")
    if "instructor_id" in fields and coerce_int(fields["instructor_id"]) is None:
        errors.append("Instructor is required")
    if "date" in fields and not isinstance(fields["date"], date):
        errors.append("Date must be a valid date")
    return errors


class ScheduleService:
    """Schedule writes, each in its own transaction"""

    def __init__(self, repositories: RepositoryFactory, settings: Optional[Settings] = None):
        self.repositories = repositories
        self.settings = settings or get_settings()

    async def _ensure_no_conflict(
        self,
        repo: BookingRepository,
        day: date,
        start_time: time,
        duration_minutes: int,
        instructor_id: int,
        room: Optional[str],
        exclude_class_id: Optional[int] = None
    ) -> None:
        detector = ConflictDetector(repo)
        conflict = await detector.check_conflict(
            day, start_time, duration_minutes, instructor_id, RESOURCE_INSTRUCTOR, exclude_class_id
        )
        if conflict is None and room:
            conflict = await detector.check_conflict(
                day, start_time, duration_minutes, room, RESOURCE_ROOM, exclude_class_id
            )
        if conflict:
            raise ScheduleConflictError(conflict.describe(), conflict)

    async def create_class_session(
        self,
        actor: Actor,
        name: str,
        instructor_id: int,
        day: date,
        start_time: Union[str, time],
        duration_minutes: int,
        capacity: int,
        equipment_type: str = EQUIPMENT_MAT,
        category: str = CATEGORY_GROUP,
        room: Optional[str] = None
    ) -> ClassSessionData:
        if not actor.is_staff:
            raise PermissionDeniedError("Only staff can create classes")

        fields = {
            "name": name,
            "instructor_id": instructor_id,
            "date": day,
            "start_time": start_time,
            "duration_minutes": duration_minutes,
            "capacity": capacity,
            "equipment_type": equipment_type,
            "category": category,
        }
        errors = _validate_fields(fields)
        if errors:
            raise ValidationError("Validation failed", details={"errors": errors})

        fields.update(
            name=name.strip(),
            instructor_id=coerce_int(instructor_id),
            start_time=parse_hhmm(start_time),
            duration_minutes=coerce_int(duration_minutes),
            capacity=coerce_int(capacity),
            room=(room or "").strip() or None,
        )

        async with self.repositories.transaction() as repo:
            await self._ensure_no_conflict(
                repo, day, fields["start_time"], fields["duration_minutes"],
                fields["instructor_id"], fields["room"]
            )
            session = await repo.add_class_session(**fields)

        logger.info(
            "Class %s '%s' scheduled on %s at %s by user %s",
            session.id, session.name, session.date, session.start_time, actor.user_id
        )
        return session

    async def reschedule_class_session(
        self,
        actor: Actor,
        class_id: int,
        day: Optional[date] = None,
        start_time: Union[str, time, None] = None,
        duration_minutes: Optional[int] = None,
        instructor_id: Optional[int] = None,
        room: Optional[str] = None,
        capacity: Optional[int] = None
    ) -> ClassSessionData:
        if not actor.is_front_desk:
            raise PermissionDeniedError("Only admin or reception can change the schedule")

        changes: Dict[str, Any] = {}
        if day is not None:
            changes["date"] = day
        if start_time is not None:
            changes["start_time"] = start_time
        if duration_minutes is not None:
            changes["duration_minutes"] = duration_minutes
        if instructor_id is not None:
            changes["instructor_id"] = instructor_id
        if capacity is not None:
            changes["capacity"] = capacity

        errors = _validate_fields(changes)
        if errors:
            raise ValidationError("Validation failed", details={"errors": errors})

        if "start_time" in changes:
            changes["start_time"] = parse_hhmm(changes["start_time"])
        for key in ("duration_minutes", "instructor_id", "capacity"):
            if key in changes:
                changes[key] = coerce_int(changes[key])
        if room is not None:
            # an empty string clears the room
            changes["room"] = room.strip() or None

        async with self.repositories.transaction() as repo:
            await repo.lock_class(class_id)
            current = await repo.get_class_session(class_id)
            if current is None:
                raise NotFoundError("Class not found")
            if not current.is_active:
                raise ValidationError("Cancelled classes cannot be rescheduled")

            if changes.get("capacity") is not None and changes["capacity"] < current.enrolled:
                raise ValidationError(
                    f"Capacity cannot be lower than the {current.enrolled} members already enrolled"
                )

            await self._ensure_no_conflict(
                repo,
                changes.get("date", current.date),
                changes.get("start_time", current.start_time),
                changes.get("duration_minutes", current.duration_minutes),
                changes.get("instructor_id", current.instructor_id),
                changes.get("room", current.room),
                exclude_class_id=class_id,
            )
            session = await repo.update_class_session(class_id, **changes)

        logger.info("Class %s rescheduled by user %s: %s", class_id, actor.user_id, sorted(changes))
        return session

    async def cancel_class_session(
        self,
        actor: Actor,
        class_id: int,
        now: Optional[datetime] = None
    ) -> ClassSessionData:
        """Cancel a class; its waitlist is dropped, existing bookings are kept"""
        async with self.repositories.transaction() as repo:
            await repo.lock_class(class_id)
            current = await repo.get_class_session(class_id)
            if current is None:
                raise NotFoundError("Class not found")
            if not (actor.is_front_desk or (actor.is_staff and current.instructor_id == actor.user_id)):
                raise PermissionDeniedError("Access denied")
            if not current.is_active:
                raise ValidationError("Class is already cancelled")

            session = await repo.update_class_session(class_id, status=CLASS_CANCELLED)
            dropped = await WaitlistQueue(repo, self.settings).prune_class(
                session, now or datetime.now(timezone.utc)
            )

        logger.info(
            "Class %s cancelled by user %s, %s waitlist entries dropped",
            class_id, actor.user_id, dropped
        )
        return session
