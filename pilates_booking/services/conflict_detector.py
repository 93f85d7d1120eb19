"""
Schedule conflict detection for instructors and rooms.

Two classes conflict when their half-open intervals ``[start, start + duration)``
intersect on the same date for the same instructor or room. Touching
boundaries (one ends at 10:00, the next starts at 10:00) do not conflict.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import date, time
from typing import Any, Dict, Iterable, Optional, Union

from pilates_booking.core.conversions import coerce_int, minutes_to_hhmm, parse_hhmm, time_to_minutes
from pilates_booking.core.exceptions import ValidationError
from pilates_booking.repositories.base import BookingRepository, ClassSessionData

logger = logging.getLogger(__name__)

RESOURCE_INSTRUCTOR = "instructor"
RESOURCE_ROOM = "room"
RESOURCE_KINDS = (RESOURCE_INSTRUCTOR, RESOURCE_ROOM)


@dataclass(frozen=True)
class ScheduleConflict:
    """The existing class that blocks the requested slot"""
    class_id: int
    name: str
    date: date
    start_time: str
    end_time: str
    resource_kind: str
    resource_id: Union[int, str]
    instructor_id: int
    room: Optional[str] = None

    def describe(self) -> str:
        if self.resource_kind == RESOURCE_ROOM:
            return (
                f"Room conflict: {self.room} is already booked by \"{self.name}\" "
                f"from {self.start_time} to {self.end_time} on {self.date.isoformat()}"
            )
        return (
            f"Scheduling conflict: instructor {self.instructor_id} is already teaching "
            f"\"{self.name}\" from {self.start_time} to {self.end_time} on {self.date.isoformat()}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


def _has_resource(resource_id: Union[int, str, None]) -> bool:
    if resource_id is None:
        return False
    if isinstance(resource_id, str) and not resource_id.strip():
        return False
    return True


def _validate_kind(resource_kind: str) -> None:
    if resource_kind not in RESOURCE_KINDS:
        raise ValidationError(
            f"Invalid resource kind '{resource_kind}'. Expected one of: {', '.join(RESOURCE_KINDS)}"
        )


def _resource_key(resource_kind: str, resource_id: Union[int, str]) -> Union[int, str]:
    """Instructor ids are integers even when they arrive as strings"""
    if resource_kind != RESOURCE_INSTRUCTOR:
        return resource_id
    instructor_id = coerce_int(resource_id)
    if instructor_id is None:
        raise ValidationError("Instructor id must be an integer")
    return instructor_id


def find_conflict(
    sessions: Iterable[ClassSessionData],
    start_time: Union[str, time],
    duration_minutes: int,
    resource_kind: str,
    resource_id: Union[int, str, None],
    exclude_class_id: Optional[int] = None
) -> Optional[ScheduleConflict]:
    """
    Return the first active session in ``sessions`` that overlaps the requested
    slot on the same resource, or None.

    ``sessions`` is expected to hold one day's schedule.
    """
    _validate_kind(resource_kind)
    if not _has_resource(resource_id):
        return None
    resource_id = _resource_key(resource_kind, resource_id)

    if parse_hhmm(start_time) is None:
        raise ValidationError("Time must be in HH:MM format")
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationError("Duration must be a positive number of minutes")

    new_start = time_to_minutes(start_time)
    new_end = new_start + duration_minutes

    for session in sessions:
        if not session.is_active:
            continue
        if exclude_class_id is not None and session.id == exclude_class_id:
            continue
        if resource_kind == RESOURCE_INSTRUCTOR and session.instructor_id != resource_id:
            continue
        if resource_kind == RESOURCE_ROOM and session.room != resource_id:
            continue

        existing_start = time_to_minutes(session.start_time)
        existing_end = existing_start + session.duration_minutes

        if existing_start < new_end and existing_end > new_start:
            return ScheduleConflict(
                class_id=session.id,
                name=session.name,
                date=session.date,
                start_time=minutes_to_hhmm(existing_start),
                end_time=minutes_to_hhmm(existing_end),
                resource_kind=resource_kind,
                resource_id=resource_id,
                instructor_id=session.instructor_id,
                room=session.room,
            )
    return None


class ConflictDetector:
    """Loads a day's schedule from the repository and runs ``find_conflict`` on it"""

    def __init__(self, repo: BookingRepository):
        self.repo = repo

    async def check_conflict(
        self,
        day: date,
        start_time: Union[str, time],
        duration_minutes: int,
        resource_id: Union[int, str, None],
        resource_kind: str,
        exclude_class_id: Optional[int] = None
    ) -> Optional[ScheduleConflict]:
        _validate_kind(resource_kind)
        if not _has_resource(resource_id):
            return None
        resource_id = _resource_key(resource_kind, resource_id)

        if resource_kind == RESOURCE_INSTRUCTOR:
            sessions = await self.repo.list_active_sessions_on(
                day, instructor_id=resource_id, exclude_class_id=exclude_class_id
            )
        else:
            sessions = await self.repo.list_active_sessions_on(
                day, room=resource_id, exclude_class_id=exclude_class_id
            )

        conflict = find_conflict(
            sessions, start_time, duration_minutes, resource_kind, resource_id, exclude_class_id
        )
        if conflict:
            logger.info(
                "Schedule conflict on %s for %s %s with class %s",
                day, resource_kind, resource_id, conflict.class_id
            )
        return conflict
