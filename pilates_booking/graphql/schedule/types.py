"""
GraphQL types for class scheduling.
"""
import datetime
from typing import Optional
import strawberry

from pilates_booking.repositories.base import ClassSessionData
from pilates_booking.services.conflict_detector import ScheduleConflict as ScheduleConflictData


@strawberry.type
class ClassSession:
    """Class session GraphQL type"""
    id: int
    name: str
    date: datetime.date
    time: str
    duration: int
    capacity: int
    enrolled: int
    available_spots: int
    room: Optional[str]
    instructor_id: int
    equipment_type: str
    category: str
    status: str

    @classmethod
    def from_data(cls, data: ClassSessionData) -> "ClassSession":
        return cls(
            id=data.id,
            name=data.name,
            date=data.date,
            time=data.start_time.strftime("%H:%M"),
            duration=data.duration_minutes,
            capacity=data.capacity,
            enrolled=data.enrolled,
            available_spots=max(data.capacity - data.enrolled, 0),
            room=data.room,
            instructor_id=data.instructor_id,
            equipment_type=data.equipment_type,
            category=data.category,
            status=data.status
        )


@strawberry.type
class ScheduleConflict:
    """Existing class blocking a requested slot"""
    class_id: int
    name: str
    date: datetime.date
    start_time: str
    end_time: str
    resource_kind: str
    resource_id: str
    instructor_id: int
    room: Optional[str]
    message: str

    @classmethod
    def from_data(cls, data: ScheduleConflictData) -> "ScheduleConflict":
        return cls(
            class_id=data.class_id,
            name=data.name,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            resource_kind=data.resource_kind,
            resource_id=str(data.resource_id),
            instructor_id=data.instructor_id,
            room=data.room,
            message=data.describe()
        )


# Input types for mutations
@strawberry.input
class CreateClassSessionInput:
    """Input for scheduling a class"""
    name: str
    instructor_id: int
    date: datetime.date
    time: str
    duration: int
    capacity: int
    equipment_type: str = "mat"
    category: str = "group"
    room: Optional[str] = None


@strawberry.input
class RescheduleClassSessionInput:
    """Input for moving or resizing a class; omitted fields stay unchanged"""
    class_id: int
    date: Optional[datetime.date] = None
    time: Optional[str] = None
    duration: Optional[int] = None
    instructor_id: Optional[int] = None
    room: Optional[str] = None
    capacity: Optional[int] = None


# Response types
@strawberry.type
class ClassSessionResponse:
    """Response for schedule operations"""
    success: bool
    class_session: Optional[ClassSession]
    message: str
    conflict: Optional[ScheduleConflict] = None
    error_code: Optional[str] = None
