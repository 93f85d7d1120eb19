"""
CRUD operations for ClassSession rows.
Functions only flush; the caller owns the transaction.
"""
import logging
from datetime import datetime, date, timezone
from typing import List, Optional

from sqlalchemy import select, update, and_, exists
from sqlalchemy.ext.asyncio import AsyncSession

from pilates_booking.models.classModel import ClassSession, WaitlistEntry

logger = logging.getLogger(__name__)


async def get_class_session_by_id(
    db: AsyncSession,
    class_id: int
) -> Optional[ClassSession]:
    """Get a class session by ID, always re-reading the row"""
    result = await db.execute(
        select(ClassSession)
        .where(ClassSession.id == class_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_sessions_on_date(
    db: AsyncSession,
    day: date,
    instructor_id: Optional[int] = None,
    room: Optional[str] = None,
    exclude_class_id: Optional[int] = None
) -> List[ClassSession]:
    """Active sessions on a date, optionally for one instructor or room"""
    query = select(ClassSession).where(
        and_(
            ClassSession.date == day,
            ClassSession.status == "active"
        )
    )

    if instructor_id is not None:
        query = query.where(ClassSession.instructor_id == instructor_id)
    if room is not None:
        query = query.where(ClassSession.room == room)
    if exclude_class_id is not None:
        query = query.where(ClassSession.id != exclude_class_id)

    query = query.order_by(ClassSession.start_time).execution_options(populate_existing=True)
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_class_session(db: AsyncSession, **fields) -> ClassSession:
    """Create a new class session"""
    now = datetime.now(timezone.utc)
    fields.setdefault("enrolled", 0)
    fields.setdefault("created_at", now)
    fields.setdefault("updated_at", now)
    session = ClassSession(**fields)
    db.add(session)
    await db.flush()
    await db.refresh(session)
    return session


async def update_class_session(
    db: AsyncSession,
    class_id: int,
    **fields
) -> Optional[ClassSession]:
    """Update schedule fields of a class session"""
    session = await get_class_session_by_id(db, class_id)
    if not session:
        return None

    for key, value in fields.items():
        setattr(session, key, value)
    session.updated_at = datetime.now(timezone.utc)

    await db.flush()
    return session


async def increment_enrolled_if_available(db: AsyncSession, class_id: int) -> bool:
    """Take one seat in a single conditional UPDATE; False when the class is full"""
    result = await db.execute(
        update(ClassSession)
        .where(
            and_(
                ClassSession.id == class_id,
                ClassSession.status == "active",
                ClassSession.enrolled < ClassSession.capacity
            )
        )
        .values(enrolled=ClassSession.enrolled + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def decrement_enrolled(db: AsyncSession, class_id: int) -> bool:
    """Give a seat back, never below zero"""
    result = await db.execute(
        update(ClassSession)
        .where(
            and_(
                ClassSession.id == class_id,
                ClassSession.enrolled > 0
            )
        )
        .values(enrolled=ClassSession.enrolled - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("Enrollment for class %s was already zero", class_id)
        return False
    return True


async def get_sessions_with_waitlist(db: AsyncSession, until: date) -> List[ClassSession]:
    """Sessions up to a date that still have people waiting"""
    query = (
        select(ClassSession)
        .where(
            and_(
                ClassSession.date <= until,
                exists().where(WaitlistEntry.class_id == ClassSession.id)
            )
        )
        .order_by(ClassSession.date, ClassSession.start_time)
    )
    result = await db.execute(query)
    return list(result.scalars().all())
