"""
CRUD operations for waitlist entries.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, delete, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from pilates_booking.models import WaitlistEntry


async def get_waitlist_entry_by_id(
    db: AsyncSession,
    entry_id: int
) -> Optional[WaitlistEntry]:
    result = await db.execute(
        select(WaitlistEntry)
        .where(WaitlistEntry.id == entry_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_waitlist_entry(
    db: AsyncSession,
    user_id: int,
    class_id: int
) -> Optional[WaitlistEntry]:
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            and_(
                WaitlistEntry.user_id == user_id,
                WaitlistEntry.class_id == class_id
            )
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_class_waitlist(db: AsyncSession, class_id: int) -> List[WaitlistEntry]:
    """Waitlist of a class, head first"""
    result = await db.execute(
        select(WaitlistEntry)
        .where(WaitlistEntry.class_id == class_id)
        .order_by(WaitlistEntry.position)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_max_position(db: AsyncSession, class_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(WaitlistEntry.position), 0))
        .where(WaitlistEntry.class_id == class_id)
    )
    return result.scalar() or 0


async def create_waitlist_entry(
    db: AsyncSession,
    *,
    user_id: int,
    class_id: int,
    position: int,
    created_at: datetime
) -> WaitlistEntry:
    entry = WaitlistEntry(
        user_id=user_id,
        class_id=class_id,
        position=position,
        created_at=created_at
    )
    db.add(entry)
    await db.flush()
    return entry


async def delete_waitlist_entry(db: AsyncSession, entry_id: int) -> bool:
    result = await db.execute(
        delete(WaitlistEntry)
        .where(WaitlistEntry.id == entry_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def close_position_gap(db: AsyncSession, class_id: int, position: int) -> int:
    """Move everyone behind ``position`` one place forward"""
    result = await db.execute(
        update(WaitlistEntry)
        .where(
            and_(
                WaitlistEntry.class_id == class_id,
                WaitlistEntry.position > position
            )
        )
        .values(position=WaitlistEntry.position - 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def delete_class_waitlist(db: AsyncSession, class_id: int) -> int:
    result = await db.execute(
        delete(WaitlistEntry)
        .where(WaitlistEntry.class_id == class_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
