"""
CRUD operations for bookings.
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, delete, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from pilates_booking.models import Booking


async def get_booking_by_id(
    db: AsyncSession,
    booking_id: int
) -> Optional[Booking]:
    """Get a booking by ID"""
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_booking(
    db: AsyncSession,
    user_id: int,
    class_id: int
) -> Optional[Booking]:
    """The member's booking row for a class in any status, if any"""
    result = await db.execute(
        select(Booking).where(
            and_(
                Booking.user_id == user_id,
                Booking.class_id == class_id
            )
        )
    )
    return result.scalars().first()


async def count_confirmed_bookings(db: AsyncSession, class_id: int) -> int:
    result = await db.execute(
        select(func.count(Booking.id)).where(
            and_(
                Booking.class_id == class_id,
                Booking.status == "confirmed"
            )
        )
    )
    return result.scalar() or 0


async def create_booking(
    db: AsyncSession,
    *,
    user_id: int,
    class_id: int,
    subscription_id: Optional[int],
    created_at: datetime
) -> Booking:
    """Insert a confirmed booking"""
    booking = Booking(
        user_id=user_id,
        class_id=class_id,
        subscription_id=subscription_id,
        status="confirmed",
        checked_in=False,
        created_at=created_at,
        updated_at=created_at
    )
    db.add(booking)
    await db.flush()
    return booking


async def delete_booking(db: AsyncSession, booking_id: int) -> bool:
    """Hard-delete a booking so the member can book the class again later"""
    result = await db.execute(
        delete(Booking)
        .where(Booking.id == booking_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def update_booking(
    db: AsyncSession,
    booking_id: int,
    **fields
) -> Optional[Booking]:
    booking = await get_booking_by_id(db, booking_id)
    if not booking:
        return None

    for key, value in fields.items():
        setattr(booking, key, value)
    booking.updated_at = datetime.now(timezone.utc)

    await db.flush()
    return booking


async def get_class_bookings(db: AsyncSession, class_id: int) -> List[Booking]:
    """All bookings of a class in booking order"""
    result = await db.execute(
        select(Booking)
        .where(Booking.class_id == class_id)
        .order_by(Booking.created_at, Booking.id)
    )
    return list(result.scalars().all())
