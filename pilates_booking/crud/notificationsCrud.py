"""
CRUD operations for member notifications.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pilates_booking.models import Notification


async def create_notification(
    db: AsyncSession,
    *,
    user_id: int,
    class_id: Optional[int],
    type: str,
    message: str,
    scheduled_time: datetime
) -> Notification:
    notification = Notification(
        user_id=user_id,
        class_id=class_id,
        type=type,
        message=message,
        scheduled_time=scheduled_time
    )
    db.add(notification)
    await db.flush()
    return notification


async def get_user_notifications(db: AsyncSession, user_id: int) -> List[Notification]:
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.scheduled_time, Notification.id)
    )
    return list(result.scalars().all())
