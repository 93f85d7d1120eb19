"""
CRUD operations for subscription accounts (class credits).
"""
from datetime import datetime, date, timezone
from typing import List, Optional

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from pilates_booking.models import SubscriptionAccount


async def get_subscription_by_id(
    db: AsyncSession,
    subscription_id: int
) -> Optional[SubscriptionAccount]:
    result = await db.execute(
        select(SubscriptionAccount)
        .where(SubscriptionAccount.id == subscription_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_user_subscriptions(
    db: AsyncSession,
    user_id: int
) -> List[SubscriptionAccount]:
    """All of a member's subscriptions, newest first"""
    result = await db.execute(
        select(SubscriptionAccount)
        .where(SubscriptionAccount.user_id == user_id)
        .order_by(SubscriptionAccount.created_at.desc(), SubscriptionAccount.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def create_subscription(db: AsyncSession, **fields) -> SubscriptionAccount:
    fields.setdefault("created_at", datetime.now(timezone.utc))
    subscription = SubscriptionAccount(**fields)
    db.add(subscription)
    await db.flush()
    return subscription


async def consume_class_credit(db: AsyncSession, subscription_id: int) -> bool:
    """Take one class off the balance; False when nothing is left"""
    result = await db.execute(
        update(SubscriptionAccount)
        .where(
            and_(
                SubscriptionAccount.id == subscription_id,
                SubscriptionAccount.remaining_classes > 0
            )
        )
        .values(
            remaining_classes=SubscriptionAccount.remaining_classes - 1,
            updated_at=datetime.now(timezone.utc)
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def refund_class_credit(db: AsyncSession, subscription_id: int) -> bool:
    """Give one class back. There is no ceiling at the plan allotment."""
    result = await db.execute(
        update(SubscriptionAccount)
        .where(SubscriptionAccount.id == subscription_id)
        .values(
            remaining_classes=SubscriptionAccount.remaining_classes + 1,
            updated_at=datetime.now(timezone.utc)
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def expire_lapsed_subscriptions(db: AsyncSession, day: date) -> int:
    result = await db.execute(
        update(SubscriptionAccount)
        .where(
            and_(
                SubscriptionAccount.status == "active",
                SubscriptionAccount.end_date < day
            )
        )
        .values(status="expired", updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
