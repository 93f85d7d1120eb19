"""
Subscription models: the class credits a member books with
"""
from datetime import datetime, date, timezone
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import (
    Date, Integer, BigInteger, String, CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import TIMESTAMP

from pilates_booking.db.database import Base, BigIntPK

if TYPE_CHECKING:
    from pilates_booking.models.classModel import Booking


class SubscriptionAccount(Base):
    """A member's purchased plan and remaining class balance"""

    __tablename__ = "user_subscriptions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    plan_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    remaining_classes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    equipment_access: Mapped[str] = mapped_column(String(20), nullable=False, default="mat")
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="group")
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))

    # Relationships
    bookings: Mapped[List["Booking"]] = relationship(back_populates="subscription")

    __table_args__ = (
        CheckConstraint("remaining_classes >= 0", name="ck_subscription_remaining"),
        CheckConstraint("status IN ('active','paused','cancelled','expired')", name="ck_subscription_status"),
        CheckConstraint("equipment_access IN ('mat','reformer','both')", name="ck_subscription_equipment"),
        CheckConstraint("category IN ('group','personal')", name="ck_subscription_category"),
        Index("idx_subscriptions_user", "user_id", "status", "end_date"),
    )
