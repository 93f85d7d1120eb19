"""
Outgoing member notifications, written by the notification sink
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import BigInteger, String, Text, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import TIMESTAMP

from pilates_booking.db.database import Base, BigIntPK


class Notification(Base):
    """Scheduled reminder or waitlist promotion message"""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    class_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        CheckConstraint("type IN ('reminder','waitlist_promotion')", name="ck_notification_type"),
        Index("idx_notifications_due", "sent_at", "scheduled_time"),
    )
