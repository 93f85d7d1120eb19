"""
Class scheduling, booking and waitlist models
"""
from datetime import datetime, date, time, timezone
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import (
    Date, Time, ForeignKey, Integer, BigInteger, String,
    Boolean, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import TIMESTAMP

from pilates_booking.db.database import Base, BigIntPK

if TYPE_CHECKING:
    from pilates_booking.models.membershipsModel import SubscriptionAccount


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClassSession(Base):
    """A single scheduled class"""

    __tablename__ = "classes"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column("time", Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column("duration", Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    enrolled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    room: Mapped[Optional[str]] = mapped_column(String(60))
    instructor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    equipment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="mat")
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="group")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    # Relationships
    bookings: Mapped[List["Booking"]] = relationship(back_populates="class_session")
    waitlist_entries: Mapped[List["WaitlistEntry"]] = relationship(back_populates="class_session")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_class_capacity"),
        CheckConstraint("enrolled >= 0 AND enrolled <= capacity", name="ck_class_enrolled"),
        CheckConstraint("status IN ('active','cancelled')", name="ck_class_status"),
        CheckConstraint("category IN ('group','personal')", name="ck_class_category"),
        CheckConstraint("equipment_type IN ('mat','reformer','both')", name="ck_class_equipment"),
        Index("idx_classes_instructor", "date", "instructor_id"),
        Index("idx_classes_room", "date", "room"),
    )


class Booking(Base):
    """A member's seat in a class"""

    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    class_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("classes.id"), nullable=False)
    subscription_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("user_subscriptions.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="confirmed")
    checked_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    check_in_time: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    # Relationships
    class_session: Mapped["ClassSession"] = relationship(back_populates="bookings")
    subscription: Mapped[Optional["SubscriptionAccount"]] = relationship(back_populates="bookings")

    __table_args__ = (
        # Cancelled bookings are deleted, so rebooking never collides here
        UniqueConstraint("user_id", "class_id", name="uq_booking_user_class"),
        CheckConstraint("status IN ('confirmed','cancelled','completed')", name="ck_booking_status"),
        Index("idx_bookings_class_status", "class_id", "status"),
        Index("idx_bookings_user", "user_id", "created_at"),
    )


class WaitlistEntry(Base):
    """Queue slot for a full class, ordered by position"""

    __tablename__ = "waitlist"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    class_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=_utcnow)

    # Relationships
    class_session: Mapped["ClassSession"] = relationship(back_populates="waitlist_entries")

    __table_args__ = (
        UniqueConstraint("user_id", "class_id", name="uq_waitlist_user_class"),
        CheckConstraint("position >= 1", name="ck_waitlist_position"),
        Index("idx_waitlist_class_position", "class_id", "position"),
    )
