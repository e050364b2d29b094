"""ORM mirror of the member tables touched by the guardian migration.

The schema itself is owned by the hosted Postgres project; these models
only describe the columns the backend reads and writes.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


def _uuid() -> str:
    return str(uuid.uuid4())


class ProfileModel(TimestampMixin, Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    phone: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    address: Mapped[str] = mapped_column(Text, default="", nullable=False)
    city: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    postcode: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    emergency_contact_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    emergency_contact_phone: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    medical_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_child: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), default="member", nullable=False)
    belt_rank: Mapped[str] = mapped_column(String(32), default="white", nullable=False)
    stripes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    profile_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_guardian_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    best_practice_accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    waiver_accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class AttendanceRecordModel(Base):
    __tablename__ = "attendance_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    class_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    checked_in_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )


class ClassBookingModel(Base):
    __tablename__ = "class_bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    class_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    booking_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="booked", nullable=False)


class MembershipModel(TimestampMixin, Base):
    __tablename__ = "memberships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    location_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    membership_type_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


__all__ = [
    "AttendanceRecordModel",
    "ClassBookingModel",
    "MembershipModel",
    "ProfileModel",
]
