from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from meritpoints.db.base import Base, HexIDMixin, utcnow
from meritpoints.models.enums import RegistrationStatus


class Registration(HexIDMixin, Base):
    __tablename__ = "registrations"
    __table_args__ = (
        # One row per (activity, student); cancelled rows are reactivated rather than duplicated.
        UniqueConstraint("activity_id", "student_id", name="uq_registrations_activity_student"),
        # Seat slots only exist for capped activities; NULLs never collide.
        UniqueConstraint("activity_id", "seat_no", name="uq_registrations_activity_seat"),
        CheckConstraint("seat_no IS NULL OR seat_no >= 1", name="seat_no_positive"),
    )

    activity_id: Mapped[str] = mapped_column(ForeignKey("activities.id"), nullable=False, index=True)
    student_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    status: Mapped[RegistrationStatus] = mapped_column(
        Enum(RegistrationStatus, name="registration_status"),
        default=RegistrationStatus.REGISTERED,
        nullable=False,
        index=True,
    )
    seat_no: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    activity: Mapped["Activity"] = relationship(back_populates="registrations")
