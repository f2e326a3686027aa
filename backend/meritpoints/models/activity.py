from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from meritpoints.db.base import Base, HexIDMixin, TimestampMixin
from meritpoints.models.enums import ActivityStatus, ApprovalStatus


class Activity(HexIDMixin, TimestampMixin, Base):
    __tablename__ = "activities"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="window"),
        CheckConstraint("max_seats IS NULL OR max_seats >= 0", name="max_seats_non_negative"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    term_id: Mapped[str] = mapped_column(ForeignKey("terms.id"), nullable=False, index=True)
    criterion_id: Mapped[str] = mapped_column(ForeignKey("criteria.id"), nullable=False, index=True)

    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[ActivityStatus] = mapped_column(
        Enum(ActivityStatus, name="activity_status"),
        default=ActivityStatus.OPEN,
        nullable=False,
        index=True,
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, name="approval_status"),
        default=ApprovalStatus.PENDING,
        nullable=False,
        index=True,
    )

    max_seats: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    points: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    organizer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    term: Mapped["Term"] = relationship(back_populates="activities")
    criterion: Mapped["Criterion"] = relationship(back_populates="activities")
    registrations: Mapped[list["Registration"]] = relationship(back_populates="activity")
