from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from meritpoints.db.base import Base, HexIDMixin, TimestampMixin
from meritpoints.models.enums import ScoreStatus


class Score(HexIDMixin, TimestampMixin, Base):
    """Persisted term score; only present once migration 0003 has run."""

    __tablename__ = "scores"
    __table_args__ = (
        UniqueConstraint("student_id", "term_id", name="uq_scores_student_term"),
    )

    student_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    term_id: Mapped[str] = mapped_column(ForeignKey("terms.id"), nullable=False, index=True)
    total: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    status: Mapped[ScoreStatus] = mapped_column(
        Enum(ScoreStatus, name="score_status"),
        default=ScoreStatus.PROVISIONAL,
        nullable=False,
    )
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
