"""Term score aggregation.

A student's term score is the base score plus the points of every activity
they hold an active registration for, plus a manual adjustment supplied by
the caller. A non-null total stored in ``scores`` overrides the computed
total.

The engine works against every schema generation the migrations have
produced: it never references ``activities.points`` or the ``scores`` table
unless the injected :class:`SchemaCapabilities` say they exist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, literal, select
from sqlalchemy.orm import Session

from meritpoints.core.errors import NotFoundError, StorageError
from meritpoints.core.settings import settings
from meritpoints.db.base import utcnow
from meritpoints.db.capabilities import SchemaCapabilities
from meritpoints.models.activity import Activity
from meritpoints.models.catalog import Criterion, Term
from meritpoints.models.enums import ACTIVE_REGISTRATION_STATUSES, ScoreStatus
from meritpoints.models.registration import Registration
from meritpoints.models.score import Score
from meritpoints.schemas.score import ActivityContribution, CriterionScore, ScoreSnapshot, TermScore
from meritpoints.services import catalog
from meritpoints.services.audit import AuditSink, emit

logger = logging.getLogger(__name__)

# Inclusive lower bounds, checked from the top.
BANDS: tuple[tuple[Decimal, str], ...] = (
    (Decimal("90"), "Excellent"),
    (Decimal("80"), "Good"),
    (Decimal("65"), "Fair"),
    (Decimal("50"), "Average"),
    (Decimal("35"), "Weak"),
)
LOWEST_BAND = "Poor"

STATUS_LABELS: dict[ScoreStatus, str] = {
    ScoreStatus.PROVISIONAL: "Provisional",
    ScoreStatus.REVIEWED: "Reviewed by advisor",
    ScoreStatus.APPROVED: "Approved",
    ScoreStatus.FINAL: "Final",
}

RECENT_ACTIVITY_LIMIT = 5
HISTORY_PREVIEW_LIMIT = 5


def _decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def classify(total) -> str:
    amount = _decimal(total)
    for lower_bound, label in BANDS:
        if amount >= lower_bound:
            return label
    return LOWEST_BAND


@dataclass(frozen=True)
class _Persisted:
    total: Optional[Decimal]
    status: ScoreStatus


class ScoreEngine:
    def __init__(
        self,
        db: Session,
        *,
        capabilities: SchemaCapabilities,
        base_score: Optional[int] = None,
    ) -> None:
        self.db = db
        self.capabilities = capabilities
        self.base_score = Decimal(base_score if base_score is not None else settings.base_score)

    def _resolve_term(self, term_id: Optional[str]) -> Optional[Term]:
        term = catalog.get_term(self.db, term_id)
        if term is None and term_id:
            logger.info("unknown term %s requested, using current term", term_id)
        return term or catalog.current_term(self.db)

    def _point_expr(self):
        if self.capabilities.has_activity_points:
            return func.coalesce(Activity.points, 0)
        return literal(0)

    def _earned_by_criterion(self, student_id: str, term_id: str) -> dict[str, Decimal]:
        if not self.capabilities.has_activity_points:
            return {}
        rows = self.db.execute(
            select(Activity.criterion_id, func.sum(self._point_expr()))
            .join(Registration, Registration.activity_id == Activity.id)
            .where(
                Activity.term_id == term_id,
                Registration.student_id == student_id,
                Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
            )
            .group_by(Activity.criterion_id)
        ).all()
        return {criterion_id: _decimal(earned) for criterion_id, earned in rows}

    def _recent_activities(self, student_id: str, term_id: str) -> list[ActivityContribution]:
        rows = self.db.execute(
            select(
                Activity.id,
                Activity.title,
                Activity.start_at,
                Activity.end_at,
                self._point_expr().label("points"),
            )
            .join(Registration, Registration.activity_id == Activity.id)
            .where(
                Activity.term_id == term_id,
                Registration.student_id == student_id,
                Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
            )
            .order_by(Activity.start_at.desc(), Activity.id.asc())
            .limit(RECENT_ACTIVITY_LIMIT)
        ).all()
        return [
            ActivityContribution(
                activity_id=row.id,
                title=row.title,
                start_at=row.start_at,
                end_at=row.end_at,
                points=_decimal(row.points),
            )
            for row in rows
        ]

    def _persisted(self, student_id: str, term_id: str) -> Optional[_Persisted]:
        if not self.capabilities.has_scores_table:
            return None
        row = self.db.execute(
            select(Score.total, Score.status).where(
                and_(Score.student_id == student_id, Score.term_id == term_id)
            )
        ).first()
        if row is None:
            return None
        total = _decimal(row.total) if row.total is not None else None
        return _Persisted(total=total, status=row.status)

    def _breakdown(self, student_id: str, term_id: str) -> list[CriterionScore]:
        earned = self._earned_by_criterion(student_id, term_id)
        return [
            CriterionScore(
                criterion_id=criterion.id,
                group_no=criterion.group_no,
                name=criterion.name,
                earned=earned.get(criterion.id, Decimal("0")),
                max_point=_decimal(criterion.max_point),
            )
            for criterion in catalog.list_criteria(self.db)
        ]

    def _term_total(self, student_id: str, term: Term, adjustment: Decimal) -> tuple[Decimal, Decimal, Optional[_Persisted]]:
        earned = sum(self._earned_by_criterion(student_id, term.id).values(), Decimal("0"))
        persisted = self._persisted(student_id, term.id)
        if persisted is not None and persisted.total is not None:
            return persisted.total, earned, persisted
        return self.base_score + earned + adjustment, earned, persisted

    def compute_score(self, student_id: str, term_id: Optional[str] = None, adjustment=0) -> ScoreSnapshot:
        adjustment = _decimal(adjustment)
        term = self._resolve_term(term_id)
        if term is None:
            total = self.base_score + adjustment
            return ScoreSnapshot(
                student_id=student_id,
                base_score=self.base_score,
                adjustment=adjustment,
                total=total,
                classification=classify(total),
                points_supported=self.capabilities.has_activity_points,
            )

        breakdown = self._breakdown(student_id, term.id)
        activity_score = sum((item.earned for item in breakdown), Decimal("0"))
        persisted = self._persisted(student_id, term.id)
        if persisted is not None and persisted.total is not None:
            total = persisted.total
        else:
            total = self.base_score + activity_score + adjustment

        return ScoreSnapshot(
            student_id=student_id,
            term_id=term.id,
            term_name=term.name,
            base_score=self.base_score,
            activity_score=activity_score,
            adjustment=adjustment,
            total=total,
            classification=classify(total),
            status=persisted.status if persisted else None,
            status_label=STATUS_LABELS.get(persisted.status) if persisted else None,
            points_supported=self.capabilities.has_activity_points,
            persisted=bool(persisted and persisted.total is not None),
            breakdown=breakdown,
            recent_activities=self._recent_activities(student_id, term.id),
            history_preview=self.history(student_id)[:HISTORY_PREVIEW_LIMIT],
        )

    def history(self, student_id: str) -> list[TermScore]:
        entries: list[TermScore] = []
        for term in catalog.list_terms(self.db):
            total, _, persisted = self._term_total(student_id, term, Decimal("0"))
            entries.append(
                TermScore(
                    term_id=term.id,
                    term_name=term.name,
                    total=total,
                    classification=classify(total),
                    persisted=bool(persisted and persisted.total is not None),
                )
            )
        return entries

    def finalize_score(
        self,
        student_id: str,
        *,
        term_id: Optional[str],
        status: ScoreStatus,
        actor_id: str,
        adjustment=0,
        audit: Optional[AuditSink] = None,
    ) -> Score:
        """Store the computed total for (student, term) under the given status."""
        if not self.capabilities.has_scores_table:
            raise StorageError("score records are not available on this database")
        term = catalog.get_term(self.db, term_id) if term_id else catalog.current_term(self.db)
        if term is None:
            raise NotFoundError("Term not found", details={"term_id": term_id})

        adjustment = _decimal(adjustment)
        earned = sum(self._earned_by_criterion(student_id, term.id).values(), Decimal("0"))
        total = self.base_score + earned + adjustment

        record = (
            self.db.query(Score)
            .filter(Score.student_id == student_id, Score.term_id == term.id)
            .with_for_update()
            .first()
        )
        if record is None:
            record = Score(student_id=student_id, term_id=term.id)
        record.total = total
        record.status = status
        if status in (ScoreStatus.APPROVED, ScoreStatus.FINAL):
            record.approved_by = actor_id
            record.approved_at = utcnow()
        self.db.add(record)
        self.db.flush()

        emit(
            audit,
            actor_id,
            "SCORE_FINALIZE",
            student_id=student_id,
            term_id=term.id,
            total=total,
            status=status,
        )
        return record
