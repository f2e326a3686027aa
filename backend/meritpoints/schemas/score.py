from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from meritpoints.models.enums import ScoreStatus
from meritpoints.schemas.base import ORMModel


class CriterionScore(ORMModel):
    criterion_id: str
    group_no: int
    name: str
    earned: Decimal
    max_point: Decimal


class ActivityContribution(ORMModel):
    activity_id: str
    title: str
    start_at: datetime
    end_at: datetime
    points: Decimal


class TermScore(ORMModel):
    term_id: str
    term_name: str
    total: Decimal
    classification: str
    persisted: bool = False


class ScoreSnapshot(ORMModel):
    student_id: str
    term_id: Optional[str] = None
    term_name: Optional[str] = None
    base_score: Decimal
    activity_score: Decimal = Decimal("0")
    adjustment: Decimal = Decimal("0")
    total: Decimal
    classification: str
    status: Optional[ScoreStatus] = None
    status_label: Optional[str] = None
    # False when the schema has no activity point column: breakdown is all zero by construction.
    points_supported: bool = True
    persisted: bool = False
    breakdown: List[CriterionScore] = []
    recent_activities: List[ActivityContribution] = []
    history_preview: List[TermScore] = []


class FinalizeScore(ORMModel):
    term_id: Optional[str] = None
    status: ScoreStatus = ScoreStatus.PROVISIONAL
    adjustment: Decimal = Decimal("0")


class ScoreRecordRead(ORMModel):
    student_id: str
    term_id: str
    total: Optional[Decimal] = None
    status: ScoreStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
