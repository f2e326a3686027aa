from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from meritpoints.core.deps import get_actor_id, get_audit_sink, get_schema_capabilities
from meritpoints.db.capabilities import SchemaCapabilities
from meritpoints.db.session import get_db
from meritpoints.schemas.score import FinalizeScore, ScoreRecordRead, ScoreSnapshot, TermScore
from meritpoints.services.audit import AuditSink
from meritpoints.services.scores import ScoreEngine

router = APIRouter(prefix="/api/scores", tags=["scores"])


def get_score_engine(
    db: Session = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_schema_capabilities),
) -> ScoreEngine:
    return ScoreEngine(db, capabilities=capabilities)


@router.get("/{student_id}", response_model=ScoreSnapshot)
def get_score(
    student_id: str,
    term_id: Optional[str] = Query(None),
    adjustment: Decimal = Query(Decimal("0")),
    engine: ScoreEngine = Depends(get_score_engine),
) -> ScoreSnapshot:
    return engine.compute_score(student_id, term_id=term_id, adjustment=adjustment)


@router.get("/{student_id}/history", response_model=List[TermScore])
def get_score_history(student_id: str, engine: ScoreEngine = Depends(get_score_engine)) -> List[TermScore]:
    return engine.history(student_id)


@router.post("/{student_id}/finalize", response_model=ScoreRecordRead)
def finalize_score(
    student_id: str,
    payload: FinalizeScore,
    db: Session = Depends(get_db),
    engine: ScoreEngine = Depends(get_score_engine),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> ScoreRecordRead:
    record = engine.finalize_score(
        student_id,
        term_id=payload.term_id,
        status=payload.status,
        actor_id=actor_id,
        adjustment=payload.adjustment,
        audit=audit,
    )
    db.commit()
    return record
