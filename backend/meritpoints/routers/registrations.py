from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from meritpoints.core.deps import get_actor_id, get_audit_sink
from meritpoints.db.session import get_db
from meritpoints.schemas.registration import (
    AttendanceMark,
    RegistrationRead,
    RegistrationStatusChange,
    UpcomingActivity,
)
from meritpoints.services import attendance, registrations
from meritpoints.services.audit import AuditSink

router = APIRouter(prefix="/api", tags=["registrations"])


@router.post("/registrations/{registration_id}/attendance", response_model=RegistrationRead)
def mark_attendance(
    registration_id: str,
    mark: AttendanceMark,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> RegistrationRead:
    registration = attendance.mark_attendance(
        db,
        registration_id=registration_id,
        present=mark.present,
        actor_id=actor_id,
        audit=audit,
    )
    db.commit()
    return registration


@router.post("/registrations/{registration_id}/status", response_model=RegistrationRead)
def change_registration_status(
    registration_id: str,
    change: RegistrationStatusChange,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> RegistrationRead:
    registration = registrations.set_registration_status(
        db,
        registration_id=registration_id,
        status=change.status,
        actor_id=actor_id,
        audit=audit,
    )
    db.commit()
    return registration


@router.get("/students/{student_id}/upcoming", response_model=List[UpcomingActivity])
def upcoming_activities(
    student_id: str,
    start: Optional[datetime] = Query(None, alias="from"),
    end: Optional[datetime] = Query(None, alias="to"),
    db: Session = Depends(get_db),
) -> List[UpcomingActivity]:
    return registrations.upcoming_registrations(db, student_id=student_id, start=start, end=end)
