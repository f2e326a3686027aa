from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from meritpoints.core.deps import get_actor_id, get_audit_sink
from meritpoints.db.session import get_db
from meritpoints.models.enums import RegistrationStatus
from meritpoints.schemas.activity import (
    ActivityCounts,
    ActivityDetail,
    ActivityFilter,
    ActivityInput,
    ActivityRow,
    RejectPayload,
    StatusChange,
)
from meritpoints.schemas.base import Page
from meritpoints.schemas.registration import (
    AttendanceImport,
    AttendanceImportResult,
    RegistrationRead,
    RegistrationRow,
)
from meritpoints.services import activities, attendance, registrations
from meritpoints.services.audit import AuditSink

router = APIRouter(prefix="/api/activities", tags=["activities"])


@router.get("", response_model=Page[ActivityRow])
def list_activities(
    term_id: Optional[str] = Query(None),
    criterion_id: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status", description="Status or 'all'"),
    approval_filter: Optional[str] = Query(None, alias="approval_status", description="Approval status or 'all'"),
    keyword: Optional[str] = Query(None, alias="q"),
    organizer_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
) -> Page[ActivityRow]:
    flt = ActivityFilter(
        term_id=term_id,
        criterion_id=criterion_id,
        status=status_filter,
        approval_status=approval_filter,
        keyword=keyword,
        organizer_id=organizer_id,
        page=page,
        page_size=page_size,
    )
    return activities.search(db, flt)


@router.post("", response_model=ActivityDetail, status_code=status.HTTP_201_CREATED)
def create_activity(
    activity_in: ActivityInput,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> ActivityDetail:
    activity = activities.create_activity(db, data=activity_in, actor_id=actor_id, audit=audit)
    db.commit()
    return activities.activity_detail(db, activity.id)


@router.get("/{activity_id}", response_model=ActivityDetail)
def get_activity(activity_id: str, db: Session = Depends(get_db)) -> ActivityDetail:
    return activities.activity_detail(db, activity_id)


@router.put("/{activity_id}", response_model=ActivityDetail)
def update_activity(
    activity_id: str,
    activity_in: ActivityInput,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> ActivityDetail:
    activities.update_activity(db, activity_id=activity_id, data=activity_in, actor_id=actor_id, audit=audit)
    db.commit()
    return activities.activity_detail(db, activity_id)


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_activity(
    activity_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> Response:
    activities.delete_activity(db, activity_id=activity_id, actor_id=actor_id, audit=audit)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{activity_id}/counts", response_model=ActivityCounts)
def activity_counts(activity_id: str, db: Session = Depends(get_db)) -> ActivityCounts:
    registered, checked_in = registrations.counts(db, activity_id)
    return ActivityCounts(activity_id=activity_id, registered_count=registered, checked_in_count=checked_in)


@router.post("/{activity_id}/status", response_model=ActivityDetail)
def change_status(
    activity_id: str,
    change: StatusChange,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> ActivityDetail:
    activities.set_status(db, activity_id=activity_id, status=change.status, actor_id=actor_id, audit=audit)
    db.commit()
    return activities.activity_detail(db, activity_id)


@router.post("/{activity_id}/mark-full", response_model=ActivityDetail)
def mark_full(
    activity_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> ActivityDetail:
    activities.mark_full(db, activity_id=activity_id, actor_id=actor_id, audit=audit)
    db.commit()
    return activities.activity_detail(db, activity_id)


@router.post("/{activity_id}/approve", response_model=ActivityDetail)
def approve_activity(
    activity_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> ActivityDetail:
    activities.approve(db, activity_id=activity_id, actor_id=actor_id, audit=audit)
    db.commit()
    return activities.activity_detail(db, activity_id)


@router.post("/{activity_id}/reject", response_model=ActivityDetail)
def reject_activity(
    activity_id: str,
    payload: Optional[RejectPayload] = None,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> ActivityDetail:
    reason = payload.reason if payload else None
    activities.reject(db, activity_id=activity_id, actor_id=actor_id, reason=reason, audit=audit)
    db.commit()
    return activities.activity_detail(db, activity_id)


@router.get("/{activity_id}/registrations", response_model=Page[RegistrationRow])
def list_registrations(
    activity_id: str,
    status_filter: Optional[RegistrationStatus] = Query(None, alias="status"),
    keyword: Optional[str] = Query(None, alias="q"),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
) -> Page[RegistrationRow]:
    return registrations.list_registrations(
        db,
        activity_id=activity_id,
        status=status_filter,
        keyword=keyword,
        page=page,
        page_size=page_size,
    )


@router.post("/{activity_id}/registration", response_model=RegistrationRead, status_code=status.HTTP_201_CREATED)
def register(
    activity_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> RegistrationRead:
    """Register the calling student."""
    registration = registrations.register(db, activity_id=activity_id, student_id=actor_id, audit=audit)
    db.commit()
    return registration


@router.delete("/{activity_id}/registration", status_code=status.HTTP_204_NO_CONTENT)
def unregister(
    activity_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> Response:
    registrations.unregister(db, activity_id=activity_id, student_id=actor_id, audit=audit)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{activity_id}/attendance/import", response_model=AttendanceImportResult)
def import_attendance(
    activity_id: str,
    payload: AttendanceImport,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    audit: AuditSink = Depends(get_audit_sink),
) -> AttendanceImportResult:
    identifiers = list(payload.identifiers)
    if payload.csv_text:
        identifiers.extend(attendance.parse_attendance_identifiers(payload.csv_text))
    matched = attendance.import_attendance(
        db,
        activity_id=activity_id,
        identifiers=identifiers,
        actor_id=actor_id,
        audit=audit,
    )
    db.commit()
    return AttendanceImportResult(activity_id=activity_id, matched=matched, submitted=len(identifiers))
