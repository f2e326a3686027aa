from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from meritpoints.core.errors import ConflictError, NotFoundError, ValidationError
from meritpoints.core.settings import settings
from meritpoints.db.base import as_utc, utcnow
from meritpoints.models.activity import Activity
from meritpoints.models.catalog import Term
from meritpoints.models.enums import ACTIVE_REGISTRATION_STATUSES, ActivityStatus, ApprovalStatus
from meritpoints.models.registration import Registration
from meritpoints.schemas.activity import ActivityDetail, ActivityFilter, ActivityInput, ActivityRow
from meritpoints.schemas.base import Page
from meritpoints.services import catalog, seats
from meritpoints.services.audit import AuditSink, emit


STATUS_ACTIONS: dict[ActivityStatus, str] = {
    ActivityStatus.OPEN: "ACTIVITY_OPEN",
    ActivityStatus.CLOSED: "ACTIVITY_CLOSE",
    ActivityStatus.FULL: "ACTIVITY_FULL",
    ActivityStatus.CANCELLED: "ACTIVITY_CANCEL",
}

INITIAL_STATUSES = (ActivityStatus.OPEN, ActivityStatus.CLOSED)


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _enum_filter(value: Optional[str], enum_cls, field: str):
    text = (value or "").strip()
    if not text or text.lower() == "all":
        return None
    try:
        return enum_cls(text.upper())
    except ValueError:
        raise ValidationError.single(field, f"Unknown {field} '{text}'") from None


def search(db: Session, flt: ActivityFilter) -> Page[ActivityRow]:
    page = max(1, flt.page or 1)
    page_size = settings.clamp_page_size(flt.page_size)

    registered = (
        select(Registration.activity_id, func.count(Registration.id).label("registered_count"))
        .where(Registration.status.in_(ACTIVE_REGISTRATION_STATUSES))
        .group_by(Registration.activity_id)
        .subquery()
    )
    query = (
        db.query(Activity, Term.name, func.coalesce(registered.c.registered_count, 0))
        .join(Term, Term.id == Activity.term_id)
        .outerjoin(registered, registered.c.activity_id == Activity.id)
    )

    if flt.term_id:
        query = query.filter(Activity.term_id == flt.term_id)
    if flt.criterion_id:
        query = query.filter(Activity.criterion_id == flt.criterion_id)
    if flt.organizer_id:
        query = query.filter(Activity.organizer_id == flt.organizer_id)
    status_value = _enum_filter(flt.status, ActivityStatus, "status")
    if status_value is not None:
        query = query.filter(Activity.status == status_value)
    approval_value = _enum_filter(flt.approval_status, ApprovalStatus, "approval_status")
    if approval_value is not None:
        query = query.filter(Activity.approval_status == approval_value)
    keyword = (flt.keyword or "").strip()
    if keyword:
        pattern = f"%{escape_like(keyword.lower())}%"
        description_head = func.substr(Activity.description, 1, settings.description_search_chars)
        query = query.filter(
            or_(
                func.lower(Activity.title).like(pattern, escape="\\"),
                func.lower(description_head).like(pattern, escape="\\"),
            )
        )

    total = query.order_by(None).count()
    rows = (
        query.order_by(Activity.start_at.desc(), Activity.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    items = [
        ActivityRow.model_validate(activity).model_copy(
            update={"term_name": term_name, "registered_count": int(count or 0)}
        )
        for activity, term_name, count in rows
    ]
    return Page[ActivityRow](items=items, total=total, page=page, page_size=page_size)


def get_activity(db: Session, activity_id: str, *, lock: bool = False) -> Activity:
    query = db.query(Activity).filter(Activity.id == activity_id)
    if lock:
        query = query.populate_existing().with_for_update()
    activity = query.first()
    if not activity:
        raise NotFoundError("Activity not found", details={"activity_id": activity_id})
    return activity


def activity_detail(db: Session, activity_id: str) -> ActivityDetail:
    activity = get_activity(db, activity_id)
    registered, checked_in = seats.registration_counts(db, activity.id)
    return ActivityDetail.model_validate(activity).model_copy(
        update={
            "term_name": activity.term.name if activity.term else None,
            "criterion_name": activity.criterion.name if activity.criterion else None,
            "registered_count": registered,
            "checked_in_count": checked_in,
        }
    )


def _validate(db: Session, data: ActivityInput) -> list[dict[str, str]]:
    errors: list[dict[str, str]] = []
    if not (data.title or "").strip():
        errors.append({"field": "title", "message": "Title is required"})
    if not catalog.get_term(db, data.term_id):
        errors.append({"field": "term_id", "message": "Unknown term"})
    if not catalog.get_criterion(db, data.criterion_id):
        errors.append({"field": "criterion_id", "message": "Unknown criterion"})
    if data.start_at is None:
        errors.append({"field": "start_at", "message": "Start time is required"})
    if data.end_at is None:
        errors.append({"field": "end_at", "message": "End time is required"})
    if data.start_at is not None and data.end_at is not None and as_utc(data.start_at) >= as_utc(data.end_at):
        errors.append({"field": "end_at", "message": "End time must be after start time"})
    if data.max_seats is not None and data.max_seats < 0:
        errors.append({"field": "max_seats", "message": "Seats cannot be negative"})
    if data.points is not None and data.points < Decimal("0"):
        errors.append({"field": "points", "message": "Points cannot be negative"})
    return errors


def create_activity(
    db: Session,
    *,
    data: ActivityInput,
    actor_id: str,
    audit: Optional[AuditSink] = None,
) -> Activity:
    errors = _validate(db, data)
    if data.status not in INITIAL_STATUSES:
        errors.append({"field": "status", "message": "New activities must be OPEN or CLOSED"})
    if errors:
        raise ValidationError(errors)

    activity = Activity(
        title=data.title.strip(),
        description=data.description,
        term_id=data.term_id,
        criterion_id=data.criterion_id,
        start_at=as_utc(data.start_at),
        end_at=as_utc(data.end_at),
        status=data.status,
        approval_status=ApprovalStatus.PENDING,
        max_seats=data.max_seats,
        points=data.points,
        location=data.location,
        organizer_id=actor_id,
    )
    db.add(activity)
    db.flush()
    emit(audit, actor_id, "ACTIVITY_CREATE", activity_id=activity.id, title=activity.title)
    return activity


def update_activity(
    db: Session,
    *,
    activity_id: str,
    data: ActivityInput,
    actor_id: str,
    audit: Optional[AuditSink] = None,
) -> Activity:
    activity = get_activity(db, activity_id, lock=True)
    errors = _validate(db, data)
    if data.max_seats is not None:
        active = seats.active_count(db, activity.id)
        if data.max_seats < active:
            errors.append(
                {"field": "max_seats", "message": f"Seats cannot drop below the {active} active registrations"}
            )
    if errors:
        raise ValidationError(errors)

    cap_changed = activity.max_seats != data.max_seats
    activity.title = data.title.strip()
    activity.description = data.description
    activity.term_id = data.term_id
    activity.criterion_id = data.criterion_id
    activity.start_at = as_utc(data.start_at)
    activity.end_at = as_utc(data.end_at)
    activity.max_seats = data.max_seats
    activity.points = data.points
    activity.location = data.location
    db.add(activity)
    db.flush()
    if cap_changed:
        seats.repack_seats(db, activity)

    emit(audit, actor_id, "ACTIVITY_UPDATE", activity_id=activity.id, title=activity.title)
    return activity


def delete_activity(
    db: Session,
    *,
    activity_id: str,
    actor_id: str,
    audit: Optional[AuditSink] = None,
) -> None:
    activity = get_activity(db, activity_id, lock=True)
    active = seats.active_count(db, activity.id)
    if active:
        raise ConflictError(
            "activity has active registrations",
            details={"activity_id": activity.id, "registered_count": active},
        )
    removed = (
        db.query(Registration)
        .filter(Registration.activity_id == activity.id)
        .delete(synchronize_session=False)
    )
    title = activity.title
    db.delete(activity)
    db.flush()
    emit(
        audit,
        actor_id,
        "ACTIVITY_DELETE",
        activity_id=activity_id,
        title=title,
        removed_registrations=removed,
    )


def _guard_cancelled(activity: Activity, target: ActivityStatus) -> None:
    if (
        activity.status == ActivityStatus.CANCELLED
        and target != ActivityStatus.CANCELLED
        and not settings.allow_reopen_cancelled
    ):
        raise ConflictError("cancelled activity cannot be reopened", details={"activity_id": activity.id})


def _apply_status(
    db: Session,
    activity: Activity,
    target: ActivityStatus,
    *,
    actor_id: str,
    audit: Optional[AuditSink],
) -> Activity:
    previous = activity.status
    activity.status = target
    db.add(activity)
    db.flush()
    emit(
        audit,
        actor_id,
        STATUS_ACTIONS[target],
        activity_id=activity.id,
        previous_status=previous,
        status=target,
    )
    return activity


def set_status(
    db: Session,
    *,
    activity_id: str,
    status: ActivityStatus,
    actor_id: str,
    audit: Optional[AuditSink] = None,
) -> Activity:
    if status == ActivityStatus.FULL:
        return mark_full(db, activity_id=activity_id, actor_id=actor_id, audit=audit)
    activity = get_activity(db, activity_id, lock=True)
    _guard_cancelled(activity, status)
    return _apply_status(db, activity, status, actor_id=actor_id, audit=audit)


def mark_full(
    db: Session,
    *,
    activity_id: str,
    actor_id: str,
    audit: Optional[AuditSink] = None,
) -> Activity:
    activity = get_activity(db, activity_id, lock=True)
    if activity.status != ActivityStatus.OPEN:
        raise ConflictError(
            "activity not open",
            details={"activity_id": activity.id, "status": activity.status},
        )
    active = seats.active_count(db, activity.id)
    if activity.max_seats is None or active < activity.max_seats:
        raise ConflictError(
            "seats not yet exhausted",
            details={"activity_id": activity.id, "registered_count": active, "max_seats": activity.max_seats},
        )
    return _apply_status(db, activity, ActivityStatus.FULL, actor_id=actor_id, audit=audit)


def _decide(
    db: Session,
    *,
    activity_id: str,
    decision: ApprovalStatus,
    actor_id: str,
    audit: Optional[AuditSink],
    action: str,
    reason: Optional[str] = None,
) -> Activity:
    activity = get_activity(db, activity_id)
    now = utcnow()
    # Conditional write: of two concurrent deciders only one sees PENDING.
    result = db.execute(
        update(Activity)
        .where(Activity.id == activity_id, Activity.approval_status == ApprovalStatus.PENDING)
        .values(approval_status=decision, approved_by=actor_id, approved_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.refresh(activity)
        raise ConflictError(
            "approval already decided",
            details={"activity_id": activity_id, "approval_status": activity.approval_status.value},
        )
    db.refresh(activity)
    details = {"activity_id": activity_id}
    if reason:
        details["reason"] = reason
    emit(audit, actor_id, action, **details)
    return activity


def approve(
    db: Session,
    *,
    activity_id: str,
    actor_id: str,
    audit: Optional[AuditSink] = None,
) -> Activity:
    return _decide(
        db,
        activity_id=activity_id,
        decision=ApprovalStatus.APPROVED,
        actor_id=actor_id,
        audit=audit,
        action="ACTIVITY_APPROVE",
    )


def reject(
    db: Session,
    *,
    activity_id: str,
    actor_id: str,
    reason: Optional[str] = None,
    audit: Optional[AuditSink] = None,
) -> Activity:
    return _decide(
        db,
        activity_id=activity_id,
        decision=ApprovalStatus.REJECTED,
        actor_id=actor_id,
        audit=audit,
        action="ACTIVITY_REJECT",
        reason=(reason or "").strip() or None,
    )
