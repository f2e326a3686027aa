from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meritpoints.core.errors import ConflictError, NotFoundError, ValidationError
from meritpoints.core.settings import settings
from meritpoints.db.base import as_utc, utcnow
from meritpoints.models.activity import Activity
from meritpoints.models.catalog import Student
from meritpoints.models.enums import ACTIVE_REGISTRATION_STATUSES, ActivityStatus, RegistrationStatus
from meritpoints.models.registration import Registration
from meritpoints.schemas.base import Page
from meritpoints.schemas.registration import RegistrationRow, UpcomingActivity
from meritpoints.services import seats
from meritpoints.services.activities import escape_like, get_activity
from meritpoints.services.attendance import get_registration, mark_attendance
from meritpoints.services.audit import AuditSink, emit

logger = logging.getLogger(__name__)

UPCOMING_WINDOW = timedelta(days=7)
SEAT_CLAIM_ATTEMPTS = 2


def _reject(reason: str, *, activity_id: str, student_id: str) -> ConflictError:
    logger.warning(
        "registration rejected: %s",
        reason,
        extra={"activity_id": activity_id, "student_id": student_id},
    )
    return ConflictError(reason, details={"activity_id": activity_id, "student_id": student_id})


def _is_seat_conflict(exc: IntegrityError) -> bool:
    # The seat constraint mentions seat_no in its name and in the SQLite message.
    return "seat" in str(exc.orig).lower()


def _find(db: Session, activity_id: str, student_id: str) -> Optional[Registration]:
    return (
        db.query(Registration)
        .filter(Registration.activity_id == activity_id, Registration.student_id == student_id)
        .first()
    )


def _claim_seat(db: Session, activity: Activity, student_id: str) -> Optional[int]:
    if activity.max_seats is None:
        return None
    if seats.active_count(db, activity.id) >= activity.max_seats:
        raise _reject("activity full", activity_id=activity.id, student_id=student_id)
    seat_no = seats.free_seat(db, activity)
    if seat_no is None:
        raise _reject("activity full", activity_id=activity.id, student_id=student_id)
    return seat_no


def _activate(
    db: Session,
    *,
    activity: Activity,
    student_id: str,
    existing: Optional[Registration],
    seat_no: Optional[int],
    now: datetime,
) -> Registration:
    with db.begin_nested():
        if existing is not None:
            registration = existing
            registration.status = RegistrationStatus.REGISTERED
            registration.seat_no = seat_no
            registration.registered_at = now
            registration.checked_in_at = None
        else:
            registration = Registration(
                activity_id=activity.id,
                student_id=student_id,
                status=RegistrationStatus.REGISTERED,
                seat_no=seat_no,
                registered_at=now,
            )
        db.add(registration)
        db.flush()
    return registration


def _take_seat(
    db: Session,
    *,
    activity: Activity,
    student_id: str,
    existing: Optional[Registration],
    now: datetime,
) -> tuple[Registration, Optional[int]]:
    """Claim a seat and activate the registration.

    A concurrent request can take the slot between the lookup and the insert;
    the first such loss is retried with a freshly chosen slot.
    """
    attempt = 1
    while True:
        seat_no = _claim_seat(db, activity, student_id)
        try:
            registration = _activate(
                db,
                activity=activity,
                student_id=student_id,
                existing=existing,
                seat_no=seat_no,
                now=now,
            )
        except IntegrityError as exc:
            if not _is_seat_conflict(exc):
                raise _reject("already registered", activity_id=activity.id, student_id=student_id) from exc
            if attempt >= SEAT_CLAIM_ATTEMPTS:
                raise _reject("seat taken, please retry", activity_id=activity.id, student_id=student_id) from exc
            attempt += 1
            logger.info(
                "seat %s taken concurrently, picking another",
                seat_no,
                extra={"activity_id": activity.id, "student_id": student_id},
            )
            continue
        return registration, seat_no


def register(
    db: Session,
    *,
    activity_id: str,
    student_id: str,
    audit: Optional[AuditSink] = None,
    now: Optional[datetime] = None,
) -> Registration:
    """Register a student for an open activity.

    The checks below produce readable rejections; the unique constraints on
    (activity, student) and (activity, seat) are what actually stop a double
    registration or an overbooking when two requests race.
    """
    student_id = (student_id or "").strip()
    if not student_id:
        raise ValidationError.single("student_id", "Student is required")

    activity = get_activity(db, activity_id, lock=True)
    now = now or utcnow()
    if activity.status != ActivityStatus.OPEN:
        raise _reject("activity not open", activity_id=activity.id, student_id=student_id)
    if now > as_utc(activity.end_at):
        raise _reject("registration window has closed", activity_id=activity.id, student_id=student_id)
    if settings.registration_requires_started and now < as_utc(activity.start_at):
        raise _reject("registration window has not opened", activity_id=activity.id, student_id=student_id)

    existing = _find(db, activity.id, student_id)
    if existing is not None and existing.status in ACTIVE_REGISTRATION_STATUSES:
        raise _reject("already registered", activity_id=activity.id, student_id=student_id)

    registration, seat_no = _take_seat(
        db, activity=activity, student_id=student_id, existing=existing, now=now
    )
    emit(
        audit,
        student_id,
        "REGISTRATION_CREATE",
        registration_id=registration.id,
        activity_id=activity.id,
        student_id=student_id,
        seat_no=seat_no,
    )
    return registration


def unregister(
    db: Session,
    *,
    activity_id: str,
    student_id: str,
    audit: Optional[AuditSink] = None,
    now: Optional[datetime] = None,
) -> None:
    activity = get_activity(db, activity_id, lock=True)
    now = now or utcnow()
    if activity.status != ActivityStatus.OPEN:
        raise _reject("activity not open", activity_id=activity.id, student_id=student_id)

    registration = _find(db, activity.id, student_id)
    if registration is None or registration.status == RegistrationStatus.CANCELLED:
        raise NotFoundError(
            "Registration not found",
            details={"activity_id": activity.id, "student_id": student_id},
        )
    if registration.status != RegistrationStatus.REGISTERED:
        raise _reject("attendance already recorded", activity_id=activity.id, student_id=student_id)
    if now >= as_utc(activity.start_at):
        raise _reject("activity already started", activity_id=activity.id, student_id=student_id)

    registration_id = registration.id
    db.delete(registration)
    db.flush()
    emit(
        audit,
        student_id,
        "REGISTRATION_DELETE",
        registration_id=registration_id,
        activity_id=activity.id,
        student_id=student_id,
    )


def counts(db: Session, activity_id: str) -> tuple[int, int]:
    activity = get_activity(db, activity_id)
    return seats.registration_counts(db, activity.id)


def set_registration_status(
    db: Session,
    *,
    registration_id: str,
    status: RegistrationStatus,
    actor_id: str,
    audit: Optional[AuditSink] = None,
    now: Optional[datetime] = None,
) -> Registration:
    """Staff override of a single registration.

    Cancelling frees the seat. Reactivating a cancelled registration goes
    through the same capacity checks as a new registration but ignores the
    activity status and window.
    """
    registration = get_registration(db, registration_id)
    if status == RegistrationStatus.CHECKED_IN:
        return mark_attendance(
            db, registration_id=registration.id, present=True, actor_id=actor_id, audit=audit, now=now
        )

    if status == RegistrationStatus.CANCELLED:
        if registration.status == RegistrationStatus.CANCELLED:
            return registration
        registration.status = RegistrationStatus.CANCELLED
        registration.checked_in_at = None
        seats.release_seat(registration)
        db.add(registration)
        db.flush()
        emit(
            audit,
            actor_id,
            "REGISTRATION_CANCEL",
            registration_id=registration.id,
            activity_id=registration.activity_id,
            student_id=registration.student_id,
        )
        return registration

    if registration.status != RegistrationStatus.CANCELLED:
        return mark_attendance(
            db, registration_id=registration.id, present=False, actor_id=actor_id, audit=audit, now=now
        )

    activity = get_activity(db, registration.activity_id, lock=True)
    registration, seat_no = _take_seat(
        db,
        activity=activity,
        student_id=registration.student_id,
        existing=registration,
        now=now or utcnow(),
    )
    emit(
        audit,
        actor_id,
        "REGISTRATION_REACTIVATE",
        registration_id=registration.id,
        activity_id=activity.id,
        student_id=registration.student_id,
        seat_no=seat_no,
    )
    return registration


def list_registrations(
    db: Session,
    *,
    activity_id: str,
    status: Optional[RegistrationStatus] = None,
    keyword: Optional[str] = None,
    page: int = 1,
    page_size: Optional[int] = None,
) -> Page[RegistrationRow]:
    activity = get_activity(db, activity_id)
    page = max(1, page or 1)
    page_size = settings.clamp_page_size(page_size)

    query = (
        db.query(Registration, Student.full_name, Student.email)
        .outerjoin(Student, Student.id == Registration.student_id)
        .filter(Registration.activity_id == activity.id)
    )
    if status is not None:
        query = query.filter(Registration.status == status)
    text = (keyword or "").strip()
    if text:
        pattern = f"%{escape_like(text.lower())}%"
        query = query.filter(
            or_(
                func.lower(Registration.student_id).like(pattern, escape="\\"),
                func.lower(Student.full_name).like(pattern, escape="\\"),
                func.lower(Student.email).like(pattern, escape="\\"),
            )
        )

    total = query.order_by(None).count()
    rows = (
        query.order_by(Registration.registered_at.desc(), Registration.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    items = [
        RegistrationRow.model_validate(registration).model_copy(update={"full_name": full_name, "email": email})
        for registration, full_name, email in rows
    ]
    return Page[RegistrationRow](items=items, total=total, page=page, page_size=page_size)


def upcoming_registrations(
    db: Session,
    *,
    student_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[UpcomingActivity]:
    """Active registrations whose activity starts inside [start, end]; defaults to the next seven days."""
    start = as_utc(start) or utcnow()
    end = as_utc(end) or start + UPCOMING_WINDOW
    if end < start:
        raise ValidationError.single("end", "Window end must not precede its start")

    rows = (
        db.query(Registration, Activity)
        .join(Activity, Activity.id == Registration.activity_id)
        .filter(
            Registration.student_id == student_id,
            Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
            Activity.status != ActivityStatus.CANCELLED,
            Activity.start_at >= start,
            Activity.start_at <= end,
        )
        .order_by(Activity.start_at.asc(), Activity.id.asc())
        .all()
    )
    return [
        UpcomingActivity(
            activity_id=activity.id,
            title=activity.title,
            start_at=activity.start_at,
            end_at=activity.end_at,
            status=activity.status,
            registration_status=registration.status,
        )
        for registration, activity in rows
    ]
