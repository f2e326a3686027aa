from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from meritpoints.core.errors import ConflictError, NotFoundError
from meritpoints.db.base import utcnow
from meritpoints.models.catalog import Student
from meritpoints.models.enums import ACTIVE_REGISTRATION_STATUSES, RegistrationStatus
from meritpoints.models.registration import Registration
from meritpoints.services.activities import get_activity
from meritpoints.services.audit import AuditSink, emit

logger = logging.getLogger(__name__)

_CELL_SEPARATORS = re.compile(r"[,;\t]")


def get_registration(db: Session, registration_id: str) -> Registration:
    registration = db.get(Registration, registration_id)
    if not registration:
        raise NotFoundError("Registration not found", details={"registration_id": registration_id})
    return registration


def _check_in(registration: Registration, now: datetime) -> bool:
    if registration.status == RegistrationStatus.CHECKED_IN:
        return False
    registration.status = RegistrationStatus.CHECKED_IN
    registration.checked_in_at = now
    return True


def mark_attendance(
    db: Session,
    *,
    registration_id: str,
    present: bool,
    actor_id: Optional[str] = None,
    audit: Optional[AuditSink] = None,
    now: Optional[datetime] = None,
) -> Registration:
    """Check a registration in or out.

    Marking an already checked-in registration present again succeeds without
    touching ``checked_in_at`` and without a second audit event.
    """
    registration = get_registration(db, registration_id)
    if registration.status == RegistrationStatus.CANCELLED:
        raise ConflictError("registration is cancelled", details={"registration_id": registration_id})

    if present:
        changed = _check_in(registration, now or utcnow())
        action = "ATTENDANCE_MARK"
    else:
        changed = registration.status != RegistrationStatus.REGISTERED or registration.checked_in_at is not None
        registration.status = RegistrationStatus.REGISTERED
        registration.checked_in_at = None
        action = "ATTENDANCE_UNMARK"

    db.add(registration)
    db.flush()
    if changed:
        emit(
            audit,
            actor_id,
            action,
            registration_id=registration.id,
            activity_id=registration.activity_id,
            student_id=registration.student_id,
        )
    return registration


def parse_attendance_identifiers(text: str) -> list[str]:
    """Split uploaded attendance text into identifiers.

    Cells may be separated by commas, semicolons or tabs. A header line that
    mentions both "student" and "email" is skipped.
    """
    identifiers: list[str] = []
    for line in (text or "").lstrip("\ufeff").splitlines():
        if not line.strip():
            continue
        lowered = line.lower()
        if "student" in lowered and "email" in lowered:
            continue
        for cell in _CELL_SEPARATORS.split(line):
            value = cell.strip()
            if value:
                identifiers.append(value)
    return identifiers


def _unique_identifiers(identifiers: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for identifier in identifiers:
        value = (identifier or "").strip().lower()
        if value and value not in seen:
            seen.add(value)
            unique.append(value)
    return unique


def import_attendance(
    db: Session,
    *,
    activity_id: str,
    identifiers: Iterable[str],
    actor_id: Optional[str] = None,
    audit: Optional[AuditSink] = None,
    now: Optional[datetime] = None,
) -> int:
    """Mark every matched active registration present and return how many matched."""
    activity = get_activity(db, activity_id)
    wanted = _unique_identifiers(identifiers)
    if not wanted:
        return 0

    rows = (
        db.query(Registration, Student.email)
        .outerjoin(Student, Student.id == Registration.student_id)
        .filter(
            Registration.activity_id == activity.id,
            Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
        .all()
    )
    by_identifier: dict[str, Registration] = {}
    for registration, email in rows:
        by_identifier.setdefault(registration.student_id.lower(), registration)
        if email:
            by_identifier.setdefault(email.strip().lower(), registration)

    checked_in_at = now or utcnow()
    matched: dict[str, Registration] = {}
    for identifier in wanted:
        registration = by_identifier.get(identifier)
        if registration is None or registration.id in matched:
            continue
        _check_in(registration, checked_in_at)
        db.add(registration)
        matched[registration.id] = registration

    skipped = len(wanted) - len(matched)
    if skipped:
        logger.info(
            "attendance import skipped %s unmatched identifiers",
            skipped,
            extra={"activity_id": activity.id},
        )
    if not matched:
        return 0

    db.flush()
    emit(
        audit,
        actor_id,
        "ATTENDANCE_IMPORT",
        activity_id=activity.id,
        matched=len(matched),
        submitted=len(wanted),
        student_ids=sorted(r.student_id for r in matched.values()),
    )
    return len(matched)
