"""Seat slot bookkeeping for capped activities.

Every active registration of a capped activity holds a distinct ``seat_no``
in ``1..max_seats``. The (activity_id, seat_no) unique constraint makes the
database reject a second holder of the same slot, which is what keeps two
concurrent registrations from both taking the last seat.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from meritpoints.models.activity import Activity
from meritpoints.models.enums import ACTIVE_REGISTRATION_STATUSES, RegistrationStatus
from meritpoints.models.registration import Registration


def registration_counts(db: Session, activity_id: str) -> tuple[int, int]:
    """Return (registered incl. checked-in, checked-in) for one activity."""
    registered, checked_in = db.execute(
        select(
            func.count(Registration.id),
            func.coalesce(
                func.sum(case((Registration.status == RegistrationStatus.CHECKED_IN, 1), else_=0)),
                0,
            ),
        ).where(
            Registration.activity_id == activity_id,
            Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
    ).one()
    return int(registered or 0), int(checked_in or 0)


def active_count(db: Session, activity_id: str) -> int:
    return registration_counts(db, activity_id)[0]


def free_seat(db: Session, activity: Activity) -> Optional[int]:
    """Lowest unused slot in 1..max_seats, or None when every slot is taken."""
    if activity.max_seats is None:
        return None
    taken = set(
        db.scalars(
            select(Registration.seat_no).where(
                Registration.activity_id == activity.id,
                Registration.seat_no.is_not(None),
            )
        )
    )
    for seat_no in range(1, activity.max_seats + 1):
        if seat_no not in taken:
            return seat_no
    return None


def release_seat(registration: Registration) -> None:
    registration.seat_no = None


def repack_seats(db: Session, activity: Activity) -> None:
    """Renumber active registrations 1..n in registration order after a cap change."""
    registrations = (
        db.query(Registration)
        .filter(
            Registration.activity_id == activity.id,
            Registration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
        .order_by(Registration.registered_at.asc(), Registration.id.asc())
        .all()
    )
    # Clear first so the renumbering never collides with a slot still held in the table.
    for registration in registrations:
        registration.seat_no = None
    db.flush()
    if activity.max_seats is None:
        return
    for index, registration in enumerate(registrations, start=1):
        registration.seat_no = index
    db.flush()
