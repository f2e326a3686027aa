from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from meritpoints.core.errors import ConflictError, NotFoundError, ValidationError
from meritpoints.core.settings import settings
from meritpoints.models import Activity, ActivityStatus, ApprovalStatus, Registration, RegistrationStatus
from meritpoints.schemas.activity import ActivityFilter, ActivityInput
from meritpoints.services import activities, registrations

from conftest import CURRENT_TERM_ID, PREVIOUS_TERM_ID


def _input(**overrides) -> ActivityInput:
    start = datetime.now(timezone.utc) + timedelta(days=3)
    values = {
        "title": "Blood drive",
        "description": "Annual campus blood drive.",
        "term_id": CURRENT_TERM_ID,
        "criterion_id": "C2",
        "start_at": start,
        "end_at": start + timedelta(hours=4),
        "max_seats": 10,
        "points": Decimal("8"),
        "location": "Hall B",
    }
    values.update(overrides)
    return ActivityInput(**values)


def test_create_activity_starts_pending_and_owned_by_actor(seeded, audit):
    activity = activities.create_activity(
        seeded,
        data=_input(approval_status=ApprovalStatus.APPROVED),
        actor_id="staff-7",
        audit=audit,
    )

    assert len(activity.id) == 32
    assert activity.approval_status == ApprovalStatus.PENDING
    assert activity.organizer_id == "staff-7"
    assert activity.status == ActivityStatus.OPEN
    assert audit.actions == ["ACTIVITY_CREATE"]
    assert audit.events[0][2]["activity_id"] == activity.id


def test_create_activity_reports_every_invalid_field_without_writing(seeded, audit):
    start = datetime.now(timezone.utc)
    data = _input(
        title="  ",
        term_id="missing",
        criterion_id="missing",
        start_at=start,
        end_at=start - timedelta(hours=1),
        max_seats=-1,
        points=Decimal("-2"),
    )

    with pytest.raises(ValidationError) as excinfo:
        activities.create_activity(seeded, data=data, actor_id="staff-1", audit=audit)

    fields = {error["field"] for error in excinfo.value.errors}
    assert fields == {"title", "term_id", "criterion_id", "end_at", "max_seats", "points"}
    assert seeded.query(Activity).count() == 0
    assert audit.events == []


def test_create_activity_rejects_full_or_cancelled_initial_status(seeded):
    for initial in (ActivityStatus.FULL, ActivityStatus.CANCELLED):
        with pytest.raises(ValidationError) as excinfo:
            activities.create_activity(seeded, data=_input(status=initial), actor_id="staff-1")
        assert excinfo.value.errors == [{"field": "status", "message": "New activities must be OPEN or CLOSED"}]


def test_get_activity_unknown_id_is_not_found(seeded):
    with pytest.raises(NotFoundError):
        activities.activity_detail(seeded, "does-not-exist")


def test_activity_detail_includes_names_and_counts(seeded, make_activity):
    activity = make_activity()
    registrations.register(seeded, activity_id=activity.id, student_id="S1")
    second = registrations.register(seeded, activity_id=activity.id, student_id="S2")
    seeded.commit()
    seeded.get(Registration, second.id).status = RegistrationStatus.CHECKED_IN
    seeded.commit()

    detail = activities.activity_detail(seeded, activity.id)

    assert detail.term_name == "Current term"
    assert detail.criterion_name == "Volunteering"
    assert detail.registered_count == 2
    assert detail.checked_in_count == 1


def test_update_keeps_status_approval_and_organizer(seeded, make_activity, audit):
    activity = make_activity(approval_status=ApprovalStatus.PENDING, status=ActivityStatus.CLOSED)

    updated = activities.update_activity(
        seeded,
        activity_id=activity.id,
        data=_input(title="Renamed", status=ActivityStatus.OPEN, approval_status=ApprovalStatus.APPROVED),
        actor_id="someone-else",
        audit=audit,
    )

    assert updated.title == "Renamed"
    assert updated.status == ActivityStatus.CLOSED
    assert updated.approval_status == ApprovalStatus.PENDING
    assert updated.organizer_id == "staff-1"
    assert audit.actions == ["ACTIVITY_UPDATE"]


def test_update_cannot_drop_seats_below_active_registrations(seeded, make_activity):
    activity = make_activity(max_seats=5)
    for student_id in ("S1", "S2", "S3"):
        registrations.register(seeded, activity_id=activity.id, student_id=student_id)
    seeded.commit()

    with pytest.raises(ValidationError) as excinfo:
        activities.update_activity(seeded, activity_id=activity.id, data=_input(max_seats=2), actor_id="staff-1")

    assert excinfo.value.errors[0]["field"] == "max_seats"
    assert seeded.get(Activity, activity.id).max_seats == 5


def test_update_repacks_seat_slots_when_cap_changes(seeded, make_activity):
    activity = make_activity(max_seats=4)
    for student_id in ("S1", "S2", "S3"):
        registrations.register(seeded, activity_id=activity.id, student_id=student_id)
    registrations.unregister(seeded, activity_id=activity.id, student_id="S1")
    seeded.commit()

    activities.update_activity(seeded, activity_id=activity.id, data=_input(max_seats=2), actor_id="staff-1")
    seeded.commit()
    seats = sorted(r.seat_no for r in seeded.query(Registration).filter_by(activity_id=activity.id))
    assert seats == [1, 2]

    activities.update_activity(seeded, activity_id=activity.id, data=_input(max_seats=None), actor_id="staff-1")
    seeded.commit()
    assert {r.seat_no for r in seeded.query(Registration).filter_by(activity_id=activity.id)} == {None}


def test_delete_is_refused_while_registrations_are_active(seeded, make_activity, audit):
    activity = make_activity()
    registrations.register(seeded, activity_id=activity.id, student_id="S1")
    seeded.commit()

    with pytest.raises(ConflictError):
        activities.delete_activity(seeded, activity_id=activity.id, actor_id="staff-1", audit=audit)
    assert seeded.get(Activity, activity.id) is not None
    assert audit.events == []


def test_delete_removes_activity_and_cancelled_registrations(seeded, make_activity, audit):
    activity = make_activity()
    registration = registrations.register(seeded, activity_id=activity.id, student_id="S1")
    registrations.set_registration_status(
        seeded, registration_id=registration.id, status=RegistrationStatus.CANCELLED, actor_id="staff-1"
    )
    seeded.commit()

    activities.delete_activity(seeded, activity_id=activity.id, actor_id="staff-1", audit=audit)
    seeded.commit()

    assert seeded.get(Activity, activity.id) is None
    assert seeded.query(Registration).count() == 0
    assert audit.actions == ["ACTIVITY_DELETE"]
    assert audit.events[0][2]["removed_registrations"] == 1


def test_approve_moves_pending_to_approved_once(seeded, make_activity, audit):
    activity = make_activity(approval_status=ApprovalStatus.PENDING)

    approved = activities.approve(seeded, activity_id=activity.id, actor_id="dean-1", audit=audit)
    seeded.commit()
    assert approved.approval_status == ApprovalStatus.APPROVED
    assert approved.approved_by == "dean-1"
    assert approved.approved_at is not None

    with pytest.raises(ConflictError) as excinfo:
        activities.approve(seeded, activity_id=activity.id, actor_id="dean-2", audit=audit)
    assert excinfo.value.message == "approval already decided"
    with pytest.raises(ConflictError):
        activities.reject(seeded, activity_id=activity.id, actor_id="dean-2", audit=audit)

    seeded.expire_all()
    stored = seeded.get(Activity, activity.id)
    assert stored.approval_status == ApprovalStatus.APPROVED
    assert stored.approved_by == "dean-1"
    assert audit.actions == ["ACTIVITY_APPROVE"]


def test_reject_records_reason_in_audit(seeded, make_activity, audit):
    activity = make_activity(approval_status=ApprovalStatus.PENDING)

    rejected = activities.reject(
        seeded, activity_id=activity.id, actor_id="dean-1", reason="Duplicate event", audit=audit
    )

    assert rejected.approval_status == ApprovalStatus.REJECTED
    assert audit.events == [("dean-1", "ACTIVITY_REJECT", {"activity_id": activity.id, "reason": "Duplicate event"})]


def test_set_status_emits_action_specific_events(seeded, make_activity, audit):
    activity = make_activity()

    activities.set_status(seeded, activity_id=activity.id, status=ActivityStatus.CLOSED, actor_id="s", audit=audit)
    activities.set_status(seeded, activity_id=activity.id, status=ActivityStatus.OPEN, actor_id="s", audit=audit)
    activities.set_status(seeded, activity_id=activity.id, status=ActivityStatus.CANCELLED, actor_id="s", audit=audit)

    assert audit.actions == ["ACTIVITY_CLOSE", "ACTIVITY_OPEN", "ACTIVITY_CANCEL"]


def test_cancelled_activity_cannot_be_reopened(seeded, make_activity):
    activity = make_activity(status=ActivityStatus.CANCELLED)

    with pytest.raises(ConflictError):
        activities.set_status(seeded, activity_id=activity.id, status=ActivityStatus.OPEN, actor_id="staff-1")


def test_cancelled_activity_reopens_when_allowed(seeded, make_activity, monkeypatch):
    monkeypatch.setattr(settings, "allow_reopen_cancelled", True)
    activity = make_activity(status=ActivityStatus.CANCELLED)

    reopened = activities.set_status(seeded, activity_id=activity.id, status=ActivityStatus.OPEN, actor_id="staff-1")

    assert reopened.status == ActivityStatus.OPEN


def test_set_status_full_requires_exhausted_seats(seeded, make_activity):
    activity = make_activity(max_seats=3)

    with pytest.raises(ConflictError) as excinfo:
        activities.set_status(seeded, activity_id=activity.id, status=ActivityStatus.FULL, actor_id="staff-1")
    assert excinfo.value.message == "seats not yet exhausted"


def test_mark_full_refuses_unlimited_activity(seeded, make_activity):
    activity = make_activity(max_seats=None)
    registrations.register(seeded, activity_id=activity.id, student_id="S1")

    with pytest.raises(ConflictError):
        activities.mark_full(seeded, activity_id=activity.id, actor_id="staff-1")


def test_mark_full_succeeds_once_cap_is_reached(seeded, make_activity, audit):
    activity = make_activity(max_seats=1)
    registrations.register(seeded, activity_id=activity.id, student_id="S1")

    full = activities.mark_full(seeded, activity_id=activity.id, actor_id="staff-1", audit=audit)

    assert full.status == ActivityStatus.FULL
    assert audit.actions == ["ACTIVITY_FULL"]


@pytest.mark.parametrize("status", [ActivityStatus.CLOSED, ActivityStatus.FULL, ActivityStatus.CANCELLED])
def test_mark_full_requires_open_activity(seeded, make_activity, audit, status):
    activity = make_activity(max_seats=1)
    registrations.register(seeded, activity_id=activity.id, student_id="S1")
    activity.status = status
    seeded.commit()

    with pytest.raises(ConflictError) as excinfo:
        activities.mark_full(seeded, activity_id=activity.id, actor_id="staff-1", audit=audit)

    assert excinfo.value.message == "activity not open"
    assert audit.actions == []


def test_search_filters_and_counts(seeded, make_activity):
    now = datetime.now(timezone.utc)
    first = make_activity(title="Tree planting", start_at=now + timedelta(days=1), end_at=now + timedelta(days=1, hours=2))
    make_activity(
        title="Chess club",
        criterion_id="C1",
        status=ActivityStatus.CLOSED,
        start_at=now + timedelta(days=5),
        end_at=now + timedelta(days=5, hours=2),
    )
    make_activity(title="Old fair", term_id=PREVIOUS_TERM_ID, approval_status=ApprovalStatus.REJECTED)
    registrations.register(seeded, activity_id=first.id, student_id="S1")
    seeded.commit()

    page = activities.search(seeded, ActivityFilter(term_id=CURRENT_TERM_ID, status="all"))
    assert [row.title for row in page.items] == ["Chess club", "Tree planting"]
    assert page.total == 2
    assert page.items[1].registered_count == 1
    assert page.items[1].term_name == "Current term"

    open_only = activities.search(seeded, ActivityFilter(status="open"))
    assert {row.title for row in open_only.items} == {"Tree planting", "Old fair"}

    rejected = activities.search(seeded, ActivityFilter(approval_status="REJECTED"))
    assert [row.title for row in rejected.items] == ["Old fair"]

    by_criterion = activities.search(seeded, ActivityFilter(criterion_id="C1"))
    assert [row.title for row in by_criterion.items] == ["Chess club"]

    by_organizer = activities.search(seeded, ActivityFilter(organizer_id="nobody"))
    assert by_organizer.total == 0


def test_search_rejects_unknown_status(seeded):
    with pytest.raises(ValidationError):
        activities.search(seeded, ActivityFilter(status="ARCHIVED"))


def test_search_keyword_escapes_wildcards(seeded, make_activity):
    make_activity(title="100% attendance award")
    make_activity(title="Attendance drive", description="no percent here")
    make_activity(title="Under_score meetup")
    make_activity(title="Underscore meetup")

    percent = activities.search(seeded, ActivityFilter(keyword="%"))
    assert [row.title for row in percent.items] == ["100% attendance award"]

    underscore = activities.search(seeded, ActivityFilter(keyword="_"))
    assert [row.title for row in underscore.items] == ["Under_score meetup"]

    mixed_case = activities.search(seeded, ActivityFilter(keyword="ATTENDANCE"))
    assert mixed_case.total == 2


def test_search_keyword_scans_only_leading_description(seeded, make_activity):
    make_activity(title="Long one", description="x" * settings.description_search_chars + "needle")
    make_activity(title="Short one", description="a needle in front")

    page = activities.search(seeded, ActivityFilter(keyword="needle"))

    assert [row.title for row in page.items] == ["Short one"]


def test_search_clamps_paging(seeded, make_activity):
    for index in range(7):
        make_activity(title=f"Session {index}")

    small = activities.search(seeded, ActivityFilter(page_size=1))
    assert small.page_size == settings.min_page_size
    assert len(small.items) == settings.min_page_size
    assert small.total_pages == 2

    second = activities.search(seeded, ActivityFilter(page=2, page_size=1))
    assert len(second.items) == 2

    large = activities.search(seeded, ActivityFilter(page_size=1000, page=0))
    assert large.page_size == settings.max_page_size
    assert large.page == 1
