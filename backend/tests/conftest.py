from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from meritpoints.core.settings import settings
from meritpoints.db.base import Base
from meritpoints.db.capabilities import SchemaCapabilities
from meritpoints.db.session import build_engine
from meritpoints.models import Activity, ActivityStatus, ApprovalStatus, Criterion, Student, Term

FULL_SCHEMA = SchemaCapabilities(has_scores_table=True, has_activity_points=True)
LEGACY_SCHEMA = SchemaCapabilities(has_scores_table=False, has_activity_points=False)

TODAY = date.today()
CURRENT_TERM_ID = "T-CUR"
PREVIOUS_TERM_ID = "T-PREV"
FUTURE_TERM_ID = "T-NEXT"


def make_engine():
    return build_engine("sqlite+pysqlite://", poolclass=StaticPool)


class RecordingAuditSink:
    def __init__(self) -> None:
        self.events: list[tuple[Optional[str], str, dict[str, Any]]] = []

    def record_event(self, actor_id, action, details=None) -> None:
        self.events.append((actor_id, action, dict(details or {})))

    @property
    def actions(self) -> list[str]:
        return [action for _, action, _ in self.events]


@pytest.fixture()
def engine():
    engine = make_engine()
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def db(engine):
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seeded(db):
    db.add_all(
        [
            Term(id=PREVIOUS_TERM_ID, name="Previous term", start_date=TODAY - timedelta(days=200)),
            Term(id=CURRENT_TERM_ID, name="Current term", start_date=TODAY - timedelta(days=30)),
            Term(id=FUTURE_TERM_ID, name="Next term", start_date=TODAY + timedelta(days=120)),
            Criterion(id="C1", name="Academic", group_no=1, max_point=Decimal("20")),
            Criterion(id="C2", name="Volunteering", group_no=2, max_point=Decimal("25")),
            Criterion(id="C3", name="Community", group_no=3, max_point=Decimal("15")),
            Student(id="S1", full_name="An Nguyen", email="an.nguyen@uni.edu"),
            Student(id="S2", full_name="Binh Tran", email="binh.tran@uni.edu"),
            Student(id="S3", full_name="Chi Le", email="chi.le@uni.edu"),
            Student(id="S4", full_name="Dung Pham", email="dung.pham@uni.edu"),
        ]
    )
    db.commit()
    return db


@pytest.fixture()
def audit():
    return RecordingAuditSink()


@pytest.fixture()
def make_activity(seeded):
    """Insert an activity directly, bypassing registry validation."""

    def _make(**overrides) -> Activity:
        now = datetime.now(timezone.utc)
        values = {
            "title": "Campus clean-up",
            "description": "Bring gloves.",
            "term_id": CURRENT_TERM_ID,
            "criterion_id": "C2",
            "start_at": now + timedelta(days=2),
            "end_at": now + timedelta(days=2, hours=3),
            "status": ActivityStatus.OPEN,
            "approval_status": ApprovalStatus.APPROVED,
            "max_seats": None,
            "points": Decimal("5"),
            "organizer_id": "staff-1",
        }
        values.update(overrides)
        activity = Activity(**values)
        seeded.add(activity)
        seeded.commit()
        return activity

    return _make


@pytest.fixture(autouse=True)
def early_registration(monkeypatch):
    """Accept sign-ups before start_at.

    Most activities here start in the future so that unregister stays
    possible; tests of the start-of-window rule switch the setting back on.
    """
    monkeypatch.setattr(settings, "registration_requires_started", False)
