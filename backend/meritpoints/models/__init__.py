"""Import all models so SQLAlchemy metadata is fully registered."""

from meritpoints.db.base import Base

from meritpoints.models.activity import Activity
from meritpoints.models.audit import AuditEvent
from meritpoints.models.catalog import Criterion, Student, Term
from meritpoints.models.enums import (
    ACTIVE_REGISTRATION_STATUSES,
    ActivityStatus,
    ApprovalStatus,
    RegistrationStatus,
    ScoreStatus,
)
from meritpoints.models.registration import Registration
from meritpoints.models.score import Score

__all__ = [
    "ACTIVE_REGISTRATION_STATUSES",
    "Activity",
    "ActivityStatus",
    "ApprovalStatus",
    "AuditEvent",
    "Base",
    "Criterion",
    "Registration",
    "RegistrationStatus",
    "Score",
    "ScoreStatus",
    "Student",
    "Term",
]
