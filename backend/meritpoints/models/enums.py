from __future__ import annotations

import enum


class ActivityStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    FULL = "FULL"
    CANCELLED = "CANCELLED"


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RegistrationStatus(str, enum.Enum):
    REGISTERED = "REGISTERED"
    CHECKED_IN = "CHECKED_IN"
    CANCELLED = "CANCELLED"


ACTIVE_REGISTRATION_STATUSES = (RegistrationStatus.REGISTERED, RegistrationStatus.CHECKED_IN)


class ScoreStatus(str, enum.Enum):
    PROVISIONAL = "PROVISIONAL"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    FINAL = "FINAL"
