from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from meritpoints.models.enums import ActivityStatus, ApprovalStatus
from meritpoints.schemas.base import ORMModel


class ActivityInput(ORMModel):
    """Staff-supplied activity fields; business validation happens in the registry."""

    title: str = ""
    description: Optional[str] = None
    term_id: Optional[str] = None
    criterion_id: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    status: ActivityStatus = ActivityStatus.OPEN
    max_seats: Optional[int] = None
    points: Optional[Decimal] = None
    location: Optional[str] = None
    # Accepted for compatibility with older clients and always ignored.
    approval_status: Optional[ApprovalStatus] = None


class ActivityFilter(ORMModel):
    term_id: Optional[str] = None
    criterion_id: Optional[str] = None
    status: Optional[str] = None
    approval_status: Optional[str] = None
    keyword: Optional[str] = None
    organizer_id: Optional[str] = None
    page: int = 1
    page_size: Optional[int] = None


class ActivityRow(ORMModel):
    id: str
    title: str
    term_id: str
    term_name: Optional[str] = None
    criterion_id: str
    start_at: datetime
    end_at: datetime
    status: ActivityStatus
    approval_status: ApprovalStatus
    max_seats: Optional[int] = None
    points: Optional[Decimal] = None
    organizer_id: Optional[str] = None
    registered_count: int = 0


class ActivityDetail(ActivityRow):
    description: Optional[str] = None
    criterion_name: Optional[str] = None
    location: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    checked_in_count: int = 0
    created_at: datetime


class StatusChange(ORMModel):
    status: ActivityStatus


class RejectPayload(ORMModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class ActivityCounts(ORMModel):
    activity_id: str
    registered_count: int
    checked_in_count: int
