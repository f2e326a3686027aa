from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import model_validator

from meritpoints.models.enums import ActivityStatus, RegistrationStatus
from meritpoints.schemas.base import ORMModel


class RegistrationRead(ORMModel):
    id: str
    activity_id: str
    student_id: str
    status: RegistrationStatus
    registered_at: datetime
    checked_in_at: Optional[datetime] = None


class RegistrationRow(RegistrationRead):
    full_name: Optional[str] = None
    email: Optional[str] = None


class AttendanceMark(ORMModel):
    present: bool = True


class RegistrationStatusChange(ORMModel):
    status: RegistrationStatus


class AttendanceImport(ORMModel):
    identifiers: List[str] = []
    csv_text: Optional[str] = None

    @model_validator(mode="after")
    def require_source(self) -> "AttendanceImport":
        if not self.identifiers and not (self.csv_text or "").strip():
            raise ValueError("identifiers or csv_text is required")
        return self


class AttendanceImportResult(ORMModel):
    activity_id: str
    matched: int
    submitted: int


class UpcomingActivity(ORMModel):
    activity_id: str
    title: str
    start_at: datetime
    end_at: datetime
    status: ActivityStatus
    registration_status: RegistrationStatus
