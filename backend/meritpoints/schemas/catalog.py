from __future__ import annotations

from datetime import date
from decimal import Decimal

from meritpoints.schemas.base import ORMModel


class TermRead(ORMModel):
    id: str
    name: str
    start_date: date


class CriterionRead(ORMModel):
    id: str
    name: str
    group_no: int
    max_point: Decimal
