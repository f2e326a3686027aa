"""One-time detection of optional schema features.

Deployments migrate at their own pace: older databases have no
``activities.points`` column and no ``scores`` table. The score engine asks
once per process which of the two exist and is handed the answer.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

SCORES_TABLE = "scores"
ACTIVITIES_TABLE = "activities"
POINTS_COLUMN = "points"


@dataclass(frozen=True)
class SchemaCapabilities:
    has_scores_table: bool
    has_activity_points: bool


def detect_capabilities(bind: Engine | Connection) -> SchemaCapabilities:
    try:
        inspector = inspect(bind)
        has_scores = inspector.has_table(SCORES_TABLE)
        has_points = False
        if inspector.has_table(ACTIVITIES_TABLE):
            columns = {column["name"].lower() for column in inspector.get_columns(ACTIVITIES_TABLE)}
            has_points = POINTS_COLUMN in columns
    except SQLAlchemyError:
        logger.exception("schema capability detection failed, assuming legacy schema")
        return SchemaCapabilities(has_scores_table=False, has_activity_points=False)

    logger.info(
        "schema capabilities detected: scores table=%s, activities.points=%s",
        has_scores,
        has_points,
    )
    return SchemaCapabilities(has_scores_table=has_scores, has_activity_points=has_points)


class CapabilityLatch:
    """Computes the capabilities on first use and serves the cached value afterwards."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: Optional[SchemaCapabilities] = None

    def get(self, bind: Engine | Connection) -> SchemaCapabilities:
        value = self._value
        if value is not None:
            return value
        with self._lock:
            if self._value is None:
                self._value = detect_capabilities(bind)
            return self._value

    @property
    def resolved(self) -> bool:
        return self._value is not None


schema_capabilities = CapabilityLatch()
