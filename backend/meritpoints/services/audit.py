from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meritpoints.models.audit import AuditEvent

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def record_event(self, actor_id: Optional[str], action: str, details: Optional[dict[str, Any]] = None) -> None:
        ...


def _normalize(details: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if details is None:
        return None
    # Decimals, datetimes and enums become JSON-safe strings.
    return json.loads(json.dumps(details, default=str))


class SessionAuditSink:
    """Writes audit events into the caller's transaction.

    The insert runs inside a SAVEPOINT so a failed audit write rolls back only
    itself and never the business change it describes.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def record_event(self, actor_id: Optional[str], action: str, details: Optional[dict[str, Any]] = None) -> None:
        try:
            with self.db.begin_nested():
                self.db.add(AuditEvent(actor_id=actor_id, action=action, details_json=_normalize(details)))
        except SQLAlchemyError:
            logger.warning(
                "audit event not recorded",
                exc_info=True,
                extra={"actor_id": actor_id, "action": action},
            )


def emit(audit: Optional[AuditSink], actor_id: Optional[str], action: str, **details: Any) -> None:
    if audit is None:
        return
    try:
        audit.record_event(actor_id, action, details)
    except Exception:
        # Audit delivery must never fail the operation that triggered it.
        logger.warning("audit sink raised", exc_info=True, extra={"actor_id": actor_id, "action": action})
