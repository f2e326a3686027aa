from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from meritpoints.db.capabilities import SchemaCapabilities, schema_capabilities
from meritpoints.db.session import get_db
from meritpoints.services.audit import AuditSink, SessionAuditSink


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> str:
    """Actor identity is supplied by the caller; only its presence is checked."""
    actor_id = (x_actor_id or "").strip()
    if not actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing actor identity")
    return actor_id


def get_audit_sink(db: Session = Depends(get_db)) -> AuditSink:
    return SessionAuditSink(db)


def get_schema_capabilities(db: Session = Depends(get_db)) -> SchemaCapabilities:
    return schema_capabilities.get(db.get_bind())
