from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from meritpoints.db.session import get_db
from meritpoints.schemas.catalog import CriterionRead, TermRead
from meritpoints.services import catalog

router = APIRouter(prefix="/api/catalog", tags=["catalog"])


@router.get("/terms", response_model=List[TermRead])
def list_terms(db: Session = Depends(get_db)) -> List[TermRead]:
    return catalog.list_terms(db)


@router.get("/criteria", response_model=List[CriterionRead])
def list_criteria(db: Session = Depends(get_db)) -> List[CriterionRead]:
    return catalog.list_criteria(db)
