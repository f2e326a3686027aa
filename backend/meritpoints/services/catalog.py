from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from meritpoints.models.catalog import Criterion, Student, Term


def list_terms(db: Session) -> list[Term]:
    return db.query(Term).order_by(Term.start_date.desc(), Term.id.desc()).all()


def get_term(db: Session, term_id: Optional[str]) -> Optional[Term]:
    if not term_id:
        return None
    return db.get(Term, term_id)


def current_term(db: Session, today: Optional[date] = None) -> Optional[Term]:
    """Most recent term already started, else the most recent term overall."""
    today = today or date.today()
    term = (
        db.query(Term)
        .filter(Term.start_date <= today)
        .order_by(Term.start_date.desc(), Term.id.desc())
        .first()
    )
    if term:
        return term
    return db.query(Term).order_by(Term.start_date.desc(), Term.id.desc()).first()


def list_criteria(db: Session) -> list[Criterion]:
    return db.query(Criterion).order_by(Criterion.group_no.asc(), Criterion.id.asc()).all()


def get_criterion(db: Session, criterion_id: Optional[str]) -> Optional[Criterion]:
    if not criterion_id:
        return None
    return db.get(Criterion, criterion_id)


def find_student(db: Session, identifier: str) -> Optional[Student]:
    """Resolve a student by id or email, case-insensitively."""
    value = (identifier or "").strip().lower()
    if not value:
        return None
    return (
        db.query(Student)
        .filter((func.lower(Student.id) == value) | (func.lower(Student.email) == value))
        .order_by(Student.id.asc())
        .first()
    )
