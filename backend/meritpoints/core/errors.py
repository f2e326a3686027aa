"""Domain failures raised by the services.

Each class maps to one HTTP status in ``meritpoints.main`` so callers can tell
"bad input" from "not allowed right now" from "does not exist".
"""

from __future__ import annotations

from typing import Any, Optional


class MeritPointsError(Exception):
    """Base class for every failure the core reports to its callers."""

    code = "error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(MeritPointsError):
    """Malformed or out-of-range input, reported per field."""

    code = "validation_error"

    def __init__(self, errors: list[dict[str, str]], message: str = "Invalid input") -> None:
        super().__init__(message)
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}], message=message)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = self.errors
        return payload


class ConflictError(MeritPointsError):
    """The request is well-formed but the current state does not allow it."""

    code = "conflict"


class NotFoundError(MeritPointsError):
    code = "not_found"


class StorageError(MeritPointsError):
    """The store failed or lacks a facility the operation needs."""

    code = "storage_error"
