"""
Error taxonomy for the claim workflow.
Every error carries a stable kind plus human-readable detail; the web layer maps kinds to HTTP status.
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base class for all workflow errors."""

    kind = "WORKFLOW"
    http_status = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and API responses."""
        out: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(WorkflowError):
    """Malformed or missing input. User-correctable."""

    kind = "VALIDATION"
    http_status = 400


class AuthorizationError(WorkflowError):
    """Caller lacks the role or ownership needed for the operation."""

    kind = "AUTHORIZATION"
    http_status = 403


class NotFoundError(WorkflowError):
    kind = "NOT_FOUND"
    http_status = 404


class PreconditionError(WorkflowError):
    """Entity is not in a state that satisfies the operation's precondition."""

    kind = "PRECONDITION"
    http_status = 422


class StateError(WorkflowError):
    """Transition not allowed from the entity's current state."""

    kind = "STATE"
    http_status = 409


class ConflictError(WorkflowError):
    """Uniqueness violation (e.g. duplicate asset claim)."""

    kind = "CONFLICT"
    http_status = 409


class ConcurrentModificationError(WorkflowError):
    """
    A compare-and-set write lost the race: the stored status changed after it was read.
    Callers should re-fetch and may retry.
    """

    kind = "CONCURRENT_MODIFICATION"
    http_status = 409


class ExternalServiceError(WorkflowError):
    """Blob store, OCR or discovery collaborator failed or timed out."""

    kind = "EXTERNAL_SERVICE"
    http_status = 502


class AuditWriteError(WorkflowError):
    """The audit entry could not be written; the triggering change is rolled back."""

    kind = "AUDIT_WRITE"
    http_status = 500
