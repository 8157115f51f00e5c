"""
Error kinds raised by the services.

Each error carries a ``kind`` tag and a ``context`` dict (entity, field,
caller/target ids, ...) so the HTTP layer can pick a status code without
re-deriving what went wrong.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for every failure a service reports to its caller."""

    kind = "error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, {self.context!r})"


class ValidationError(ServiceError):
    """Missing or malformed input the caller can fix."""

    kind = "validation"


class ConflictError(ServiceError):
    """A unique field already holds the submitted value."""

    kind = "conflict"


class NotFoundError(ServiceError):
    kind = "not_found"


class ForbiddenError(ServiceError):
    """Ownership, activation or token mismatch."""

    kind = "forbidden"


class UnauthorizedError(ServiceError):
    kind = "unauthorized"


class InternalError(ServiceError):
    """Store failure during a step that has to succeed."""

    kind = "internal"
