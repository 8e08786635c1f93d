"""
Structured error taxonomy for the access-control core.

Every error carries a kind, a caller-safe message and an optional context
dict. Forbidden errors never carry context so a denial cannot reveal whether
the target row exists.
"""

from typing import Any, Dict, Optional


class AccessError(Exception):
    kind = "error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.kind, "detail": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class NotFoundError(AccessError):
    kind = "not_found"
    status_code = 404


class ForbiddenError(AccessError):
    kind = "forbidden"
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class ConflictError(AccessError):
    kind = "conflict"
    status_code = 409


class StaleStateError(ConflictError):
    """Roster or target row changed between authorization and execution."""


class ValidationError(AccessError):
    kind = "validation_error"
    status_code = 422


class UnavailableError(AccessError):
    kind = "unavailable"
    status_code = 503
    retryable = True
