"""
Error taxonomy shared by every service.

Services raise these; the API layer renders them (see ``src.main``).
Each error carries a stable ``code`` and the HTTP status it maps to.
"""

from typing import Any, Dict, Optional


class PlatformError(Exception):
    """Base class for all expected, caller-visible failures."""

    code: str = "INTERNAL"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.field:
            body["field"] = self.field
        return body

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.message!r}>"


class Unauthenticated(PlatformError):
    """No caller identity."""
    code = "UNAUTHENTICATED"
    http_status = 401


class PermissionDenied(PlatformError):
    """Caller lacks the required role or relationship."""
    code = "PERMISSION_DENIED"
    http_status = 403


class InvalidArgument(PlatformError):
    """Malformed or out-of-range input."""
    code = "INVALID_ARGUMENT"
    http_status = 400


class FailedPrecondition(PlatformError):
    """Valid request, but the current state disallows the action."""
    code = "FAILED_PRECONDITION"
    http_status = 409


class NotFound(PlatformError):
    """Referenced entity is absent."""
    code = "NOT_FOUND"
    http_status = 404


class Internal(PlatformError):
    """Unexpected failure in a dependency."""
    code = "INTERNAL"
    http_status = 500
