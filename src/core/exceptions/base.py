from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppException):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class InvalidScopeError(ValidationError):
    """Sequence scope (or document prefix) is empty or malformed."""

    def __init__(self, scope: Any, reason: str, field: str = "scope"):
        super().__init__(message=f"Invalid sequence {field} {scope!r}: {reason}", field=field)
        self.details["scope"] = scope


class ResourceContentionError(AppException):
    """
    Sequence row lock could not be acquired in time (lock timeout, deadlock,
    serialization failure, busy database).

    The caller should roll back and retry the whole unit of work.
    """

    def __init__(self, message: str = "Resource is busy, try again", scope: str | None = None):
        details = {"scope": scope} if scope else {}
        super().__init__(message=message, status_code=409, details=details)


class StorageFailureError(AppException):
    """Storage is unavailable or rejected the write."""

    def __init__(self, message: str = "Database error", scope: str | None = None):
        details = {"scope": scope} if scope else {}
        super().__init__(message=message, status_code=500, details=details)
