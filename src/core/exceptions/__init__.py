from src.core.exceptions.base import (
    AppException,
    ValidationError,
    InvalidScopeError,
    ResourceContentionError,
    StorageFailureError,
)

__all__ = [
    "AppException",
    "ValidationError",
    "InvalidScopeError",
    "ResourceContentionError",
    "StorageFailureError",
]
