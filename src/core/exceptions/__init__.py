from src.core.exceptions.base import (
    AppException,
    NotFoundError,
    ValidationError,
    AuthenticationError,
    InvalidStartingNumberError,
    AlreadyLockedError,
    SequenceNotLockedError,
    AllocationContentionError,
    StoreUnavailableError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "AuthenticationError",
    "InvalidStartingNumberError",
    "AlreadyLockedError",
    "SequenceNotLockedError",
    "AllocationContentionError",
    "StoreUnavailableError",
]
