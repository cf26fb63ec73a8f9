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


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class AuthenticationError(AppException):
    """Authentication failed."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message=message, status_code=401)


# --- Document sequence errors ---


class InvalidStartingNumberError(ValidationError):
    """Starting number is not a positive integer within the storable range."""

    def __init__(self, value: Any):
        super().__init__(
            message=f"Starting number must be an integer from 1 to 2147483647, got {value!r}",
            field="starting_number",
        )
        self.details["code"] = "invalid_starting_number"


class AlreadyLockedError(AppException):
    """Sequence starting number was already fixed."""

    def __init__(self, tenant_id: str, document_type: str):
        super().__init__(
            message=f"Numbering for {document_type} is already locked",
            status_code=409,
            details={
                "code": "sequence_already_locked",
                "tenant_id": tenant_id,
                "document_type": document_type,
            },
        )


class SequenceNotLockedError(AppException):
    """A number was requested before a starting number was chosen."""

    def __init__(self, tenant_id: str, document_type: str):
        super().__init__(
            message=f"Choose a starting number for {document_type} before issuing documents",
            status_code=409,
            details={
                "code": "sequence_not_locked",
                "tenant_id": tenant_id,
                "document_type": document_type,
            },
        )


class AllocationContentionError(AppException):
    """Allocation kept conflicting with concurrent allocations."""

    def __init__(self, tenant_id: str, document_type: str, attempts: int):
        super().__init__(
            message=f"Could not allocate a {document_type} number after {attempts} attempts, try again",
            status_code=503,
            details={
                "code": "allocation_contention",
                "tenant_id": tenant_id,
                "document_type": document_type,
                "attempts": attempts,
            },
        )


class StoreUnavailableError(AppException):
    """Backing store failed; the operation had no effect and may be retried."""

    def __init__(self, operation: str, reason: str | None = None):
        message = f"Sequence store unavailable during {operation}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            status_code=503,
            details={"code": "store_unavailable", "operation": operation},
        )
