"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    default_code = "APP_ERROR"

    def __init__(self, message: str, status_code: int = 500, code: str | None = None):
        """Initialize exception with message, status code and machine-readable code."""
        self.message = message
        self.status_code = status_code
        self.code = code or self.default_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    default_code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found", code: str | None = None):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404, code=code)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    default_code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception.

    Raised when a requested slot is already held. The caller may retry with
    another slot; the service never retries on its own.
    """

    default_code = "CONFLICT"

    def __init__(self, message: str = "Conflict", code: str | None = None):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, code=code)


class IllegalTransitionException(ConflictException):
    """Appointment status change not permitted from the current state."""

    default_code = "ILLEGAL_TRANSITION"


class ValidationException(AppException):
    """Validation error exception."""

    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation error", code: str | None = None):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422, code=code)


class ServiceUnavailableException(AppException):
    """Storage or connectivity failure."""

    default_code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str = "Service temporarily unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)
