from typing import Any, Optional


class AppException(Exception):
    """Base exception for all application-specific errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[Any] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    """Exception raised when a resource is not found."""

    def __init__(self, message: str = "Resource not found", code: str = "NOT_FOUND", details: Optional[Any] = None):
        super().__init__(code=code, message=message, status_code=404, details=details)


class ValidationException(AppException):
    """Exception raised when validation fails."""

    def __init__(self, message: str = "Validation failed", code: str = "VALIDATION_ERROR", details: Optional[Any] = None):
        super().__init__(code=code, message=message, status_code=400, details=details)


class UnauthorizedException(AppException):
    """Exception raised when authentication fails."""

    def __init__(self, message: str = "Unauthorized access", code: str = "UNAUTHORIZED", details: Optional[Any] = None):
        super().__init__(code=code, message=message, status_code=401, details=details)


class ForbiddenException(AppException):
    """Exception raised when an authenticated caller may not perform the action."""

    def __init__(self, message: str = "Forbidden", code: str = "FORBIDDEN", details: Optional[Any] = None):
        super().__init__(code=code, message=message, status_code=403, details=details)


class ConflictException(AppException):
    def __init__(self, message: str = "Conflict", code: str = "CONFLICT", details: Optional[Any] = None):
        super().__init__(code=code, message=message, status_code=409, details=details)


class PayloadTooLargeException(AppException):
    def __init__(self, message: str = "Request body too large", details: Optional[Any] = None):
        super().__init__(code="PAYLOAD_TOO_LARGE", message=message, status_code=413, details=details)


class FeatureUnavailableException(AppException):
    """Raised when an optional table is missing from the connected database."""

    def __init__(self, feature: str, message: Optional[str] = None):
        super().__init__(
            code="FEATURE_UNAVAILABLE",
            message=message or f"{feature} is not available on this deployment",
            status_code=503,
            details={"feature": feature},
        )


class ServiceUnavailableException(AppException):
    """Transient failure; the client may retry the same request."""

    def __init__(self, message: str = "Service temporarily unavailable", details: Optional[Any] = None):
        merged = {"retryable": True}
        if isinstance(details, dict):
            merged.update(details)
        super().__init__(code="SERVICE_UNAVAILABLE", message=message, status_code=503, details=merged)


class UpstreamException(AppException):
    """Raised when the hosted auth provider answers with an unexpected error."""

    def __init__(self, message: str = "Upstream service error", details: Optional[Any] = None):
        super().__init__(code="UPSTREAM_ERROR", message=message, status_code=502, details=details)


class DatabaseException(AppException):
    """Exception raised for database-related errors."""

    def __init__(
        self, message: str = "Database error occurred", details: Optional[Any] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=message,
            status_code=500,
            details=details,
        )
