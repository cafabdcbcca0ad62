"""
Custom exception classes for the application.

These exceptions are caught by global exception handlers in exception_handlers.py,
providing consistent error responses across all API endpoints.

Usage:
    from repodesk.exceptions import NotFoundError, InvalidPathError

    # In services and route handlers - just raise, no try-except needed
    raise NotFoundError("File")              # 404: "File not found"
    raise InvalidPathError("../etc/passwd")  # 400: "Invalid path: ../etc/passwd"
    raise StorageUnavailableError("put")     # 503: "Object storage unavailable: put"
"""


class AppException(Exception):
    """
    Base exception class for application-level errors.

    All custom exceptions should inherit from this class.
    The global exception handler will catch these and return
    appropriate HTTP responses.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code to return
        error_code: Machine-readable error code for client handling
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or f"ERR_{status_code}"
        super().__init__(message)


class NotFoundError(AppException):
    """
    Resource not found (404).

    Usage:
        raise NotFoundError("File")        # "File not found"
        raise NotFoundError("Repository")  # "Repository not found"
    """

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
        )


class ValidationError(AppException):
    """
    Validation error (400).

    Usage:
        raise ValidationError("Unsupported repository URL")
    """

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
        )


class InvalidPathError(ValidationError):
    """Empty path or a path escaping the repository root (400)."""

    def __init__(self, path: str):
        super().__init__(f"Invalid path: {path!r}")
        self.error_code = "INVALID_PATH"
        self.path = path


class ConflictError(AppException):
    """
    Remote content changed since the last known hash (409).

    Raised by the GitHub client for a conditioned write whose hash no longer
    matches. Push downgrades it to a per-file report entry.
    """

    def __init__(self, path: str, reason: str | None = None):
        message = f"Conflict on {path}"
        if reason:
            message = f"Conflict on {path}: {reason}"
        super().__init__(
            message=message,
            status_code=409,
            error_code="CONFLICT",
        )
        self.path = path


class StorageUnavailableError(AppException):
    """
    Object storage unreachable or rejected the call (503).

    Usage:
        raise StorageUnavailableError("upload 12/src/main.py", "connection refused")
    """

    def __init__(self, operation: str, reason: str | None = None):
        message = f"Object storage unavailable: {operation}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message=message,
            status_code=503,
            error_code="STORAGE_UNAVAILABLE",
        )


class ObjectNotFoundError(AppException):
    """Object key absent from the storage bucket. Internal; callers fall back or ignore."""

    def __init__(self, key: str):
        super().__init__(
            message=f"Object {key} not found",
            status_code=404,
            error_code="OBJECT_NOT_FOUND",
        )
        self.key = key


class ConfigurationError(AppException):
    """
    Configuration missing or invalid (400).

    Usage:
        raise ConfigurationError("GitHub", "token")  # "Please configure GitHub token first"
    """

    def __init__(self, config_name: str, config_type: str = "configuration"):
        super().__init__(
            message=f"Please configure {config_name} {config_type} first",
            status_code=400,
            error_code="CONFIGURATION_MISSING",
        )


class CredentialMissingError(ConfigurationError):
    """No GitHub token stored for the session."""

    def __init__(self):
        super().__init__("GitHub", "token")
        self.error_code = "CREDENTIAL_MISSING"


class CredentialInvalidError(AppException):
    """GitHub rejected the token (401)."""

    def __init__(self, service: str = "GitHub"):
        super().__init__(
            message=f"{service} token is invalid or lacks permissions",
            status_code=401,
            error_code="CREDENTIAL_INVALID",
        )


class RemoteError(AppException):
    """
    External service error (502).

    Usage:
        raise RemoteError("GitHub API", "status 500")
        raise RemoteError("Tracker", "timeout")
    """

    def __init__(self, service: str, reason: str | None = None, status_code: int = 502):
        message = f"{service} error"
        if reason:
            message = f"{service} error: {reason}"
        super().__init__(
            message=message,
            status_code=status_code,
            error_code="EXTERNAL_SERVICE_ERROR",
        )


class RateLimitError(RemoteError):
    """Upstream rate limit exceeded (429)."""

    def __init__(self, service: str = "GitHub API"):
        super().__init__(service, "rate limit exceeded", status_code=429)
        self.error_code = "RATE_LIMITED"
