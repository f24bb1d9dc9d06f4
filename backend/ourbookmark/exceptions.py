"""
OurBookmark Backend: Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for the different error scenarios.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers registered in main.py turn them into JSON error
       responses with the matching HTTP status code.
Who:   Raised by services, dependencies and middleware.

Exception Hierarchy:
    OurBookmarkError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── ConfigurationError       → 500 (server is missing a secret)
    ├── UpstreamServiceError     → 500 (book API unreachable)
    ├── FileStorageError         → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error

Recovery policy everywhere is "report and let the user retry": nothing in
this package retries automatically.
"""

from typing import Any, Dict, Optional


class OurBookmarkError(Exception):
    """
    Base exception for all OurBookmark application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, only returned for 4xx errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(OurBookmarkError):
    """
    Raised when client input fails a business rule.

    The message is written for the person filling in the form, e.g.
    "Minutes cannot exceed 24 hours (1440 minutes)".
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(OurBookmarkError):
    """Missing, expired or wrong credentials."""

    def __init__(
        self,
        message: str = "Please sign in to continue.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(OurBookmarkError):
    """The caller is signed in but may not touch this resource."""

    def __init__(
        self,
        message: str = "You do not have access to this resource.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(OurBookmarkError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows and the device store returns
    nothing for unknown ids; services convert both into this exception.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(OurBookmarkError):
    """
    The request clashes with existing state.

    Examples: a username that is already taken, a book already on a shelf,
    a child who already joined a class group.
    """

    def __init__(
        self,
        message: str = "This conflicts with existing data.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigurationError(OurBookmarkError):
    """A server-side setting needed to serve the request is missing."""

    def __init__(
        self,
        message: str = "The server is not configured for this request.",
        setting: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if setting:
            ctx["setting"] = setting
        super().__init__(message=message, context=ctx)


class UpstreamServiceError(OurBookmarkError):
    """
    A third-party book API could not be reached.

    Only raised for transport failures (DNS, connect, timeout). An upstream
    that answers with 4xx/5xx is not an error here: the proxies relay it.
    """

    def __init__(
        self,
        message: str = "The book service could not be reached. Please try again.",
        service: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if service:
            ctx["service"] = service
        super().__init__(message=message, context=ctx)
        self.service = service


class FileStorageError(OurBookmarkError):
    """
    Raised when file system operations fail.

    Covers uploaded images and the device documents alike: disk full,
    permission denied, directory not writable.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(OurBookmarkError):
    """
    Raised when database operations fail unexpectedly.

    The client always receives a generic message; the SQL error is logged.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(OurBookmarkError):
    """Raised when a client exceeds the per-IP limit on the auth endpoints."""

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Too many attempts. Please wait {retry_after} seconds before trying again."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
