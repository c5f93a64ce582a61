"""
NoteKeeper Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every failure the service reports.
How:   Each exception carries a client-safe message and an optional context
       dict. Global exception handlers (registered in main.py) catch these
       and return structured JSON error responses with the right status.
Who:   Raised by services and the request authorizer; caught by global handlers.

Exception Hierarchy:
    NoteKeeperError (base)
    ├── ValidationError      → 400 Bad Request
    ├── UnauthorizedError    → 401 Unauthorized
    ├── NotFoundError        → 404 Not Found
    ├── ConflictError        → 409 Conflict
    ├── DatabaseError        → 500 Internal Server Error
    ├── ConfigurationError   → fatal at startup
    └── CacheError           → never surfaced (NoteService falls back)

    CacheMiss is not an error: it is the cache layer's signal that the
    caller must repopulate from the repository.
"""

from typing import Any, Dict, Optional, Tuple


class NoteKeeperError(Exception):
    """
    Base exception for all NoteKeeper application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NoteKeeperError):
    """
    Raised when client input fails a business rule.

    HTTP: 400 Bad Request. Schema-level failures (malformed JSON, missing
    fields) arrive as FastAPI's RequestValidationError and are rendered in
    the same shape by the handler in main.py.
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


class UnauthorizedError(NoteKeeperError):
    """
    Raised for a missing, invalid or expired token and for bad credentials.

    HTTP: 401 Unauthorized. The message never tells an unknown user apart
    from a wrong password; the precise reason goes into `context` for logs.
    """

    def __init__(
        self,
        message: str = "Invalid or missing credentials",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(NoteKeeperError):
    """
    Raised when a requested resource does not exist for the caller.

    HTTP: 404 Not Found. For notes this covers both "no such note" and
    "note owned by someone else"; both produce the identical message.
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


class ConflictError(NoteKeeperError):
    """Raised when registration collides with an existing username or email. HTTP 409."""

    def __init__(
        self,
        message: str = "Resource already exists",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class DatabaseError(NoteKeeperError):
    """
    Raised when database operations fail unexpectedly.

    HTTP: 500 Internal Server Error. The client always receives a generic
    message; the driver error type is kept in `context` for the server log.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigurationError(NoteKeeperError):
    """Raised at startup when required settings are missing. The process must not start."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CacheError(NoteKeeperError):
    """Raised by the notes cache when either tier fails. Always recovered by NoteService."""

    def __init__(
        self,
        message: str = "Notes cache operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class CacheMiss(Exception):
    """
    Neither cache tier holds a live entry for the user.

    `generation` is the cache generation observed when the read started;
    passing it back to NoteCache.write() drops the write if an invalidation
    happened in between.
    """

    def __init__(self, user_id: int, generation: Tuple[int, int]):
        self.user_id = user_id
        self.generation = generation
        super().__init__(f"No cached notes for user {user_id}")
