"""
RecipeShare Backend: Custom Exception Hierarchy
================================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return the standard error envelope with the correct HTTP status code.
Who:   Raised by services, dependencies and middleware; caught by global handlers.

Exception Hierarchy:
    RecipeShareError (base)
    ├── ValidationError          → 400 Bad Request (schema constraint violated)
    ├── BadRequestError          → 400 Bad Request (malformed id / JSON text)
    ├── AuthError                → 401 Unauthorized
    ├── ForbiddenError           → 403 Forbidden (non-owner mutation)
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    │   └── DuplicateKeyError    → 409 Conflict (unique index violation)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error

Context vs message:
    `message` is safe to return to API consumers. `context` holds debug
    details (paths, ids, driver error names) that are logged but never
    rendered into a response body.
"""

from typing import Any, Dict, List, Optional


class RecipeShareError(Exception):
    """
    Base exception for all RecipeShare application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(RecipeShareError):
    """
    Raised when a document fails schema validation.

    When:    Required field missing, enum value unknown, min/max violated.
    HTTP:    400 Bad Request

    `errors` collects one human-readable message per failing field so the
    client can show them next to the form inputs.

    Example response:
        {
            "success": false,
            "message": "Validation Error",
            "errors": ["title: Recipe title is required", "servings: must be at least 1"]
        }
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Validation Error",
        errors: Optional[List[str]] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field
        self.errors = errors or []


class BadRequestError(RecipeShareError):
    """
    Raised when a request is malformed before any schema is applied.

    When:    Id is not a valid ObjectId, a structured form field holds broken JSON.
    HTTP:    400 Bad Request
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Bad request",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthError(RecipeShareError):
    """
    Raised when the caller cannot be authenticated.

    When:    Missing bearer token, bad signature, expired token, unknown user.
    HTTP:    401 Unauthorized (with WWW-Authenticate: Bearer)
    """

    status_code = 401

    def __init__(
        self,
        message: str = "Not authorized, no token provided",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(RecipeShareError):
    """
    Raised when an authenticated caller mutates a resource they do not own.

    HTTP:    403 Forbidden

    Ownership is checked before the payload is looked at, so a non-author
    gets 403 even when the request body is invalid.
    """

    status_code = 403

    def __init__(
        self,
        message: str = "Not authorized to modify this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(RecipeShareError):
    """
    Raised when a requested resource does not exist.

    When:    GET /api/recipes/{id} with an id that matches no document.
    HTTP:    404 Not Found

    Motor returns None for missing documents (not an exception). Services
    convert None → NotFoundError so routes stay free of None checks.
    """

    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(RecipeShareError):
    """
    Raised when a write conflicts with the current state of a document.

    When:    Recipe already in favorites; recipe modified by a concurrent request.
    HTTP:    409 Conflict
    """

    status_code = 409

    def __init__(
        self,
        message: str = "The resource was modified by another request",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DuplicateKeyError(ConflictError):
    """
    Raised when MongoDB rejects a write because of a unique index.

    HTTP:    409 Conflict
    Reports the offending field (taken from the driver's keyValue).
    """

    def __init__(
        self,
        field: str = "value",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["field"] = field
        super().__init__(message=f"{field} already exists", context=ctx)
        self.field = field


class FileStorageError(RecipeShareError):
    """
    Raised when file system operations fail.

    When:    Disk full, permission denied, directory not writable, I/O error.
    HTTP:    500 Internal Server Error
    """

    status_code = 500

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(RecipeShareError):
    """
    Raised when database operations fail unexpectedly.

    When:    Server selection timeout, network error, unexpected driver failure.
    HTTP:    500 Internal Server Error

    The message returned to the client is always generic; the driver error
    is logged server-side only.
    """

    status_code = 500

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(RecipeShareError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests (with Retry-After header)
    """

    status_code = 429

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = "Too many requests from this IP, please try again later."
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
