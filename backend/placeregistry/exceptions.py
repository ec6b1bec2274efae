"""
Place Registry Backend — Custom Exception Hierarchy
=====================================================

What:  Defines application-specific exceptions for different error scenarios.
Why:   Custom exceptions enable targeted error handling with appropriate HTTP
       status codes and user-facing messages that never leak internals.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, dependencies and middleware; caught by global handlers.

Exception Hierarchy:
    PlaceRegistryError (base)
    ├── ValidationError          → 400 Bad Request (field-level details)
    ├── AuthenticationError      → 401 Unauthorized
    ├── AuthorizationError       → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict (retryable)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── StorageFault             → 500 (never fatal inside the place lifecycle)
    └── UnknownFault             → 500 Internal Server Error (opaque)
"""

from typing import Any, Dict, List, Optional


class PlaceRegistryError(Exception):
    """
    Base exception for all Place Registry application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client
                  unless a handler explicitly exposes it)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(PlaceRegistryError):
    """
    Raised when client input fails validation.

    HTTP:    400 Bad Request

    `fields` enumerates every offending field as {"field", "message"} so the
    caller can highlight them individually.

    Example response:
        {
            "error": "validation_error",
            "message": "Invalid place data: name, city",
            "details": {"fields": [{"field": "name", "message": "Field required"}, ...]}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        fields: Optional[List[Dict[str, str]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        self.fields = list(fields or [])
        if field and not any(f.get("field") == field for f in self.fields):
            self.fields.insert(0, {"field": field, "message": message})
        if self.fields:
            ctx["fields"] = self.fields
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(PlaceRegistryError):
    """
    Raised when the request carries no resolvable identity.

    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthorizationError(PlaceRegistryError):
    """
    Raised when an identified actor may not act on an existing record.

    HTTP:    403 Forbidden

    Only raised once the record is known to exist; a missing record is a
    NotFoundError. The message is fixed per action and never includes
    record contents.
    """

    def __init__(
        self,
        action: str = "access",
        resource: str = "place",
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = message or f"You are not allowed to {action} this {resource}"
        ctx = context or {}
        ctx["action"] = action
        super().__init__(message=message, context=ctx)
        self.action = action


class NotFoundError(PlaceRegistryError):
    """
    Raised when a requested resource does not exist.

    HTTP:    404 Not Found

    SQLAlchemy returns None for missing records; the service layer turns
    that None into this exception.
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


class ConflictError(PlaceRegistryError):
    """
    Raised when a write collides with a concurrent one.

    HTTP:    409 Conflict, with Retry-After

    The slug allocator probes before inserting but does not lock; two
    concurrent creates with the same name can both pick the same candidate.
    The unique index rejects the loser, which surfaces here. Retrying the
    request allocates the next free suffix.
    """

    def __init__(
        self,
        message: str = "The record could not be saved because of a concurrent change. Please retry.",
        retry_after: int = 1,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class StorageFault(PlaceRegistryError):
    """
    Raised when file system operations fail.

    HTTP:    500 Internal Server Error (upload endpoint only)

    Inside create/update/delete a StorageFault is caught by attempt() and
    logged; the record change still completes.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UnknownFault(PlaceRegistryError):
    """
    Raised when something unanticipated fails (database outage, bug).

    HTTP:    500 Internal Server Error

    The message returned to the client is always generic. Details are
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "An internal error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(PlaceRegistryError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


def fields_from_errors(errors) -> List[Dict[str, str]]:
    """
    Flatten Pydantic/FastAPI error dicts into [{"field", "message"}].

    The "body" prefix FastAPI adds to request-body locations is dropped, so
    a missing city reports as "city" rather than "body.city".
    """
    fields = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields.append({
            "field": ".".join(loc) or "__root__",
            "message": str(err.get("msg", "Invalid value")),
        })
    return fields
