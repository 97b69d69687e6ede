"""
CustomTees Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every error scenario.
Why:   Targeted error handling with the right HTTP status and a message the
       client can show, without leaking internals.
How:   Each exception carries a message and an optional context dict.
       Global handlers (registered in main.py) turn them into the JSON
       envelope {"success": false, "error", "message", "details", "request_id"}.

Exception Hierarchy:
    CustomTeesError (base)
    ├── ValidationError          → 400 Bad Request
    ├── PreconditionError        → 400 Bad Request (entity state forbids it)
    ├── AuthenticationError      → 401 Unauthorized
    ├── AuthorizationError       → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    ├── PersistenceError         → 500 Internal Server Error
    │   └── DatabaseError
    ├── IntegrationError         → 500 Internal Server Error (message surfaced)
    │   ├── CarrierError
    │   ├── NotificationError
    │   └── PaymentGatewayError  → 502 Bad Gateway
    └── CircuitBreakerOpenError  → 503 Service Unavailable
"""

from typing import Any, Dict, List, Optional


class CustomTeesError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info, logged and returned as `details`
                  only by handlers that choose to
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CustomTeesError):
    """
    Raised when client input fails validation.

    HTTP: 400. Used for business-rule validation (package fields, product
    form fields, uploads). Schema-level validation stays FastAPI's 422.
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


class MissingFieldsError(ValidationError):
    """Required fields absent or empty. `fields` keeps the request order."""

    def __init__(self, fields: List[str], label: str = "fields"):
        self.fields = list(fields)
        super().__init__(
            message=f"Missing {label}: {', '.join(self.fields)}",
            context={"missing": self.fields},
        )


class InvalidValuesError(ValidationError):
    """Fields present but holding unusable values."""

    def __init__(self, fields: List[str], label: str = "values"):
        self.fields = list(fields)
        super().__init__(
            message=f"Invalid {label} for: {', '.join(self.fields)}",
            context={"invalid": self.fields},
        )


class PreconditionError(CustomTeesError):
    """
    The request is well-formed but the entity is not in a state that allows it.

    HTTP: 400. Examples: label creation for an order without a shipping
    address, handoff before a tracking number exists.
    """

    def __init__(
        self,
        message: str = "The operation is not allowed in the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(CustomTeesError):
    """Missing, malformed, or expired credentials. HTTP: 401."""

    def __init__(self, message: str = "Unauthorized", context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, context=context)


class AuthorizationError(CustomTeesError):
    """Authenticated caller lacks the privilege for this resource. HTTP: 403."""

    def __init__(
        self,
        message: str = "Admin access required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(CustomTeesError):
    """
    Raised when a requested resource does not exist.

    HTTP: 404. Services convert a None lookup into this exception so route
    handlers never deal with missing rows. Pass `message` to keep the exact
    wording clients already rely on (e.g. "Order not found").
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class FileStorageError(CustomTeesError):
    """
    Raised when file system operations fail.

    HTTP: 500. The client gets a generic message; the OS error is logged.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PersistenceError(CustomTeesError):
    """Saving or loading an entity failed. HTTP: 500."""

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(PersistenceError):
    """
    Raised when a database operation fails unexpectedly.

    Security: the response message is always generic. SQL text, constraint
    names, and driver errors stay in the server log.
    """


class IntegrationError(CustomTeesError):
    """
    An external collaborator (carrier, email provider, payment gateway) failed.

    HTTP: 500, with the collaborator's message surfaced so an operator can
    act on it ("Order is missing shipping address details", UPS error text).
    """

    def __init__(
        self,
        message: str = "An external service failed",
        service: str = "external",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["service"] = service
        super().__init__(message=message, context=ctx)
        self.service = service


class CarrierError(IntegrationError):
    """UPS API failure or unusable UPS response."""

    def __init__(
        self,
        message: str = "UPS request failed",
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if code:
            ctx["code"] = code
        if status_code:
            ctx["status_code"] = status_code
        super().__init__(message=message, service="ups", context=ctx)
        self.code = code
        self.status_code = status_code


class NotificationError(IntegrationError):
    """Email provider rejected or never received a message."""

    def __init__(self, message: str = "Failed to send email", context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, service="email", context=context)


class PaymentGatewayError(IntegrationError):
    """
    Square API failure.

    HTTP: 502. The payment state on our side is left untouched so the
    client can retry verification.
    """

    def __init__(
        self,
        message: str = "Unable to verify Square payment",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, service="square", context=context)


class CircuitBreakerOpenError(CustomTeesError):
    """
    Raised when a circuit breaker is OPEN.

    HTTP: 503 with Retry-After. After `cb_failure_threshold` consecutive
    failures calls fail fast for `cb_recovery_timeout` seconds, then one test
    call is allowed through (HALF_OPEN).
    """

    def __init__(
        self,
        recovery_time: int = 60,
        service: str = "carrier",
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"The {service} service is temporarily unavailable due to repeated failures. "
            f"Please retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        ctx["service"] = service
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time
        self.service = service


class RateLimitExceededError(CustomTeesError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP: 429 with a Retry-After header.
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
