"""warble exception hierarchy.

Shared across the route compiler, dispatcher, middleware, and auth layer so
every module raises and catches the same types.

Two families:

- Load-time errors (``LoadError``, ``TargetResolutionError``,
  ``ConfigurationError``, ``FrozenError``) surface while the app is being
  configured. Only ``LoadError`` is recoverable (the manifest line is skipped).
- ``HTTPError`` and its subclasses are raised per request and converted to a
  response at the pipeline boundary.
"""

import logging
from dataclasses import dataclass
from typing import Any


class WarbleError(Exception):
    """Base for all warble-specific errors."""


class ConfigurationError(WarbleError):
    """Raised when app configuration is invalid.

    Typically caught during ``App._freeze()`` at startup.
    """


class FrozenError(WarbleError):
    """Raised when configuration is modified after the app has frozen."""

    def __init__(self, what: str = "configuration") -> None:
        super().__init__(f"Cannot modify frozen {what}")


class LoadError(WarbleError):
    """A manifest line could not be parsed. The line is skipped."""

    def __init__(self, message: str, *, line: str = "", lineno: int | None = None) -> None:
        super().__init__(message)
        self.line = line
        self.lineno = lineno


class TargetResolutionError(WarbleError):
    """A route target names an unsafe or unregistered handler.

    Fatal: raised while loading routes or freezing the app, never per request.
    """

    def __init__(self, target: str, reason: str) -> None:
        super().__init__(f"Invalid route target {target!r}: {reason}")
        self.target = target
        self.reason = reason


@dataclass(frozen=True, slots=True)
class HTTPError(WarbleError):
    """An error that maps directly to an HTTP status code.

    Raised by the dispatcher, middleware, auth layer, or handlers. The
    request pipeline catches these and converts them to responses.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    # Level used when the pipeline logs this error
    log_level = logging.INFO

    # Short title used as the ``error`` field of JSON bodies
    title = "Error"

    always_json = False

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class BadRequest(HTTPError):  # noqa: N818
    """400 — malformed or rejected input."""

    title = "Bad Request"

    def __init__(self, detail: str = "Bad Request") -> None:
        super().__init__(status=400, detail=detail)


class Unauthorized(HTTPError):  # noqa: N818
    """401 — the request carries no acceptable credentials."""

    title = "Unauthorized"

    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(status=401, detail=detail)


class Forbidden(HTTPError):  # noqa: N818
    """403 — authenticated, but not allowed."""

    title = "Forbidden"
    log_level = logging.WARNING

    def __init__(self, detail: str = "Forbidden") -> None:
        super().__init__(status=403, detail=detail)


class NotFound(HTTPError):  # noqa: N818
    """404 — no route matched the request path."""

    title = "Not Found"

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class PayloadTooLarge(HTTPError):  # noqa: N818
    """413 — the declared request body exceeds the configured ceiling."""

    title = "Payload Too Large"
    log_level = logging.WARNING

    def __init__(self, detail: str = "Payload Too Large") -> None:
        super().__init__(status=413, detail=detail)


class ValidationError(BadRequest):
    """Structural or content violation found by the input validator."""

    title = "Validation Error"

    def __init__(self, detail: str = "Invalid input") -> None:
        super().__init__(detail)


class RequestTooLargeError(PayloadTooLarge):
    """Declared Content-Length is above ``SecurityConfig.max_request_size``."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Request size {size} exceeds maximum {limit}")


class CSRFError(Forbidden):
    """Unsafe request without a valid CSRF token."""

    title = "CSRF token validation failed"

    # Rejections are always JSON, whatever the route or client asks for
    always_json = True

    def __init__(
        self,
        detail: str = "The request could not be authenticated. Please refresh the page and try again.",
    ) -> None:
        super().__init__(detail)


class AuthenticationFailure(Unauthorized):
    """Every auth requirement of a route failed or was unavailable.

    ``tried`` lists the requirements in the order they were evaluated.
    """

    title = "Authentication Required"

    def __init__(self, detail: str = "Authentication required", tried: tuple[str, ...] = ()) -> None:
        super().__init__(detail)
        object.__setattr__(self, "tried", tried)


class AuthorizationError(Forbidden):
    """Authenticated user lacks the role or permission for a resource."""

    def __init__(
        self,
        detail: str = "Access denied",
        *,
        resource: str | None = None,
        action: str | None = None,
        user_id: Any = None,
    ) -> None:
        super().__init__(detail)
        object.__setattr__(self, "resource", resource)
        object.__setattr__(self, "action", action)
        object.__setattr__(self, "user_id", user_id)

    def to_log_data(self) -> dict[str, Any]:
        """Structured fields for the security log."""
        return {
            "error": "AuthorizationError",
            "message": self.detail,
            "resource": self.resource,
            "action": self.action,
            "user_id": self.user_id,
        }


class HandlerError(WarbleError):
    """An uncaught exception from a route target.

    Carries the correlation id assigned when the failure was logged.
    """

    def __init__(self, error_id: str, original: BaseException) -> None:
        super().__init__(f"Handler failed (ID: {error_id}): {original!r}")
        self.error_id = error_id
        self.original = original
