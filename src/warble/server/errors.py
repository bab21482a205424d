"""Error handling pipeline for warble requests.

Maps HTTPError exceptions, registered application exceptions, and
unexpected failures to Response objects. Three paths:

- ``handle_http_error``: ``HTTPError`` raised anywhere in the pipeline.
  An ``@app.error`` handler for the exception type or status wins;
  otherwise, or when that handler raises, a negotiated JSON or plain-text
  body.
- ``handle_expected_error``: an exception registered with
  ``app.register_error_handler(exc_type, status=..., log_level=...)``.
- ``handle_internal_error``: everything else. Logged with a correlation
  id; the ``/500`` route answers when there is one.
"""

import inspect
import logging
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeAlias

from warble.context import RequestContext
from warble.errors import HandlerError, HTTPError
from warble.http.request import Request
from warble.http.response import Response, json_response, text_response
from warble.security.auth.responses import wants_json
from warble.server.negotiation import format_response

logger = logging.getLogger("warble.server")

ErrorHandlers: TypeAlias = Mapping[int | type, Callable[..., Any]]


@dataclass(frozen=True, slots=True)
class ErrorRegistration:
    """How to answer one application exception type."""

    exc_type: type[BaseException]
    status: int = 500
    log_level: int = logging.INFO
    handler: Callable[[BaseException, Request], Any] | None = None


def find_registration(
    registrations: Mapping[type, ErrorRegistration], exc: BaseException
) -> ErrorRegistration | None:
    """The registration for *exc*, walking its MRO so subclasses match."""
    for cls in type(exc).__mro__:
        registration = registrations.get(cls)
        if registration is not None:
            return registration
    return None


def call_error_handler(handler: Callable[..., Any], request: Request, exc: BaseException) -> Any:
    """Invoke an ``@app.error`` handler with introspected arguments.

    Error handlers may accept zero, one (request), or two (request, exc) args.
    """
    params = list(inspect.signature(handler).parameters.values())
    if len(params) >= 2:
        return handler(request, exc)
    if len(params) == 1:
        return handler(request)
    return handler()


def _route_definition(context: RequestContext | None) -> Any:
    return context.route if context is not None else None


def handle_http_error(
    exc: HTTPError,
    request: Request,
    context: RequestContext | None,
    error_handlers: ErrorHandlers,
) -> Response:
    """Map an HTTPError to a Response using registered error handlers."""
    logger.log(exc.log_level, "%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    # Try exact exception type, then status code
    handler = error_handlers.get(type(exc)) or error_handlers.get(exc.status)
    if handler is not None:
        try:
            response = format_response(call_error_handler(handler, request, exc))
        except Exception:
            logger.error(
                "Error in error handler for %d %s %s (ID: %s); using default response",
                exc.status,
                request.method,
                request.path,
                secrets.token_hex(8),
                exc_info=True,
            )
        else:
            # Keep the error status unless the handler chose its own
            if response.status == 200:
                response = response.with_status(exc.status)
            return response

    detail = exc.detail or f"Error {exc.status}"
    if exc.always_json or wants_json(request, _route_definition(context)):
        response = json_response({"error": exc.title, "message": detail}, status=exc.status)
    else:
        response = text_response(detail, status=exc.status)
    for name, value in exc.headers:
        response = response.with_header(name, value)
    return response


def handle_expected_error(
    exc: Exception,
    request: Request,
    context: RequestContext | None,
    registration: ErrorRegistration,
    *,
    debug: bool = False,
) -> Response:
    """Answer a registered application exception with its configured status."""
    error_class = type(exc).__name__
    error_id = secrets.token_hex(8)
    logger.log(
        registration.log_level,
        "Expected error in %s %s (ID: %s): %s: %s",
        request.method,
        request.path,
        error_id,
        error_class,
        exc,
    )

    if registration.handler is not None:
        try:
            result = registration.handler(exc, request)
        except Exception:
            logger.warning(
                "Error in custom error handler for %s; using default response",
                error_class,
                exc_info=True,
            )
        else:
            if isinstance(result, Response):
                return result if result.status != 200 else result.with_status(registration.status)
            if isinstance(result, dict):
                return json_response(result, status=registration.status)
            logger.warning(
                "Custom error handler for %s returned %s, expected a dict or Response",
                error_class,
                type(result).__name__,
            )

    message = str(exc)
    if wants_json(request, _route_definition(context)):
        body: dict[str, Any] = {"error": error_class, "message": message}
        if debug:
            body["error_id"] = error_id
        return json_response(body, status=registration.status)
    return text_response(f"{error_class}: {message}", status=registration.status)


def handle_internal_error(
    exc: Exception,
    request: Request,
    context: RequestContext | None,
    error_handlers: ErrorHandlers,
    *,
    server_error_route: Callable[[Request], Response] | None = None,
    debug: bool = False,
) -> Response:
    """Handle unexpected exceptions as 500 errors.

    Assigns a correlation id, tries a registered 500 handler and then the
    ``/500`` route, and falls back to a built-in body. Each step that
    raises is logged with its own id and the next one is tried. The id is only shown
    to clients in debug mode.
    """
    failure = HandlerError(secrets.token_hex(8), exc)
    error_id = failure.error_id
    if context is not None:
        context.error_id = error_id
    logger.error("500 %s %s: %s", request.method, request.path, failure, exc_info=exc)

    handler = error_handlers.get(500) or error_handlers.get(type(exc))
    if handler is not None:
        try:
            return format_response(call_error_handler(handler, request, exc)).with_status(500)
        except Exception as nested:
            logger.error(
                "Error in 500 handler (ID: %s, original ID: %s)",
                secrets.token_hex(8),
                error_id,
                exc_info=nested,
            )

    if server_error_route is not None:
        try:
            response = server_error_route(request)
        except Exception as nested:
            # Failures in the /500 route get their own id, linked to the original
            logger.error(
                "Error in /500 route (ID: %s, original ID: %s)",
                secrets.token_hex(8),
                error_id,
                exc_info=nested,
            )
        else:
            return response if response.status != 200 else response.with_status(500)

    if wants_json(request, _route_definition(context)):
        body: dict[str, Any] = {"error": "Internal Server Error"}
        if debug:
            body["message"] = "Server error occurred. Check logs for details."
            body["error_id"] = error_id
        else:
            body["message"] = "An error occurred. Please try again later."
        return json_response(body, status=500)

    if debug:
        return text_response(f"Server error (ID: {error_id}). Check logs for details.", status=500)
    return text_response("An error occurred. Please try again later.", status=500)
