"""Input validation middleware.

Runs the ``InputValidator`` over every request before it reaches a
handler: declared size first (413), then content type, then the nested
query/form/JSON parameters (400). On success the sanitized parameters
are stored on the request context for logic units.
"""

import logging
from typing import Any

from warble.context import get_context
from warble.errors import HTTPError
from warble.http.request import Request
from warble.http.response import Response
from warble.middleware.protocol import Next
from warble.security.audit import SecurityEventName, emit_security_event
from warble.security.config import SecurityConfig
from warble.security.validation import InputValidator

logger = logging.getLogger("warble.security")


class ValidationMiddleware:
    """Reject oversized, malformed, or injection-looking input."""

    __slots__ = ("_config", "_validator")

    def __init__(self, security_config: SecurityConfig) -> None:
        self._config = security_config
        self._validator = InputValidator.from_config(security_config)

    def __call__(self, request: Request, next: Next) -> Response:
        if not self._config.input_validation:
            return next(request)

        validator = self._validator
        try:
            validator.check_request_size(request.content_length)
            validator.check_content_type(request.content_type)
            params = collect_params(request)
            validator.validate_params(params)
        except HTTPError as exc:
            logger.log(exc.log_level, "Rejected %s %s: %s", request.method, request.path, exc.detail)
            emit_security_event(
                SecurityEventName.INPUT_REJECTED,
                request=request,
                details={"status": exc.status, "reason": exc.detail},
            )
            raise

        sanitized = validator.sanitize_params(params)
        get_context().params.update(sanitized)
        return next(request.with_params(sanitized))


def collect_params(request: Request) -> dict[str, Any]:
    """Query and form parameters plus a JSON object body, if any."""
    params: dict[str, Any] = dict(request.params())
    if "json" in (request.content_type or ""):
        body = request.json()
        if isinstance(body, dict):
            params.update(body)
        elif body is not None:
            params["_json"] = body
    return params
