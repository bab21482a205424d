"""CSRF protection middleware — HMAC tokens bound to the session.

Safe methods (GET, HEAD, OPTIONS, TRACE) never need a token. When the
response is HTML, a fresh token is injected as
``<meta name="csrf-token">`` in the head and as a hidden input in every
form. Unsafe methods must present a valid token, taken from (in order):

1. the ``_csrf_token`` parameter (query or form body)
2. the ``X-CSRF-Token`` header
3. the ``X-XSRF-Token`` header, for ``X-Requested-With: XMLHttpRequest``

Routes declared with ``csrf=exempt`` skip verification.

Works with ``SessionMiddleware`` (the binding id lives in the session)
or without it (the binding id lives in a ``_csrf_session`` cookie).
Enable through the app::

    app.use(SessionMiddleware(SessionConfig(secret_key="...")))
    app.enable_csrf_protection()
"""

import logging
from contextvars import ContextVar

from warble.context import get_context
from warble.errors import CSRFError
from warble.http.request import Request
from warble.http.response import Response
from warble.middleware.protocol import Next
from warble.middleware.sessions import current_session
from warble.security.audit import SecurityEventName, emit_security_event
from warble.security.config import CSRF_SESSION_COOKIE, SecurityConfig
from warble.security.csrf import inject_csrf_token

logger = logging.getLogger("warble.security")

SAFE_METHODS: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

_csrf_token_var: ContextVar[str | None] = ContextVar("warble_csrf_token", default=None)


def get_csrf_token() -> str:
    """Return the CSRF token issued for the current request.

    Raises ``LookupError`` if called outside a request with CSRF
    protection active.
    """
    token = _csrf_token_var.get()
    if token is None:
        msg = "No CSRF token available. Enable CSRF protection on the app."
        raise LookupError(msg)
    return token


def extract_csrf_token(request: Request, config: SecurityConfig) -> str | None:
    """Pull the submitted token: parameter, then header, then AJAX header."""
    token = request.param(config.csrf_token_key)
    if token:
        return token
    token = request.headers.get(config.csrf_header_key)
    if token:
        return token
    if request.is_xhr:
        return request.headers.get(config.csrf_alt_header_key)
    return None


class CSRFMiddleware:
    """Verify tokens on unsafe methods; inject fresh ones into HTML."""

    __slots__ = ("_config",)

    def __init__(self, security_config: SecurityConfig) -> None:
        self._config = security_config

    def __call__(self, request: Request, next: Next) -> Response:
        cfg = self._config
        if not cfg.csrf_protection:
            return next(request)

        session = current_session()
        session_id, created = cfg.get_or_create_session_id(request, session)

        if request.method not in SAFE_METHODS:
            route = get_context().route
            if route is not None and route.csrf_exempt:
                logger.debug("CSRF check skipped for exempt route %s %s", route.verb, route.path)
            else:
                self._verify(request, session_id)

        token = cfg.generate_csrf_token(session_id)
        cv_token = _csrf_token_var.set(token)
        try:
            response = next(request)
        finally:
            _csrf_token_var.reset(cv_token)

        if request.method in SAFE_METHODS and response.is_html and isinstance(response.body, str):
            response = response.with_body(inject_csrf_token(response.text, token, cfg.csrf_token_key))
        if created and session is None:
            response = response.with_cookie(
                CSRF_SESSION_COOKIE,
                session_id,
                secure=cfg.require_secure_cookies or request.is_secure,
            )
        return response

    def _verify(self, request: Request, session_id: str) -> None:
        submitted = extract_csrf_token(request, self._config)
        if self._config.verify_csrf_token(submitted, session_id):
            return
        reason = "missing" if not submitted else "invalid"
        logger.warning("CSRF token %s for %s %s", reason, request.method, request.path)
        emit_security_event(
            SecurityEventName.CSRF_REJECTED, request=request, details={"reason": reason}
        )
        raise CSRFError()
