"""Session middleware — signed cookie sessions.

Session data is serialized as JSON and signed using ``itsdangerous``.
The session dict is stored in a ContextVar, accessible via
``get_session()`` from any handler, strategy, or middleware.

The auth wrapper rebinds the session slot to the winning
``StrategyResult.session`` for the duration of the handler via
``bind_session``.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from time import time
from typing import Any

from warble.errors import ConfigurationError
from warble.http.request import Request
from warble.http.response import Response
from warble.middleware.protocol import Next

# -- Session ContextVar --

_session_var: ContextVar[Any] = ContextVar("warble_session", default=None)


def get_session() -> dict[str, Any]:
    """Return the current session dict.

    Raises ``LookupError`` if called outside a request with
    ``SessionMiddleware`` active.
    """
    session = _session_var.get()
    if session is None:
        msg = (
            "No active session. Ensure SessionMiddleware is added "
            "to the app before accessing the session."
        )
        raise LookupError(msg)
    return session


def current_session() -> Any:
    """Return the current session mapping, or ``None`` if there is none."""
    return _session_var.get()


@contextmanager
def bind_session(session: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    """Expose *session* as the current session inside the ``with`` block."""
    token = _session_var.set(session)
    try:
        yield session
    finally:
        _session_var.reset(token)


def regenerate_session() -> dict[str, Any]:
    """Clear the session and return the same (now empty) dict.

    Prevents session fixation by discarding all data from the previous
    session; ``SessionMiddleware`` re-signs the empty dict on the response.
    Call it on login and logout.
    """
    session = get_session()
    session.clear()
    return session


# -- Configuration --


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Session middleware configuration.

    ``secret_key`` is required. Sessions are signed, not encrypted.
    """

    secret_key: str
    cookie_name: str = "warble_session"
    max_age: int = 86400  # 24 hours
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"
    idle_timeout_seconds: int | None = None
    created_at_key: str = "__created_at"
    last_seen_at_key: str = "__last_seen_at"


# -- Middleware --


class SessionMiddleware:
    """Signed cookie session middleware.

    Reads the session cookie, verifies the signature, makes the session
    dict available via ``get_session()``, then writes it back as a
    Set-Cookie header on the response.

    Usage::

        app.use(SessionMiddleware(SessionConfig(secret_key="my-secret-key")))
    """

    __slots__ = ("_config", "_serializer", "_secure")

    def __init__(self, config: SessionConfig, security_config: Any = None) -> None:
        try:
            from itsdangerous import URLSafeTimedSerializer
        except ImportError:
            msg = (
                "SessionMiddleware requires the 'itsdangerous' package. "
                "Install it with: pip install itsdangerous"
            )
            raise ConfigurationError(msg) from None

        if not config.secret_key:
            msg = "SessionConfig.secret_key must not be empty."
            raise ConfigurationError(msg)

        self._config = config
        self._serializer = URLSafeTimedSerializer(config.secret_key, salt="warble.session")
        self._secure = config.secure or bool(getattr(security_config, "require_secure_cookies", False))

    def _load_session(self, request: Request) -> dict[str, Any]:
        """Deserialize and verify the session cookie."""
        from itsdangerous import BadSignature

        cookie_value = request.cookies.get(self._config.cookie_name)
        if not cookie_value:
            return {}

        try:
            data = self._serializer.loads(cookie_value, max_age=self._config.max_age)
        except BadSignature:
            return {}

        if not isinstance(data, dict):
            return {}

        cfg = self._config
        if cfg.idle_timeout_seconds is not None:
            try:
                last_seen = float(data.get(cfg.last_seen_at_key, time()))
            except (TypeError, ValueError):
                return {}
            if time() - last_seen > cfg.idle_timeout_seconds:
                return {}
        return data

    def _save_session(self, response: Response, session: dict[str, Any]) -> Response:
        """Serialize the session dict and set the cookie on the response."""
        cfg = self._config
        return response.with_cookie(
            name=cfg.cookie_name,
            value=self._serializer.dumps(session),
            max_age=cfg.max_age,
            path=cfg.path,
            domain=cfg.domain,
            secure=self._secure,
            httponly=cfg.httponly,
            samesite=cfg.samesite,
        )

    def __call__(self, request: Request, next: Next) -> Response:
        """Load session, dispatch, then save session to response."""
        session = self._load_session(request)
        if self._config.idle_timeout_seconds is not None:
            now = time()
            session.setdefault(self._config.created_at_key, now)
            session[self._config.last_seen_at_key] = now
        token = _session_var.set(session)

        try:
            response = next(request)
        finally:
            _session_var.reset(token)

        # Always re-sign, so the cookie's timestamp slides forward
        return self._save_session(response, session)
