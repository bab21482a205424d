"""Security configuration — mutable during setup, frozen at first request.

``SecurityConfig`` is owned by the ``App`` and handed to every middleware
that asks for it. Once the app freezes, every mutator (and plain attribute
assignment) raises ``FrozenError``.
"""

import ipaddress
import logging
import secrets
from collections.abc import Mapping, MutableMapping
from types import MappingProxyType
from typing import Any

from warble.errors import FrozenError, RequestTooLargeError
from warble.http.request import Request
from warble.security import csrf as csrf_tokens

logger = logging.getLogger("warble.security")

DEFAULT_SECURITY_HEADERS: Mapping[str, str] = MappingProxyType(
    {
        "X-Content-Type-Options": "nosniff",
        "X-XSS-Protection": "1; mode=block",
        "Referrer-Policy": "strict-origin-when-cross-origin",
    }
)

# Cookie holding the CSRF binding id when no session middleware is active
CSRF_SESSION_COOKIE = "_csrf_session"
_SESSION_ID_COOKIES = (CSRF_SESSION_COOKIE, "session_id", "_session_id")


class SecurityConfig:
    """Security settings shared by the CSRF, validation, and rate-limit layers.

    Attributes:
        csrf_protection: Verify tokens on unsafe methods and inject them into HTML.
        csrf_secret: HMAC key for CSRF tokens (defaults to ``AppConfig.secret_key``).
        csrf_token_key: Form/query parameter carrying the token.
        csrf_header_key: Primary request header carrying the token.
        csrf_alt_header_key: Header honoured only on ``XMLHttpRequest`` requests.
        csrf_session_key: Session key holding the CSRF binding id.
        input_validation: Run the input validator on every routed request.
        max_request_size: Ceiling for the declared ``Content-Length``.
        max_param_depth: Maximum nesting of parameter mappings/sequences.
        max_param_keys: Maximum keys per mapping (and items per sequence).
        max_value_length: Maximum length of one scalar parameter value.
        trusted_proxies: Exact addresses, prefixes, or CIDR networks.
        require_secure_cookies: Mark cookies set by the security layer ``Secure``.
        rate_limiting: Whether ``App`` adds ``RateLimitMiddleware`` at freeze.
        security_headers: Headers attached to every response.
    """

    def __init__(self) -> None:
        self.csrf_protection = False
        self.csrf_secret = ""
        self.csrf_token_key = "_csrf_token"
        self.csrf_header_key = "X-CSRF-Token"
        self.csrf_alt_header_key = "X-XSRF-Token"
        self.csrf_session_key = "_csrf_session_id"
        self.input_validation = True
        self.max_request_size = 10 * 1024 * 1024
        self.max_param_depth = 32
        self.max_param_keys = 64
        self.max_value_length = 10_000
        self.trusted_proxies: list[str] = []
        self.require_secure_cookies = False
        self.rate_limiting = False
        self.rate_limit_requests = 100
        self.rate_limit_window = 60
        self.security_headers: MutableMapping[str, str] = dict(DEFAULT_SECURITY_HEADERS)
        object.__setattr__(self, "_frozen", False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise FrozenError("security configuration")
        object.__setattr__(self, name, value)

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "configurable"
        return f"<SecurityConfig {state} csrf={self.csrf_protection} validation={self.input_validation}>"

    # -- Freezing --

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Make the configuration read-only. Idempotent."""
        if self._frozen:
            return
        object.__setattr__(self, "trusted_proxies", tuple(self.trusted_proxies))
        object.__setattr__(self, "security_headers", MappingProxyType(dict(self.security_headers)))
        object.__setattr__(self, "_frozen", True)

    def _check_not_frozen(self) -> None:
        if self._frozen:
            raise FrozenError("security configuration")

    # -- Feature toggles --

    def enable_csrf_protection(self, secret: str | None = None) -> None:
        self._check_not_frozen()
        self.csrf_protection = True
        if secret:
            self.csrf_secret = secret

    def disable_csrf_protection(self) -> None:
        self._check_not_frozen()
        self.csrf_protection = False

    def enable_hsts(self, max_age: int = 31_536_000, *, include_subdomains: bool = True) -> None:
        """Send ``Strict-Transport-Security``.

        Only enable once HTTPS works everywhere on the domain; browsers
        cache the policy for *max_age* seconds.
        """
        self._check_not_frozen()
        value = f"max-age={max_age}"
        if include_subdomains:
            value += "; includeSubDomains"
        self.security_headers["Strict-Transport-Security"] = value

    def enable_csp(self, policy: str = "default-src 'self'") -> None:
        self._check_not_frozen()
        self.security_headers["Content-Security-Policy"] = policy

    def enable_frame_protection(self, option: str = "SAMEORIGIN") -> None:
        self._check_not_frozen()
        self.security_headers["X-Frame-Options"] = option

    def set_custom_headers(self, headers: Mapping[str, str]) -> None:
        self._check_not_frozen()
        self.security_headers.update(headers)

    # -- Trusted proxies --

    def add_trusted_proxy(self, proxy: str) -> None:
        """Trust *proxy*: an exact address, a prefix like ``"10.0."``, or a CIDR."""
        self._check_not_frozen()
        if not isinstance(proxy, str) or not proxy:
            msg = "Proxy must be a non-empty string"
            raise ValueError(msg)
        self.trusted_proxies.append(proxy)

    def is_trusted_proxy(self, address: str | None) -> bool:
        if not address:
            return False
        for proxy in self.trusted_proxies:
            if address == proxy:
                return True
            if "/" in proxy:
                try:
                    if ipaddress.ip_address(address) in ipaddress.ip_network(proxy, strict=False):
                        return True
                except ValueError:
                    continue
            elif proxy.endswith((".", ":")) and address.startswith(proxy):
                return True
        return False

    def client_ip(self, request: Request) -> str | None:
        """The client address, honouring ``X-Forwarded-For`` only behind a trusted proxy."""
        remote = request.remote_addr
        if not self.is_trusted_proxy(remote):
            return remote
        forwarded = request.headers.get("x-forwarded-for", "")
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        # Walk from the nearest hop; the first untrusted one is the client
        for hop in reversed(hops):
            if not self.is_trusted_proxy(hop):
                return hop
        return hops[0] if hops else remote

    # -- Request checks --

    def validate_request_size(self, content_length: int | str | None) -> bool:
        """Raise ``RequestTooLargeError`` if *content_length* exceeds the ceiling."""
        if content_length is None or content_length == "":
            return True
        try:
            size = int(content_length)
        except (TypeError, ValueError):
            return True
        if size > self.max_request_size:
            raise RequestTooLargeError(size, self.max_request_size)
        return True

    # -- CSRF --

    def get_or_create_session_id(
        self, request: Request, session: MutableMapping[str, Any] | None = None
    ) -> tuple[str, bool]:
        """Return ``(session_id, created)`` for binding CSRF tokens.

        Looks in the session, then in the session cookies, then mints a new
        id. A new id is stored in the session when one is available.
        """
        if session is not None:
            existing = session.get(self.csrf_session_key)
            if isinstance(existing, str) and existing:
                return existing, False
        for name in _SESSION_ID_COOKIES:
            value = request.cookies.get(name)
            if value:
                if session is not None:
                    session[self.csrf_session_key] = value
                return value, False
        session_id = secrets.token_hex(16)
        if session is not None:
            session[self.csrf_session_key] = session_id
        return session_id, True

    def generate_csrf_token(self, session_id: str) -> str:
        return csrf_tokens.generate_csrf_token(self.csrf_secret, session_id)

    def verify_csrf_token(self, token: str | None, session_id: str) -> bool:
        return csrf_tokens.verify_csrf_token(self.csrf_secret, token, session_id)
