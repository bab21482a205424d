"""In-memory rate limiting middleware.

Fixed window per client address. The client address honours
``X-Forwarded-For`` only when the direct peer is a trusted proxy.
"""

import threading
import time
from dataclasses import dataclass

from warble.http.request import Request
from warble.http.response import Response, text_response
from warble.middleware.protocol import Next
from warble.security.audit import SecurityEventName, emit_security_event
from warble.security.config import SecurityConfig


@dataclass(frozen=True, slots=True)
class RateLimitRule:
    """Limit for requests whose path starts with ``path_prefix``."""

    requests: int
    window_seconds: int = 60
    path_prefix: str = "/"
    methods: tuple[str, ...] = ()


class RateLimitMiddleware:
    """Answer 429 once a client exceeds its request budget."""

    __slots__ = ("_config", "_lock", "_next_sweep", "_rules", "_state", "_sweep_interval")

    def __init__(self, security_config: SecurityConfig, rules: tuple[RateLimitRule, ...] = ()) -> None:
        self._config = security_config
        default = RateLimitRule(
            requests=security_config.rate_limit_requests,
            window_seconds=security_config.rate_limit_window,
        )
        # Most specific prefix first
        self._rules = tuple(sorted((*rules, default), key=lambda r: len(r.path_prefix), reverse=True))
        self._lock = threading.Lock()
        # (client, prefix) -> (count, window start, window length)
        self._state: dict[tuple[str, str], tuple[int, float, int]] = {}
        self._sweep_interval = min(rule.window_seconds for rule in self._rules)
        self._next_sweep = 0.0

    def _rule_for(self, request: Request) -> RateLimitRule | None:
        for rule in self._rules:
            if rule.methods and request.method not in rule.methods:
                continue
            if request.path.startswith(rule.path_prefix):
                return rule
        return None

    def _sweep(self, now: float) -> None:
        """Drop every window that has expired. Caller holds the lock."""
        expired = [key for key, (_, start, window) in self._state.items() if now - start >= window]
        for key in expired:
            del self._state[key]
        self._next_sweep = now + self._sweep_interval

    def _check_and_update(self, key: tuple[str, str], rule: RateLimitRule, now: float) -> tuple[bool, int]:
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            count, window_start, _ = self._state.get(key, (0, now, rule.window_seconds))
            if now - window_start >= rule.window_seconds:
                count, window_start = 0, now
            count += 1
            self._state[key] = (count, window_start, rule.window_seconds)
            if count > rule.requests:
                retry_after = max(1, int(window_start + rule.window_seconds - now))
                return False, retry_after
            return True, 0

    def __call__(self, request: Request, next: Next) -> Response:
        rule = self._rule_for(request)
        if rule is None:
            return next(request)

        client = self._config.client_ip(request) or "unknown"
        allowed, retry_after = self._check_and_update((client, rule.path_prefix), rule, time.monotonic())
        if not allowed:
            emit_security_event(
                SecurityEventName.RATE_LIMIT_EXCEEDED, request=request, details={"client": client}
            )
            return text_response("Too Many Requests", status=429).with_header("Retry-After", str(retry_after))
        return next(request)
