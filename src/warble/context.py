"""Request-scoped context via ContextVar.

Provides:
- ``request_var``: the current ``Request`` for this thread.
- ``context_var``: the ``RequestContext`` the pipeline fills in as the
  request moves through routing, auth, and error handling.

Both are set by ``App.handle`` and reset after each request, so nothing
leaks between requests served by the same worker thread.
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from warble.http.request import Request

if TYPE_CHECKING:
    from warble.routing.route import RouteMatch
    from warble.routing.router import StaticMatch
    from warble.security.auth.result import StrategyResult
    from warble.security.config import SecurityConfig


@dataclass(slots=True)
class RequestContext:
    """Per-request facts produced for downstream handlers.

    Request-local: created fresh for every request and never shared.
    """

    security: SecurityConfig | None = None
    match: RouteMatch | StaticMatch | None = None
    strategy_result: StrategyResult | None = None
    locale: str | None = None
    error_id: str | None = None
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def route(self) -> Any:
        """The matched ``RouteDefinition``, if any (``None`` for static files)."""
        return getattr(self.match, "definition", None)

    @property
    def route_options(self) -> dict[str, str]:
        route = self.route
        return dict(route.options) if route is not None else {}

    @property
    def response_type(self) -> str:
        route = self.route
        return route.response_type if route is not None else "default"


request_var: ContextVar[Request] = ContextVar("warble_request")
"""The current request. Set by the pipeline before dispatch."""

context_var: ContextVar[RequestContext] = ContextVar("warble_context")
"""The current request context. Set alongside ``request_var``."""


def get_request() -> Request:
    """Return the current request.

    Raises ``LookupError`` if called outside a request context.
    """
    return request_var.get()


def get_context() -> RequestContext:
    """Return the current request context.

    Raises ``LookupError`` if called outside a request context.
    """
    return context_var.get()


def get_strategy_result() -> StrategyResult:
    """Return the authentication result for the current request.

    Every routed request has one; anonymous routes get an anonymous result.
    """
    result = get_context().strategy_result
    if result is None:
        msg = "No authentication result yet. It is set when the route's auth wrapper runs."
        raise LookupError(msg)
    return result


def get_locale() -> str | None:
    return get_context().locale
