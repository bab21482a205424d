"""Per-route authentication wrapper.

Every route is wrapped, with or without an ``auth`` option, so handlers
can always rely on a ``StrategyResult`` in the request context:

- no ``auth`` option: an anonymous result
- ``auth=a,b,c``: requirements are tried left to right and the first
  strategy that succeeds wins; later strategies are never called

If every requirement fails (or names no registered strategy) the handler
does not run and the request is rejected with 401 or a login redirect.
"""

import logging
from collections.abc import Callable
from dataclasses import replace

from warble.context import get_context
from warble.errors import AuthenticationFailure
from warble.http.request import Request
from warble.http.response import Response
from warble.middleware.sessions import bind_session
from warble.routing.definition import RouteDefinition
from warble.security.audit import SecurityEventName, emit_security_event
from warble.security.auth.resolver import StrategyResolver
from warble.security.auth.responses import authentication_required
from warble.security.auth.result import StrategyResult

logger = logging.getLogger("warble.security")


class RouteAuthWrapper:
    """Run a route's auth requirements before its handler."""

    __slots__ = ("definition", "handler", "login_path", "resolver")

    def __init__(
        self,
        handler: Callable[[Request], Response],
        definition: RouteDefinition,
        resolver: StrategyResolver,
        *,
        login_path: str | None = None,
    ) -> None:
        self.handler = handler
        self.definition = definition
        self.resolver = resolver
        self.login_path = login_path

    def __repr__(self) -> str:
        return f"<RouteAuthWrapper {self.definition}>"

    def __call__(self, request: Request) -> Response:
        context = get_context()
        requirements = self.definition.auth_requirements

        if not requirements:
            context.strategy_result = StrategyResult.anonymous(ip=request.remote_addr)
            return self.handler(request)

        tried: list[str] = []
        reasons: list[str] = []
        for requirement in requirements:
            tried.append(requirement)
            resolved = self.resolver.resolve(requirement)
            if resolved is None:
                logger.warning(
                    "No auth strategy registered for %r (route %s %s)",
                    requirement,
                    self.definition.verb,
                    self.definition.path,
                )
                reasons.append("unregistered")
                continue

            outcome = resolved.strategy.authenticate(request, resolved.argument)
            if isinstance(outcome, StrategyResult):
                result = replace(outcome, strategy_name=resolved.name)
                context.strategy_result = result
                logger.debug("Authenticated %s %s via %s", request.method, request.path, resolved.name)
                with bind_session(result.session):
                    return self.handler(request)
            reasons.append(outcome.failure_reason if outcome is not None else "no result")

        failure = AuthenticationFailure(tried=tuple(tried))
        logger.warning(
            "Authentication failed for %s %s; tried %s",
            request.method,
            request.path,
            ", ".join(failure.tried),
        )
        emit_security_event(
            SecurityEventName.AUTH_FAILED,
            request=request,
            details={"tried": list(failure.tried), "reasons": reasons},
        )
        return authentication_required(request, self.definition, failure, login_path=self.login_path)
