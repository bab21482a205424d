"""Terminal pipeline stage: run the matched route.

The route itself is looked up by ``App.handle`` before the middleware
stack runs (so middleware can see route options such as
``csrf=exempt``). By the time a request reaches the dispatcher the
context holds a ``RouteMatch``, a ``StaticMatch``, or nothing.

Every route endpoint is wrapped in a ``RouteAuthWrapper``; the innermost
call invokes the registered handler and formats its return value
according to the route's ``response=`` option.
"""

import logging
from collections.abc import Callable, Mapping
from typing import TypeAlias

from warble.config import AppConfig
from warble.context import RequestContext, get_context
from warble.errors import NotFound
from warble.handlers.registry import Invoker
from warble.http.request import Request
from warble.http.response import Response
from warble.middleware.sessions import current_session
from warble.middleware.validation import collect_params
from warble.routing.route import Route, RouteMatch
from warble.routing.router import Router, StaticMatch
from warble.security.auth.resolver import StrategyResolver
from warble.security.auth.wrapper import RouteAuthWrapper
from warble.server.locale import negotiate_locale
from warble.server.negotiation import format_response

logger = logging.getLogger("warble.server")

Endpoint: TypeAlias = Callable[[Request], Response]


def build_endpoint(
    route: Route,
    invoker: Invoker,
    resolver: StrategyResolver,
    *,
    login_path: str | None = None,
) -> RouteAuthWrapper:
    """Wrap a route's invoker with response formatting and authentication."""
    definition = route.definition

    def endpoint(request: Request) -> Response:
        return format_response(invoker(request, get_context()), definition.response_type)

    endpoint.__qualname__ = f"endpoint[{definition.definition}]"
    return RouteAuthWrapper(endpoint, definition, resolver, login_path=login_path)


class Dispatcher:
    """Invoke the endpoint for the request's match, or the 404 fallback."""

    __slots__ = ("_config", "_endpoints", "_router")

    def __init__(self, router: Router, endpoints: Mapping[Route, Endpoint], config: AppConfig) -> None:
        self._router = router
        self._endpoints = endpoints
        self._config = config

    def __call__(self, request: Request) -> Response:
        context = get_context()
        context.locale = negotiate_locale(
            request,
            self._config.available_locales,
            self._config.default_locale,
            current_session(),
        )

        match = context.match
        if match is None:
            return self.not_found(request)
        if isinstance(match, StaticMatch):
            static = self._router.static
            if static is None:
                return self.not_found(request)
            return static.serve(match.file_path, head=request.method == "HEAD")
        return self.invoke(match, request, context)

    def invoke(self, match: RouteMatch, request: Request, context: RequestContext) -> Response:
        """Run the endpoint for *match* with path params merged into the context params."""
        if not context.params:
            context.params.update(collect_params(request))
        context.params.update(match.path_params)
        endpoint = self._endpoints[match.route]
        return endpoint(request.with_path_params(match.path_params))

    def error_route(self, path: str, request: Request, status: int) -> Response | None:
        """Run the literal ``/404`` or ``/500`` route, if the manifest has one.

        Same verb first, then GET. A 200 from the error route becomes *status*.
        """
        route = self._error_route_for(path, request.method)
        if route is None:
            return None
        context = get_context()
        match = RouteMatch(route=route, path_params={}, tier="literal")
        context.match = match
        response = self.invoke(match, request, context)
        return response.with_status(status) if response.status == 200 else response

    def not_found(self, request: Request) -> Response:
        logger.info("404 %s %s", request.method, request.path)
        response = self.error_route("/404", request, 404)
        if response is None:
            raise NotFound()
        return response

    def server_error(self, request: Request) -> Response:
        """The ``/500`` route's response. Raises ``LookupError`` when there is none."""
        response = self.error_route("/500", request, 500)
        if response is None:
            msg = "No /500 route"
            raise LookupError(msg)
        return response

    def _error_route_for(self, path: str, method: str) -> Route | None:
        return self._router.literal(method, path) or self._router.literal("GET", path)

    def has_error_route(self, path: str, method: str = "GET") -> bool:
        return self._error_route_for(path, method) is not None
