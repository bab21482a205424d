"""Three-tier dispatcher.

Routes are registered during setup and frozen when the app freezes.
Lookup for a normalised path runs three tiers in order:

1. **literal** — exact path in a verb-scoped dict
2. **static** — a file under the public directory (GET/HEAD only)
3. **dynamic** — compiled patterns scanned in registration order;
   the first match wins, so specific routes must precede generic ones

HEAD requests fall back to the GET tables.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlencode

from warble._internal.freeze import deep_freeze
from warble.errors import FrozenError
from warble.routing.definition import RouteDefinition
from warble.routing.route import Route, RouteMatch, is_literal_path
from warble.routing.static import StaticFiles

logger = logging.getLogger("warble.routing")


@dataclass(frozen=True, slots=True)
class StaticMatch:
    """A request resolved to a file by the static tier."""

    file_path: Path
    tier: str = "static"


def normalize_path(raw: str) -> str:
    """Normalise a request path for lookup.

    *raw* is the server-decoded path (see ``wsgi_path``) and is not
    decoded again. Guarantees a leading slash
    and strips a trailing slash (except for ``/`` itself).
    """
    path = raw or "/"
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


class Router:
    """Verb-scoped route tables with literal/static/dynamic lookup.

    Usage::

        router = Router()
        router.add(RouteDefinition.parse("GET", "/users/:id", "Users#show"))
        router.compile()
        match = router.resolve("GET", "/users/42")
    """

    __slots__ = ("_compiled", "_definitions", "_dynamic", "_literal", "_routes", "_static")

    def __init__(self, static: StaticFiles | None = None) -> None:
        self._literal: dict[str, dict[str, Route]] = {}
        self._dynamic: dict[str, list[Route]] = {}
        self._definitions: dict[str, RouteDefinition] = {}
        self._routes: list[Route] = []
        self._static = static
        self._compiled = False

    # -- Registration --

    def add(self, definition: RouteDefinition) -> Route:
        """Compile and register a route. Must be called before compile()."""
        if self._compiled:
            raise FrozenError("route tables")

        route = Route.compile(definition)
        verb = definition.verb
        if is_literal_path(definition.path):
            key = normalize_path(definition.path)
            table = self._literal.setdefault(verb, {})
            if key in table:
                logger.warning("Route %s %s redefined; last definition wins", verb, key)
            table[key] = route
        else:
            self._dynamic.setdefault(verb, []).append(route)
        self._definitions.setdefault(definition.definition, definition)
        self._routes.append(route)
        return route

    def compile(self) -> None:
        """Freeze the route tables. No more routes can be added."""
        if self._compiled:
            return
        self._literal = deep_freeze(self._literal)
        self._dynamic = deep_freeze(self._dynamic)
        self._definitions = deep_freeze(self._definitions)
        self._routes = deep_freeze(self._routes)
        self._compiled = True

    @property
    def frozen(self) -> bool:
        return self._compiled

    @property
    def routes(self) -> tuple[Route, ...]:
        """All routes in registration order."""
        return tuple(self._routes)

    @property
    def literal_routes(self) -> Mapping[str, Mapping[str, Route]]:
        return self._literal

    @property
    def dynamic_routes(self) -> Mapping[str, tuple[Route, ...] | list[Route]]:
        return self._dynamic

    @property
    def static(self) -> StaticFiles | None:
        return self._static

    # -- Lookup --

    def _verbs(self, method: str) -> tuple[str, ...]:
        return ("HEAD", "GET") if method == "HEAD" else (method,)

    def literal(self, method: str, path: str) -> Route | None:
        """Exact-path lookup (also used for the ``/404`` and ``/500`` routes)."""
        for verb in self._verbs(method):
            route = self._literal.get(verb, {}).get(path)
            if route is not None:
                return route
        return None

    def resolve(self, method: str, path: str) -> RouteMatch | StaticMatch | None:
        """Run the three tiers for an already-normalised *path*."""
        route = self.literal(method, path)
        if route is not None:
            return RouteMatch(route=route, path_params={}, tier="literal")

        if self._static is not None and method in ("GET", "HEAD"):
            file_path = self._static.lookup(path)
            if file_path is not None:
                return StaticMatch(file_path=file_path)

        for verb in self._verbs(method):
            for candidate in self._dynamic.get(verb, ()):
                params = candidate.match(path)
                if params is not None:
                    return RouteMatch(route=candidate, path_params=params, tier="dynamic")
        return None

    # -- URI generation --

    def uri(self, target: str, params: Mapping[str, Any] | None = None) -> str | None:
        """Build a path for the route whose target is *target*.

        Path parameters are substituted; leftover params become the
        query string. Returns ``None`` if no route has that target.
        """
        definition = self._definitions.get(target)
        if definition is None:
            return None
        remaining = dict(params or {})
        path = definition.path
        for key in Route.compile(definition).keys:
            if key == "splat":
                value = remaining.pop("splat", "")
                if isinstance(value, (list, tuple)):
                    value = value[0] if value else ""
                path = path.replace("*", quote(str(value), safe="/"), 1)
            else:
                value = remaining.pop(key, "")
                encoded = quote(str(value), safe="")
                path = re.sub(rf":{key}(?![A-Za-z0-9_])", lambda _m: encoded, path, count=1)
        if remaining:
            path = f"{path}?{urlencode(remaining, doseq=True)}"
        return path
