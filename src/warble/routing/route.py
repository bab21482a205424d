"""Compiled routes and route matches.

Path patterns use ``:name`` for a single segment and ``*`` for a
greedy "splat"::

    "/users/:id"         -> ^/users/([^/?#]+)$         keys ("id",)
    "/files/*"           -> ^/files/(.*?)$             keys ("splat",)
    "/docs/:lang/*.html" -> ^/docs/([^/?#]+)/(.*?)\\.html$

Compilation is deterministic: the same path always yields the same
pattern and key order.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from warble.errors import LoadError
from warble.routing.definition import RouteDefinition

_TOKEN = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)|(\*)")


def compile_path(path: str) -> tuple[re.Pattern[str], tuple[str, ...]]:
    """Compile a route path into an anchored regex plus parameter names.

    Raises ``LoadError`` if the path declares more than one splat or
    repeats a parameter name.
    """
    keys: list[str] = []
    parts: list[str] = []
    pos = 0
    for match in _TOKEN.finditer(path):
        parts.append(re.escape(path[pos : match.start()]))
        name = match.group(1)
        if name is not None:
            if name in keys:
                raise LoadError(f"Duplicate parameter {name!r} in {path!r}")
            keys.append(name)
            parts.append(r"([^/?#]+)")
        else:
            if "splat" in keys:
                raise LoadError(f"Only one '*' is allowed per path: {path!r}")
            keys.append("splat")
            parts.append(r"(.*?)")
        pos = match.end()
    parts.append(re.escape(path[pos:]))
    return re.compile("^" + "".join(parts) + "$"), tuple(keys)


def is_literal_path(path: str) -> bool:
    """True if *path* has no ``:name`` or ``*`` segments."""
    return _TOKEN.search(path) is None


def build_params(keys: tuple[str, ...], values: tuple[str, ...]) -> dict[str, Any]:
    """Pair captured values with their keys.

    ``splat`` is collected into a list. Captures without keys (a
    hand-written pattern) are returned under ``"captures"``.
    """
    if not keys:
        return {"captures": list(values)} if values else {}
    params: dict[str, Any] = {}
    for key, value in zip(keys, values, strict=False):
        value = value if value is not None else ""
        if key == "splat":
            params.setdefault("splat", []).append(value)
        else:
            params[key] = value
    return params


@dataclass(frozen=True, slots=True)
class Route:
    """A compiled route. Created at load time, never mutated."""

    definition: RouteDefinition
    pattern: re.Pattern[str] = field(compare=False)
    keys: tuple[str, ...]

    @classmethod
    def compile(cls, definition: RouteDefinition) -> Route:
        pattern, keys = compile_path(definition.path)
        return cls(definition=definition, pattern=pattern, keys=keys)

    @property
    def verb(self) -> str:
        return self.definition.verb

    @property
    def path(self) -> str:
        return self.definition.path

    @property
    def is_literal(self) -> bool:
        return not self.keys

    def match(self, path: str) -> dict[str, Any] | None:
        """Return path parameters if *path* matches, else ``None``."""
        found = self.pattern.match(path)
        if found is None:
            return None
        return build_params(self.keys, found.groups())


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful dispatch lookup.

    ``tier`` is ``"literal"`` or ``"dynamic"``.
    """

    route: Route
    path_params: Mapping[str, Any]
    tier: str = "dynamic"

    @property
    def definition(self) -> RouteDefinition:
        return self.route.definition
