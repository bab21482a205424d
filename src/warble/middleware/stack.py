"""Ordered, de-duplicated middleware stack.

Entries are recorded during setup and composed into a single callable
exactly once, when the app freezes. The composed chain is reused for
every request.

An entry is either a ready callable (function or instance) or a class
plus constructor arguments. Classes whose constructor takes a
``security_config`` parameter receive the app's ``SecurityConfig`` when
the caller did not pass one.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from warble.errors import ConfigurationError, FrozenError
from warble.http.request import Request
from warble.http.response import Response
from warble.middleware.protocol import Next

logger = logging.getLogger("warble.middleware")


@dataclass(frozen=True, slots=True)
class MiddlewareSpec:
    """One stack entry: a middleware class or callable plus its arguments."""

    factory: Any
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def identity(self) -> Any:
        """What duplicates are detected by: the class, or the function itself."""
        if inspect.isclass(self.factory):
            return self.factory
        if inspect.isfunction(self.factory) or inspect.ismethod(self.factory):
            return self.factory
        return type(self.factory)

    @property
    def name(self) -> str:
        ident = self.identity
        return getattr(ident, "__qualname__", repr(ident))

    def build(self, security_config: Any) -> Callable[[Request, Next], Response]:
        """Instantiate a class entry; return callables unchanged."""
        if not inspect.isclass(self.factory):
            return self.factory
        kwargs = dict(self.kwargs)
        if "security_config" not in kwargs and _accepts_security_config(self.factory):
            kwargs["security_config"] = security_config
        return self.factory(*self.args, **kwargs)


def _accepts_security_config(cls: type) -> bool:
    try:
        params = inspect.signature(cls).parameters
    except (TypeError, ValueError):
        return False
    return "security_config" in params


def _link(middleware: Callable[[Request, Next], Response], next_handler: Next) -> Next:
    def handler(request: Request) -> Response:
        return middleware(request, next_handler)

    handler.__qualname__ = f"{getattr(middleware, '__qualname__', type(middleware).__qualname__)}.link"
    return handler


class MiddlewareStack:
    """Middleware entries in registration order (outermost first)."""

    __slots__ = ("_frozen", "_identities", "_specs")

    def __init__(self) -> None:
        self._specs: list[MiddlewareSpec] = []
        self._identities: set[Any] = set()
        self._frozen = False

    # -- Mutation (before freeze) --

    def use(self, middleware: Any, *args: Any, **kwargs: Any) -> bool:
        """Append *middleware*. Returns ``False`` if it was a skipped duplicate.

        A second entry of the same class is skipped unless the class sets
        ``allow_multiple = True``.
        """
        self._check_not_frozen()
        if not callable(middleware):
            msg = f"Middleware must be callable, got {middleware!r}"
            raise ConfigurationError(msg)
        if not inspect.isclass(middleware) and (args or kwargs):
            msg = "Constructor arguments are only accepted for middleware classes"
            raise ConfigurationError(msg)

        spec = MiddlewareSpec(middleware, args, kwargs)
        identity = spec.identity
        if identity in self._identities and not getattr(identity, "allow_multiple", False):
            logger.warning("Middleware %s already registered; skipping duplicate", spec.name)
            return False
        self._identities.add(identity)
        self._specs.append(spec)
        return True

    def remove(self, middleware: Any) -> bool:
        """Remove every entry for *middleware* (class or callable)."""
        self._check_not_frozen()
        target = MiddlewareSpec(middleware).identity
        before = len(self._specs)
        self._specs = [spec for spec in self._specs if spec.identity is not target]
        self._identities.discard(target)
        return len(self._specs) != before

    def clear(self) -> None:
        self._check_not_frozen()
        self._specs.clear()
        self._identities.clear()

    # -- Inspection --

    def includes(self, middleware: Any) -> bool:
        return MiddlewareSpec(middleware).identity in self._identities

    def __contains__(self, middleware: object) -> bool:
        return self.includes(middleware)

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[MiddlewareSpec]:
        return iter(tuple(self._specs))

    def names(self) -> list[str]:
        return [spec.name for spec in self._specs]

    def details(self) -> list[dict[str, Any]]:
        return [
            {"name": spec.name, "args": list(spec.args), "kwargs": dict(spec.kwargs)}
            for spec in self._specs
        ]

    # -- Freeze and build --

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Make the stack read-only. Idempotent."""
        if self._frozen:
            return
        self._specs = tuple(self._specs)  # type: ignore[assignment]
        self._identities = frozenset(self._identities)  # type: ignore[assignment]
        self._frozen = True

    def _check_not_frozen(self) -> None:
        if self._frozen:
            raise FrozenError("middleware stack")

    def build(self, terminal: Next, security_config: Any = None) -> Next:
        """Compose the stack around *terminal*.

        The first registered middleware is the outermost. Call once and
        keep the result; the app does this at freeze time.
        """
        handler = terminal
        for spec in reversed(self._specs):
            handler = _link(spec.build(security_config), handler)
        return handler
