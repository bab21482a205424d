"""Registered handler table.

Route targets are resolved against classes registered up front, never
by importing or looking up names at request time::

    @app.handler
    class Users:
        def __init__(self, request): ...
        def show(self): ...

    app.register(AdminPanel, name="Admin::Panel")

Resolution happens once, at freeze. An unknown class or a missing
method is a ``TargetResolutionError``.
"""

import inspect
from collections.abc import Callable, Iterator, Mapping
from typing import Any, TypeAlias

from warble._internal.freeze import deep_freeze
from warble.context import RequestContext
from warble.errors import FrozenError, TargetResolutionError
from warble.http.request import Request
from warble.routing.definition import TargetKind, TargetSpec

Invoker: TypeAlias = Callable[[Request, RequestContext], Any]


class HandlerRegistry:
    """Name -> handler class table, frozen with the app."""

    __slots__ = ("_frozen", "_handlers")

    def __init__(self) -> None:
        self._handlers: dict[str, type] = {}
        self._frozen = False

    def register(self, handler: type, name: str | None = None) -> type:
        """Register *handler* under *name* (defaults to its class name)."""
        if self._frozen:
            raise FrozenError("handler registry")
        if not inspect.isclass(handler):
            msg = f"Handlers must be classes, got {handler!r}"
            raise TypeError(msg)
        key = name or handler.__name__
        # Same name rules as manifest targets
        TargetSpec.parse(key)
        self._handlers[key] = handler
        return handler

    def freeze(self) -> None:
        if not self._frozen:
            self._handlers = deep_freeze(self._handlers)
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> type | None:
        return self._handlers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def handlers(self) -> Mapping[str, type]:
        return self._handlers

    def resolve(self, spec: TargetSpec) -> Invoker:
        """Build the invoker for *spec*, or raise ``TargetResolutionError``."""
        cls = self._handlers.get(spec.class_name)
        if cls is None:
            raise TargetResolutionError(str(spec), "no handler registered under that name")

        if spec.kind is TargetKind.LOGIC:
            if not callable(getattr(cls, "handle", None)):
                raise TargetResolutionError(str(spec), "logic units must define handle(context, params, locale)")
            return _logic_invoker(cls)

        method_name = spec.method_name or ""
        method = getattr(cls, method_name, None)
        if method is None or not callable(method):
            raise TargetResolutionError(str(spec), f"{cls.__name__} has no method {method_name!r}")
        if spec.kind is TargetKind.CLASS:
            return _class_invoker(method)
        return _instance_invoker(cls, method_name)


def _class_invoker(method: Callable[..., Any]) -> Invoker:
    def invoke(request: Request, context: RequestContext) -> Any:
        return method(request)

    return invoke


def _instance_invoker(cls: type, method_name: str) -> Invoker:
    def invoke(request: Request, context: RequestContext) -> Any:
        return getattr(cls(request), method_name)()

    return invoke


def _logic_invoker(cls: type) -> Invoker:
    def invoke(request: Request, context: RequestContext) -> Any:
        unit = cls()
        return unit.handle(context.strategy_result, deep_freeze(context.params), context.locale or "en")

    return invoke
