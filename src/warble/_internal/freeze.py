"""Deep freezing of configuration structures.

Used once, when the app transitions from *configurable* to *frozen*.
Containers are replaced with read-only equivalents so late-loaded code
cannot alter routes, middleware, or auth strategies while serving.
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any


def deep_freeze(value: Any) -> Any:
    """Return a recursively read-only copy of *value*.

    - ``dict`` / ``Mapping`` -> ``MappingProxyType`` over a frozen copy
    - ``list`` / ``tuple`` -> ``tuple``
    - ``set`` / ``frozenset`` -> ``frozenset``
    - objects with a ``freeze()`` method are frozen in place and returned

    Anything else (strings, numbers, handler classes, strategy objects)
    is returned unchanged.
    """
    if isinstance(value, MappingProxyType):
        return value
    if isinstance(value, Mapping):
        return MappingProxyType({key: deep_freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(deep_freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(value)
    freeze = getattr(value, "freeze", None)
    if callable(freeze) and not isinstance(value, type):
        freeze()
    return value


def is_deeply_frozen(value: Any) -> bool:
    """True if *value* contains no mutable built-in containers."""
    if isinstance(value, (dict, list, set, bytearray)):
        return False
    if isinstance(value, Mapping):
        return all(is_deeply_frozen(item) for item in value.values())
    if isinstance(value, (tuple, frozenset)):
        return all(is_deeply_frozen(item) for item in value)
    frozen = getattr(value, "frozen", None)
    if isinstance(frozen, bool):
        return frozen
    return True
