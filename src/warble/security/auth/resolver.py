"""Map auth requirements to registered strategies.

Lookup order for a requirement such as ``role:admin``:

1. exact name (``role:admin``)
2. prefix before ``:`` (``role``), receiving ``admin`` as argument
3. wildcard ``prefix:*`` (``role:*``), receiving ``admin`` as argument

Lookups are cached per requirement string. Only the *lookup* is cached;
authentication runs again on every request.
"""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass

from warble.security.auth.strategies import AuthStrategy

logger = logging.getLogger("warble.security")


@dataclass(frozen=True, slots=True)
class ResolvedStrategy:
    """A strategy chosen for one requirement."""

    requirement: str
    name: str
    strategy: AuthStrategy
    argument: str | None = None


class StrategyResolver:
    """Resolve requirement strings against a (frozen) strategy registry."""

    __slots__ = ("_cache", "_lock", "_strategies")

    def __init__(self, strategies: Mapping[str, AuthStrategy]) -> None:
        self._strategies = strategies
        self._cache: dict[str, ResolvedStrategy | None] = {}
        self._lock = threading.Lock()

    def resolve(self, requirement: str) -> ResolvedStrategy | None:
        """Return the strategy for *requirement*, or ``None`` if unregistered."""
        try:
            return self._cache[requirement]
        except KeyError:
            pass
        resolved = self._lookup(requirement)
        with self._lock:
            self._cache[requirement] = resolved
        return resolved

    def _lookup(self, requirement: str) -> ResolvedStrategy | None:
        strategy = self._strategies.get(requirement)
        if strategy is not None:
            return ResolvedStrategy(requirement, requirement, strategy)

        prefix, sep, argument = requirement.partition(":")
        if not sep:
            return None

        strategy = self._strategies.get(prefix)
        if strategy is not None:
            return ResolvedStrategy(requirement, prefix, strategy, argument or None)

        wildcard = f"{prefix}:*"
        strategy = self._strategies.get(wildcard)
        if strategy is not None:
            return ResolvedStrategy(requirement, wildcard, strategy, argument or None)
        return None

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
