"""Immutable, case-insensitive HTTP headers.

Implements ``Mapping[str, str]`` with a ``get_list`` accessor for repeated
headers. Built from a WSGI environ, where request headers arrive as
``HTTP_*`` keys plus the bare ``CONTENT_TYPE`` / ``CONTENT_LENGTH``.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

_UNPREFIXED = {"CONTENT_TYPE": "content-type", "CONTENT_LENGTH": "content-length"}


class Headers(Mapping[str, str]):
    """Immutable, case-insensitive HTTP headers.

    ``__getitem__`` returns the first matching value.
    ``get_list`` returns all values for a header.
    Names are stored lower-cased.
    """

    __slots__ = ("_pairs",)

    def __init__(self, pairs: tuple[tuple[str, str], ...] = ()) -> None:
        normalized = tuple((name.lower(), value) for name, value in pairs)
        object.__setattr__(self, "_pairs", normalized)

    @classmethod
    def from_environ(cls, environ: Mapping[str, Any]) -> Headers:
        """Collect request headers from a WSGI environ."""
        pairs: list[tuple[str, str]] = []
        for key, value in environ.items():
            if key.startswith("HTTP_"):
                pairs.append((key[5:].replace("_", "-").lower(), str(value)))
            elif key in _UNPREFIXED and value not in (None, ""):
                pairs.append((_UNPREFIXED[key], str(value)))
        return cls(tuple(pairs))

    def __setattr__(self, name: str, value: object) -> None:
        msg = "Headers are immutable"
        raise AttributeError(msg)

    def __getitem__(self, key: str) -> str:
        key_lower = key.lower()
        for name, value in self._pairs:
            if name == key_lower:
                return value
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        key_lower = key.lower()
        return any(name == key_lower for name, _ in self._pairs)

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for name, _ in self._pairs:
            if name not in seen:
                seen.add(name)
                yield name

    def __len__(self) -> int:
        return len(set(self))

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"Headers({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        try:
            return self[key]
        except KeyError:
            return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key*."""
        key_lower = key.lower()
        return [value for name, value in self._pairs if name == key_lower]
