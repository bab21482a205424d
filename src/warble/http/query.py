"""Immutable query string parameters.

Pairs are kept in the order they appear in the URL, so bracketed names
(``tags[]=a&tags[]=b``) nest the same way form fields do.
"""

from collections.abc import Iterator, Mapping
from urllib.parse import parse_qsl


class QueryParams(Mapping[str, str]):
    """Read-only view of a query string.

    ``query["a"]`` is the first value for ``a``; ``get_list`` has them all.
    """

    __slots__ = ("_index", "_pairs", "_raw")

    _index: dict[str, list[str]]
    _pairs: tuple[tuple[str, str], ...]
    _raw: str

    def __init__(self, query_string: str = "") -> None:
        pairs = tuple(parse_qsl(query_string, keep_blank_values=True))
        index: dict[str, list[str]] = {}
        for name, value in pairs:
            index.setdefault(name, []).append(value)
        object.__setattr__(self, "_raw", query_string)
        object.__setattr__(self, "_pairs", pairs)
        object.__setattr__(self, "_index", index)

    def __setattr__(self, name: str, value: object) -> None:
        msg = "QueryParams is immutable"
        raise AttributeError(msg)

    def __getitem__(self, key: str) -> str:
        return self._index[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"QueryParams({self._raw!r})"

    def get_list(self, key: str) -> list[str]:
        return list(self._index.get(key, ()))

    def items_multi(self) -> Iterator[tuple[str, str]]:
        """Every ``(name, value)`` pair, in URL order."""
        return iter(self._pairs)

    @property
    def raw(self) -> str:
        """The query string as received, still percent-encoded."""
        return self._raw

    def to_dict(self) -> dict[str, str | list[str]]:
        """Flatten to plain values; repeated keys keep every value."""
        return {key: values[0] if len(values) == 1 else list(values) for key, values in self._index.items()}
