"""Form data parsing — URL-encoded and multipart.

URL-encoded bodies use stdlib ``urllib.parse``. Multipart bodies are parsed
with ``python-multipart``.

``nest_params`` expands bracketed field names (``user[name]``,
``tags[]``) into nested dicts and lists, which is the shape the input
validator walks.
"""

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl

from warble.errors import BadRequest, ConfigurationError


@dataclass(frozen=True, slots=True)
class UploadFile:
    """An uploaded file from a multipart form submission, held in memory."""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    def save(self, path: Path) -> None:
        """Write the content to *path*. Parent directories must exist."""
        path.write_bytes(self.content)

    def __repr__(self) -> str:
        return f"UploadFile({self.filename!r}, {self.content_type!r}, {self.size} bytes)"


class FormData(Mapping[str, str]):
    """Immutable parsed form fields plus uploaded files.

    Fields keep submission order. ``form["a"]`` is the first value for
    ``a``; ``get_list`` has them all.
    """

    __slots__ = ("_files", "_index", "_pairs")

    def __init__(
        self,
        pairs: Iterable[tuple[str, str]] = (),
        files: Mapping[str, UploadFile] | None = None,
    ) -> None:
        pairs = tuple(pairs)
        index: dict[str, list[str]] = {}
        for name, value in pairs:
            index.setdefault(name, []).append(value)
        object.__setattr__(self, "_pairs", pairs)
        object.__setattr__(self, "_index", index)
        object.__setattr__(self, "_files", dict(files or {}))

    def __setattr__(self, name: str, value: object) -> None:
        msg = "FormData is immutable"
        raise AttributeError(msg)

    @property
    def files(self) -> Mapping[str, UploadFile]:
        return self._files

    def __getitem__(self, key: str) -> str:
        return self._index[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"FormData({list(self._pairs)!r}, files={sorted(self._files)!r})"

    def get_list(self, key: str) -> list[str]:
        """All values for *key* (checkboxes, multi-selects)."""
        return list(self._index.get(key, ()))

    def items_multi(self) -> Iterator[tuple[str, str]]:
        """Every ``(name, value)`` pair, in submission order."""
        return iter(self._pairs)


def parse_form_data(body: bytes, content_type: str) -> FormData:
    """Parse a request body as form data.

    Raises ``BadRequest`` if the body cannot be decoded.
    """
    if content_type.lower().startswith("multipart/form-data"):
        return _parse_multipart(body, content_type)
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise BadRequest("Form body is not valid UTF-8") from None
    return FormData(parse_qsl(text, keep_blank_values=True))


class _MultipartCollector:
    """python-multipart callbacks that gather fields and files."""

    def __init__(self, parse_options_header: Any) -> None:
        self._parse_options_header = parse_options_header
        self.fields: list[tuple[str, str]] = []
        self.files: dict[str, UploadFile] = {}
        self._reset()

    def _reset(self) -> None:
        self._headers: dict[str, str] = {}
        self._header_name = ""
        self._buffer = bytearray()
        self._name: str | None = None
        self._filename: str | None = None

    def callbacks(self) -> dict[str, Any]:
        return {
            "on_part_begin": self._reset,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
        }

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name = data[start:end].decode("latin-1").lower()

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        raw = data[start:end]
        self._headers[self._header_name] = raw.decode("latin-1")
        if self._header_name != "content-disposition":
            return
        _, options = self._parse_options_header(raw)
        if (name := options.get(b"name")) is not None:
            self._name = name.decode("utf-8", errors="replace")
        if (filename := options.get(b"filename")) is not None:
            self._filename = filename.decode("utf-8", errors="replace")

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._buffer.extend(data[start:end])

    def on_part_end(self) -> None:
        if self._name is None:
            return
        if self._filename is None:
            self.fields.append((self._name, self._buffer.decode("utf-8", errors="replace")))
            return
        self.files[self._name] = UploadFile(
            filename=self._filename,
            content_type=self._headers.get("content-type", "application/octet-stream"),
            content=bytes(self._buffer),
        )


def _parse_multipart(body: bytes, content_type: str) -> FormData:
    """Parse multipart form data using python-multipart.

    Raises ``ConfigurationError`` if ``python-multipart`` is not installed.
    """
    try:
        from python_multipart.multipart import MultipartParser, parse_options_header
    except ImportError:
        msg = (
            "Multipart form parsing requires the 'python-multipart' package. "
            "Install it with: pip install python-multipart"
        )
        raise ConfigurationError(msg) from None

    _, options = parse_options_header(content_type.encode("latin-1"))
    boundary = options.get(b"boundary")
    if not boundary:
        raise BadRequest("Multipart form data missing boundary parameter")

    collector = _MultipartCollector(parse_options_header)
    parser = MultipartParser(boundary, callbacks=collector.callbacks())
    parser.write(body)
    parser.finalize()
    return FormData(collector.fields, collector.files)


# -- Nested parameter names --

_SEGMENT = re.compile(r"\[([^\[\]]*)\]")


def _split_name(name: str) -> list[str]:
    """``"user[address][city]"`` -> ``["user", "address", "city"]``."""
    head, bracket, _ = name.partition("[")
    if not bracket:
        return [name]
    rest = name[len(head) :]
    parts = _SEGMENT.findall(rest)
    if not head or "".join(f"[{p}]" for p in parts) != rest:
        # Malformed brackets: keep the raw name as a flat key
        return [name]
    return [head, *parts]


def nest_params(pairs: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Expand bracketed names into nested structures.

    ``a=1`` -> ``{"a": "1"}``; ``a[b]=1`` -> ``{"a": {"b": "1"}}``;
    ``a[]=1&a[]=2`` -> ``{"a": ["1", "2"]}``. A plain name that repeats
    keeps its last value. Conflicting shapes (``a=1&a[b]=2``) raise
    ``BadRequest``.
    """
    result: dict[str, Any] = {}
    for name, value in pairs:
        parts = _split_name(name)
        node: dict[str, Any] = result
        for index, part in enumerate(parts):
            last = index == len(parts) - 1
            next_is_list = not last and parts[index + 1] == ""
            if last:
                node[part] = value
                break
            if next_is_list and index + 1 == len(parts) - 1:
                existing = node.setdefault(part, [])
                if not isinstance(existing, list):
                    raise BadRequest(f"Conflicting types for parameter {name!r}")
                existing.append(value)
                break
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                raise BadRequest(f"Conflicting types for parameter {name!r}")
            node = child
    return result
