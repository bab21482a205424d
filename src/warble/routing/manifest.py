"""Route manifest loading.

A manifest is plain text with one route per line. Only lines that start
with a word character are considered, so comments (``#``) and indented
notes are ignored::

    # Public pages
    GET  /            Pages#index
    GET  /users/:id   Users#show response=json auth=session,apikey

Malformed lines raise ``LoadError`` internally and are skipped with a
warning. Unsafe targets raise ``TargetResolutionError`` and abort loading.
"""

import logging
import re
from pathlib import Path

from warble.errors import LoadError
from warble.routing.definition import RouteDefinition

logger = logging.getLogger("warble.routing")

_ROUTE_LINE = re.compile(r"^\w")


def parse_line(line: str, lineno: int | None = None) -> RouteDefinition:
    """Parse one manifest line into a ``RouteDefinition``.

    Raises ``LoadError`` for a malformed line and
    ``TargetResolutionError`` for an unsafe target.
    """
    parts = line.strip().split(None, 2)
    if len(parts) < 3:
        raise LoadError("Expected 'VERB PATH TARGET'", line=line, lineno=lineno)
    verb, path, definition = parts
    try:
        return RouteDefinition.parse(verb, path, definition)
    except LoadError as exc:
        raise LoadError(str(exc), line=line, lineno=lineno) from exc


def parse_manifest(text: str, *, source: str = "<string>") -> list[RouteDefinition]:
    """Parse manifest text. Bad lines are logged and skipped."""
    definitions: list[RouteDefinition] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        if not _ROUTE_LINE.match(raw):
            continue
        try:
            definitions.append(parse_line(raw, lineno))
        except LoadError as exc:
            logger.warning("Skipping route %s:%d %r: %s", source, lineno, raw.strip(), exc)
    logger.debug("Loaded %d routes from %s", len(definitions), source)
    return definitions


def load_manifest(path: str | Path) -> list[RouteDefinition]:
    """Read and parse a manifest file."""
    manifest = Path(path)
    if not manifest.is_file():
        msg = f"Route manifest not found: {manifest}"
        raise FileNotFoundError(msg)
    return parse_manifest(manifest.read_text(encoding="utf-8"), source=str(manifest))
