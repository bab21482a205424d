"""Static file tier of the dispatcher.

Serves files from a public directory for GET and HEAD. Only regular,
non-hidden files whose resolved path stays inside the directory are
served; everything else falls through to the dynamic tier.
"""

import logging
import mimetypes
from pathlib import Path

from warble.http.response import Response

logger = logging.getLogger("warble.routing")


class StaticFiles:
    """Resolve request paths to files under a public root.

    Security: resolves symlinks and verifies the final path
    is within the configured directory to prevent path traversal.

    Usage::

        static = StaticFiles("./public")
        file_path = static.lookup("/css/site.css")
        if file_path is not None:
            response = static.serve(file_path)
    """

    __slots__ = ("_cache_control", "_directory")

    def __init__(self, directory: str | Path, *, cache_control: str = "public, max-age=3600") -> None:
        self._directory = Path(directory).resolve()
        self._cache_control = cache_control

    @property
    def directory(self) -> Path:
        return self._directory

    def lookup(self, path: str) -> Path | None:
        """Return the file for *path*, or ``None`` if it is not safely servable."""
        relative = path.lstrip("/")
        if not relative or "\x00" in relative:
            return None
        if any(part.startswith(".") for part in relative.split("/")):
            return None

        file_path = (self._directory / relative).resolve()
        if not file_path.is_relative_to(self._directory):
            logger.warning("Blocked static path traversal attempt: %r", path)
            return None
        if not file_path.is_file():
            return None
        return file_path

    def serve(self, file_path: Path, *, head: bool = False) -> Response:
        """Read a file and build a response."""
        content_type, _ = mimetypes.guess_type(str(file_path))
        if content_type is None:
            content_type = "application/octet-stream"
        elif content_type.startswith("text/"):
            content_type = f"{content_type}; charset=utf-8"

        body = file_path.read_bytes()
        return (
            Response(body=b"" if head else body, content_type=content_type)
            .with_header("Content-Length", str(len(body)))
            .with_header("Cache-Control", self._cache_control)
        )
