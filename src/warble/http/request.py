"""Immutable HTTP request built from a WSGI environ.

Frozen metadata with lazily read, cached body access. The request is
honest about what it is: received data that doesn't change.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from io import BytesIO
from typing import IO, TYPE_CHECKING, Any
from urllib.parse import unquote_to_bytes

from warble.errors import BadRequest
from warble.http.cookies import parse_cookies
from warble.http.headers import Headers
from warble.http.query import QueryParams

if TYPE_CHECKING:
    from warble.http.forms import FormData


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    The body is read once from the WSGI input stream and cached.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    cookies: Mapping[str, str]
    scheme: str = "http"
    server: tuple[str, int] | None = None
    remote_addr: str | None = None
    path_params: Mapping[str, Any] = field(default_factory=dict)
    environ: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # Private: WSGI input stream for the body
    _input: IO[bytes] | None = field(default=None, repr=False, compare=False)

    # Private: mutable cache for body and parsed form data
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_environ(cls, environ: Mapping[str, Any]) -> Request:
        """Build a request from a WSGI environ.

        ``PATH_INFO`` is kept exactly as the server decoded it; the
        dispatcher applies its own normalisation.
        """
        headers = Headers.from_environ(environ)
        server_name = environ.get("SERVER_NAME")
        server_port = environ.get("SERVER_PORT")
        server = None
        if server_name and server_port:
            try:
                server = (server_name, int(server_port))
            except ValueError:
                server = None
        path = wsgi_path(environ.get("PATH_INFO", "") or "")
        return cls(
            method=str(environ.get("REQUEST_METHOD", "GET")).upper(),
            path=path,
            headers=headers,
            query=QueryParams(environ.get("QUERY_STRING", "") or ""),
            cookies=parse_cookies(headers.get("cookie", "")),
            scheme=environ.get("wsgi.url_scheme", "http"),
            server=server,
            remote_addr=environ.get("REMOTE_ADDR"),
            environ=environ,
            _input=environ.get("wsgi.input"),
        )

    def with_path_params(self, path_params: Mapping[str, Any]) -> Request:
        """Return a copy carrying the route's path parameters.

        The body cache is shared, so anything already read stays read.
        """
        return replace(self, path_params=path_params)

    def with_params(self, params: dict[str, Any]) -> Request:
        """Return a copy whose ``params()`` is *params*.

        Input validation hands handlers the sanitized parameters this way.
        """
        cache = dict(self._cache)
        cache["_params"] = params
        return replace(self, _cache=cache)

    # -- Computed properties --

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        """The Content-Length header as int."""
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def url(self) -> str:
        """Request path plus query string."""
        if self.query.raw:
            return f"{self.path}?{self.query.raw}"
        return self.path

    @property
    def is_xhr(self) -> bool:
        """True for ``X-Requested-With: XMLHttpRequest`` requests."""
        return self.headers.get("x-requested-with", "").lower() == "xmlhttprequest"

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    def accepts_json(self) -> bool:
        """True if ``Accept`` mentions JSON and does not prefer HTML."""
        accept = self.headers.get("accept", "")
        return "application/json" in accept and "text/html" not in accept

    # -- Body access --

    def body(self) -> bytes:
        """Read the full request body.

        Result is cached: the input stream is consumed once, then
        the same bytes are returned on subsequent calls.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        result = b""
        if self._input is not None:
            length = self.content_length
            if length is None:
                result = b""
            elif length > 0:
                result = self._input.read(length)
        self._cache["_body"] = result
        return result

    def text(self) -> str:
        """Read the body as text (UTF-8)."""
        return self.body().decode("utf-8")

    def json(self) -> Any:
        """Parse the body as JSON.

        Raises ``BadRequest`` for malformed JSON.
        """
        if "_json" in self._cache:
            return self._cache["_json"]
        raw = self.body()
        if not raw:
            result = None
        else:
            try:
                result = json_module.loads(raw)
            except (ValueError, UnicodeDecodeError):
                raise BadRequest("Malformed JSON body") from None
        self._cache["_json"] = result
        return result

    def form(self) -> FormData:
        """Parse the body as form data (URL-encoded or multipart).

        Result is cached. Returns an empty ``FormData`` for requests
        whose content type is not a form.
        """
        from warble.http.forms import FormData, parse_form_data

        if "_form" in self._cache:
            return self._cache["_form"]
        ct = self.content_type or ""
        if "application/x-www-form-urlencoded" in ct or "multipart/form-data" in ct:
            result = parse_form_data(self.body(), ct)
        else:
            result = FormData()
        self._cache["_form"] = result
        return result

    def params(self) -> dict[str, Any]:
        """Query and form parameters, nested by bracket notation.

        Form values override query values with the same name. Once input
        validation has run, this is the sanitized mapping instead.
        """
        from warble.http.forms import nest_params

        if "_params" in self._cache:
            return self._cache["_params"]
        pairs = list(self.query.items_multi())
        pairs.extend(self.form().items_multi())
        result = nest_params(pairs)
        self._cache["_params"] = result
        return result

    def param(self, name: str, default: str | None = None) -> str | None:
        """A single flat query/form value."""
        value = self.form().get(name)
        if value is None:
            value = self.query.get(name)
        return default if value is None else value


def wsgi_path(path_info: str) -> str:
    """Recover the UTF-8 path from a PEP 3333 ``PATH_INFO``.

    The server has already percent-decoded the path and hands the bytes
    over as latin-1 characters. Invalid UTF-8 sequences are replaced.
    """
    try:
        raw = path_info.encode("latin-1")
    except UnicodeEncodeError:
        # Server already produced text
        return path_info
    return raw.decode("utf-8", errors="replace")


def make_environ(
    method: str = "GET",
    path: str = "/",
    *,
    query_string: str = "",
    headers: Mapping[str, str] | None = None,
    body: bytes = b"",
    remote_addr: str = "127.0.0.1",
) -> dict[str, Any]:
    """Build a minimal WSGI environ (used by the test client and tests).

    *path* is the path as a client sends it. Like a real server, it is
    percent-decoded before it lands in ``PATH_INFO``.
    """
    environ: dict[str, Any] = {
        "REQUEST_METHOD": method.upper(),
        "PATH_INFO": unquote_to_bytes(path).decode("latin-1"),
        "QUERY_STRING": query_string,
        "SERVER_NAME": "testserver",
        "SERVER_PORT": "80",
        "SERVER_PROTOCOL": "HTTP/1.1",
        "REMOTE_ADDR": remote_addr,
        "wsgi.url_scheme": "http",
        "wsgi.input": BytesIO(body),
        "wsgi.errors": BytesIO(),
        "wsgi.multithread": True,
        "wsgi.multiprocess": False,
        "wsgi.run_once": False,
        "wsgi.version": (1, 0),
    }
    if body:
        environ["CONTENT_LENGTH"] = str(len(body))
    for name, value in (headers or {}).items():
        key = name.upper().replace("-", "_")
        if key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
            environ[key] = value
        else:
            environ[f"HTTP_{key}"] = value
    return environ
