"""HTTP response with chainable .with_*() transformation API.

Each transformation returns a new Response. Immutable by convention,
built incrementally by design.
"""

from __future__ import annotations

import json as json_module
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from warble.http.cookies import SetCookie

_STATUS_PHRASES: dict[int, str] = {
    200: "OK",
    201: "Created",
    204: "No Content",
    301: "Moved Permanently",
    302: "Found",
    303: "See Other",
    304: "Not Modified",
    307: "Temporary Redirect",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def status_line(status: int) -> str:
    """``200`` -> ``"200 OK"`` for WSGI ``start_response``."""
    return f"{status} {_STATUS_PHRASES.get(status, 'Unknown')}"


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations.

    Construct with a body, then chain ``.with_*()`` calls to set
    status, headers, and cookies. Each call returns a new ``Response``.
    """

    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/html; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()
    cookies: tuple[SetCookie, ...] = ()

    # -- Chainable transformations --

    def with_status(self, status: int) -> Response:
        """Return a new Response with a different status code."""
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        """Return a new Response with an additional header."""
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str]) -> Response:
        """Return a new Response with additional headers."""
        new = tuple(headers.items())
        return replace(self, headers=(*self.headers, *new))

    def without_header(self, name: str) -> Response:
        """Return a new Response with every *name* header removed."""
        lowered = name.lower()
        return replace(self, headers=tuple((k, v) for k, v in self.headers if k.lower() != lowered))

    def with_content_type(self, content_type: str) -> Response:
        """Return a new Response with a different content type."""
        return replace(self, content_type=content_type)

    def with_body(self, body: str | bytes) -> Response:
        """Return a new Response with a different body.

        An explicit ``Content-Length`` header is recomputed for the new body.
        """
        updated = replace(self, body=body)
        if updated.header("content-length") is None:
            return updated
        return updated.without_header("content-length").with_header(
            "Content-Length", str(len(updated.body_bytes))
        )

    def with_cookie(
        self,
        name: str,
        value: str,
        *,
        max_age: int | None = None,
        path: str = "/",
        domain: str | None = None,
        secure: bool = False,
        httponly: bool = True,
        samesite: str = "lax",
    ) -> Response:
        """Return a new Response with an additional Set-Cookie."""
        cookie = SetCookie(
            name=name,
            value=value,
            max_age=max_age,
            path=path,
            domain=domain,
            secure=secure,
            httponly=httponly,
            samesite=samesite,
        )
        return replace(self, cookies=(*self.cookies, cookie))

    def without_cookie(self, name: str, path: str = "/") -> Response:
        """Return a new Response that deletes a cookie (Max-Age=0)."""
        cookie = SetCookie(name=name, value="", path=path).expire()
        return replace(self, cookies=(*self.cookies, cookie))

    # -- Inspection --

    def header(self, name: str) -> str | None:
        """Return the first value of header *name* (case-insensitive)."""
        lowered = name.lower()
        if lowered == "content-type":
            return self.content_type
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None

    @property
    def is_html(self) -> bool:
        return self.content_type.startswith("text/html")

    @property
    def body_bytes(self) -> bytes:
        """Body as bytes."""
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        """Body as string."""
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    def json(self) -> Any:
        """Parse the body as JSON."""
        return json_module.loads(self.body_bytes)

    # -- WSGI --

    def wsgi_headers(self) -> list[tuple[str, str]]:
        """Header list for ``start_response`` including cookies and length."""
        result: list[tuple[str, str]] = [("Content-Type", self.content_type)]
        has_length = False
        for name, value in self.headers:
            if name.lower() == "content-type":
                continue
            if name.lower() == "content-length":
                has_length = True
            result.append((name, value))
        if not has_length:
            result.append(("Content-Length", str(len(self.body_bytes))))
        result.extend(("Set-Cookie", cookie.to_header_value()) for cookie in self.cookies)
        return result


def json_response(data: Any, status: int = 200) -> Response:
    """Serialize *data* as a JSON response."""
    body = json_module.dumps(data, default=str)
    return Response(body=body, status=status, content_type="application/json")


def redirect(location: str, status: int = 302) -> Response:
    """A redirect to *location*."""
    return Response(body="", status=status, content_type="text/plain; charset=utf-8").with_header(
        "Location", location
    )


def text_response(body: str, status: int = 200) -> Response:
    """A plain text response."""
    return Response(body=body, status=status, content_type="text/plain; charset=utf-8")
