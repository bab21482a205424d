"""Response formatting — maps handler return values to Response objects.

The route's ``response=`` option picks the format; the return value's
type fills in the rest. isinstance-based dispatch, no magic.

=============  ==============================================================
``json``       ``dict`` as-is, ``None`` -> ``{"success": true}``, anything
               else -> ``{"success": true, "data": value}``
``redirect``   ``str`` -> 302 to that path, anything else -> 302 to ``/``
``view``       ``str``/``bytes`` -> 200 text/html
``auto``       ``dict``/``list`` -> JSON, ``str`` -> HTML
``default``    ``str`` -> HTML, ``bytes`` -> octet-stream, ``dict``/``list``
               -> JSON, ``None`` -> empty 204, ``(value, status)`` tuples
=============  ==============================================================

A ``Response`` is always passed through untouched.
"""

from typing import Any

from warble.http.response import Response, json_response, redirect

RESPONSE_TYPES: frozenset[str] = frozenset({"json", "redirect", "view", "auto", "default"})


def _html(body: str | bytes, status: int = 200) -> Response:
    return Response(body=body, status=status, content_type="text/html; charset=utf-8")


def format_json(value: Any) -> Response:
    match value:
        case Response():
            return value
        case None:
            return json_response({"success": True})
        case dict():
            return json_response(value)
        case _:
            return json_response({"success": True, "data": value})


def format_redirect(value: Any) -> Response:
    match value:
        case Response():
            return value
        case str() if value:
            return redirect(value)
        case _:
            return redirect("/")


def format_default(value: Any) -> Response:
    match value:
        case Response():
            return value
        case None:
            return Response(body="", status=204)
        case str():
            return _html(value)
        case bytes():
            return Response(body=value, content_type="application/octet-stream")
        case dict() | list():
            return json_response(value)
        case (inner, int() as status):
            return format_default(inner).with_status(status)
        case (inner, int() as status, dict() as headers):
            return format_default(inner).with_status(status).with_headers(headers)
        case _:
            return _html(str(value))


def format_response(value: Any, response_type: str = "default") -> Response:
    """Convert a handler's return value for a route declaring ``response=response_type``.

    Unknown response types fall back to ``default``.
    """
    if isinstance(value, Response):
        return value
    match response_type:
        case "json":
            return format_json(value)
        case "redirect":
            return format_redirect(value)
        case "view":
            if value is None:
                return _html("")
            return _html(value if isinstance(value, (str, bytes)) else str(value))
        case "auto":
            if isinstance(value, (dict, list)):
                return json_response(value)
            return format_default(value)
        case _:
            return format_default(value)
