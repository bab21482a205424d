"""Rejection responses for the auth layer.

Content negotiation order: the route's declared ``response=json`` wins,
then the client's ``Accept`` header. Browser requests are redirected to
the login page when one is configured.
"""

from time import time
from urllib.parse import quote

from warble.errors import AuthenticationFailure
from warble.http.request import Request
from warble.http.response import Response, json_response, redirect, text_response
from warble.routing.definition import RouteDefinition


def wants_json(request: Request, definition: RouteDefinition | None) -> bool:
    if definition is not None and definition.response_type == "json":
        return True
    return request.accepts_json()


def authentication_required(
    request: Request,
    definition: RouteDefinition | None,
    failure: AuthenticationFailure,
    *,
    login_path: str | None = None,
) -> Response:
    """401 (JSON or text) for *failure*, or a 302 to *login_path* for browsers."""
    if wants_json(request, definition):
        return json_response(
            {"error": failure.title, "message": failure.detail, "timestamp": int(time())},
            status=failure.status,
        )
    if login_path:
        return redirect(f"{login_path}?next={quote(request.url, safe='/')}")
    return text_response(failure.title, status=failure.status)
