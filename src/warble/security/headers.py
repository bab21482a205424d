"""Attach configured security headers to responses.

Applied by the app as the outermost pipeline stage, after error
handling, so 4xx/5xx responses carry the same headers as successful ones.
Headers a handler already set are left alone.
"""

from collections.abc import Mapping

from warble.http.response import Response


def apply_security_headers(response: Response, headers: Mapping[str, str]) -> Response:
    present = {name.lower() for name, _ in response.headers}
    missing = {name: value for name, value in headers.items() if name.lower() not in present}
    if not missing:
        return response
    return response.with_headers(missing)
