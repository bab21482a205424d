"""Middleware protocol and Next type alias.

A middleware is any callable matching::

    def my_mw(request: Request, next: Next) -> Response: ...

No base class required. The framework checks the shape, not the lineage.
Everything runs synchronously on the request's thread.
"""

from collections.abc import Callable
from typing import Protocol, TypeAlias

from warble.http.request import Request
from warble.http.response import Response

# The next handler in the middleware chain
Next: TypeAlias = Callable[[Request], Response]


class Middleware(Protocol):
    """Protocol for warble middleware.

    Accepts both functions and callable objects::

        # Function middleware
        def timing(request: Request, next: Next) -> Response:
            start = time.monotonic()
            response = next(request)
            elapsed = time.monotonic() - start
            return response.with_header("X-Time", f"{elapsed:.3f}")

        # Class middleware, configured from the app's SecurityConfig
        class Audit:
            def __init__(self, security_config: SecurityConfig) -> None: ...
            def __call__(self, request: Request, next: Next) -> Response: ...
    """

    def __call__(self, request: Request, next: Next) -> Response: ...
