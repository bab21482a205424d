"""Middleware: protocol, stack, and the built-in security layers."""

from warble.middleware.csrf import CSRFMiddleware, get_csrf_token
from warble.middleware.protocol import Middleware, Next
from warble.middleware.rate_limit import RateLimitMiddleware, RateLimitRule
from warble.middleware.sessions import SessionConfig, SessionMiddleware, get_session
from warble.middleware.stack import MiddlewareSpec, MiddlewareStack
from warble.middleware.validation import ValidationMiddleware

__all__ = [
    "CSRFMiddleware",
    "Middleware",
    "MiddlewareSpec",
    "MiddlewareStack",
    "Next",
    "RateLimitMiddleware",
    "RateLimitRule",
    "SessionConfig",
    "SessionMiddleware",
    "ValidationMiddleware",
    "get_csrf_token",
    "get_session",
]
