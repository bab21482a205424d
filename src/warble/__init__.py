"""warble — a plaintext-route-driven HTTP dispatcher.

Routes live in a manifest, one per line::

    GET  /              Pages#index
    GET  /users/:id     Users#show        response=json auth=session,apikey
    POST /login         Auth.login        csrf=exempt
    GET  /admin         Admin::Dashboard  auth=role:admin

Basic usage::

    from warble import App, AppConfig

    app = App(AppConfig(secret_key="change-me"), routes="routes.txt")

    @app.handler
    class Pages:
        def __init__(self, request):
            self.request = request

        def index(self):
            return "<h1>Hello</h1>"

``App`` is a WSGI application; serve it with any WSGI server.
"""

from warble.app import App
from warble.config import AppConfig
from warble.context import get_context, get_locale, get_request, get_strategy_result
from warble.errors import (
    AuthenticationFailure,
    AuthorizationError,
    BadRequest,
    ConfigurationError,
    CSRFError,
    Forbidden,
    FrozenError,
    HTTPError,
    LoadError,
    NotFound,
    TargetResolutionError,
    Unauthorized,
    ValidationError,
    WarbleError,
)
from warble.handlers.logic import Logic
from warble.http.request import Request
from warble.http.response import Response, json_response, redirect, text_response
from warble.middleware.protocol import Middleware, Next
from warble.middleware.sessions import SessionConfig, get_session
from warble.security.auth import (
    APIKeyStrategy,
    AuthFailure,
    AuthStrategy,
    NoAuthStrategy,
    PermissionStrategy,
    RoleAuthorization,
    RoleStrategy,
    SessionStrategy,
    StrategyResult,
)

__version__ = "0.1.0"
__all__ = [
    "APIKeyStrategy",
    "App",
    "AppConfig",
    "AuthFailure",
    "AuthStrategy",
    "AuthenticationFailure",
    "AuthorizationError",
    "BadRequest",
    "CSRFError",
    "ConfigurationError",
    "Forbidden",
    "FrozenError",
    "HTTPError",
    "LoadError",
    "Logic",
    "Middleware",
    "Next",
    "NoAuthStrategy",
    "NotFound",
    "PermissionStrategy",
    "Request",
    "Response",
    "RoleAuthorization",
    "RoleStrategy",
    "SessionConfig",
    "SessionStrategy",
    "StrategyResult",
    "TargetResolutionError",
    "Unauthorized",
    "ValidationError",
    "WarbleError",
    "get_context",
    "get_locale",
    "get_request",
    "get_session",
    "get_strategy_result",
    "json_response",
    "redirect",
    "text_response",
]
