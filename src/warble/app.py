"""warble application class.

Mutable during setup (routes, handlers, middleware, auth strategies,
security settings). Frozen at runtime when ``handle()`` or ``__call__()``
is first invoked.
"""

import inspect
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from warble._internal.freeze import deep_freeze
from warble._internal.types import Environ, ErrorHandler, StartResponse, WSGIBody
from warble.config import AppConfig
from warble.context import RequestContext, context_var, request_var
from warble.errors import ConfigurationError, FrozenError, HTTPError
from warble.handlers.registry import HandlerRegistry
from warble.http.request import Request
from warble.http.response import Response, status_line
from warble.middleware.csrf import CSRFMiddleware
from warble.middleware.protocol import Next
from warble.middleware.rate_limit import RateLimitMiddleware, RateLimitRule
from warble.middleware.sessions import SessionConfig, SessionMiddleware
from warble.middleware.stack import MiddlewareStack
from warble.middleware.validation import ValidationMiddleware
from warble.routing.definition import RouteDefinition
from warble.routing.manifest import load_manifest, parse_line, parse_manifest
from warble.routing.route import Route
from warble.routing.router import Router, normalize_path
from warble.routing.static import StaticFiles
from warble.security.auth.resolver import StrategyResolver
from warble.security.auth.strategies import AuthStrategy
from warble.security.config import SecurityConfig
from warble.security.headers import apply_security_headers
from warble.server.dispatch import Dispatcher, Endpoint, build_endpoint
from warble.server.errors import (
    ErrorRegistration,
    find_registration,
    handle_expected_error,
    handle_http_error,
    handle_internal_error,
)

logger = logging.getLogger("warble.server")


class App:
    """The warble application.

    Usage::

        app = App(AppConfig(secret_key="change-me"), routes="routes.txt")

        @app.handler
        class Users:
            def __init__(self, request): self.request = request
            def show(self): return {"id": self.request.path_params["id"]}

        app.add_auth_strategy("session", SessionStrategy())
        app.enable_csrf_protection()

    Thread safety:
        The setup phase is single-threaded (module import time). The
        freeze transition uses a Lock + double-check so exactly one thread
        compiles the app, even when several WSGI worker threads receive
        their first request at once. After the freeze all shared state is
        read-only; per-request state lives in ContextVars.
    """

    __slots__ = (
        "_auth_strategies",
        "_definitions",
        # Compiled state (populated by _freeze)
        "_dispatcher",
        "_error_handlers",
        "_error_registrations",
        "_freeze_lock",
        "_frozen",
        "_handlers",
        "_middleware",
        "_pipeline",
        "_request_complete_callbacks",
        "_router",
        "_security",
        "config",
    )

    def __init__(self, config: AppConfig | None = None, *, routes: str | Path | None = None) -> None:
        self.config: AppConfig = config or AppConfig()
        self._definitions: list[RouteDefinition] = []
        self._handlers = HandlerRegistry()
        self._middleware = MiddlewareStack()
        self._auth_strategies: dict[str, AuthStrategy] = {}
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._error_registrations: dict[type, ErrorRegistration] = {}
        self._request_complete_callbacks: list[Callable[[Request, Response], None]] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        self._security = SecurityConfig()
        self._security.max_value_length = self.config.max_value_length
        self._security.csrf_secret = self.config.secret_key

        # Compiled state, set during _freeze()
        self._router: Router | None = None
        self._dispatcher: Dispatcher | None = None
        self._pipeline: Next | None = None

        if routes is not None:
            self.load(routes)

    # -- Routes --

    def load(self, path: str | Path) -> list[RouteDefinition]:
        """Add every route in the manifest file at *path*."""
        self._check_not_frozen()
        definitions = load_manifest(path)
        self._definitions.extend(definitions)
        return definitions

    def add_routes(self, text: str) -> list[RouteDefinition]:
        """Add every route in manifest *text*. Malformed lines are skipped."""
        self._check_not_frozen()
        definitions = parse_manifest(text)
        self._definitions.extend(definitions)
        return definitions

    def add_route(self, line: str) -> RouteDefinition:
        """Add one manifest line. Raises ``LoadError`` if it is malformed."""
        self._check_not_frozen()
        definition = parse_line(line)
        self._definitions.append(definition)
        return definition

    @property
    def routes(self) -> tuple[Route, ...]:
        """Compiled routes in registration order (empty until frozen)."""
        return self._router.routes if self._router is not None else ()

    @property
    def definitions(self) -> tuple[RouteDefinition, ...]:
        return tuple(self._definitions)

    def uri(self, target: str, **params: Any) -> str | None:
        """Build the path for the route whose target is *target*.

        ``app.uri("Users#show", id=42, tab="posts")`` -> ``"/users/42?tab=posts"``
        """
        router = self._router
        if router is None:
            router = Router()
            for definition in self._definitions:
                router.add(definition)
        return router.uri(target, params)

    # -- Handlers --

    def register(self, handler: type, name: str | None = None) -> type:
        """Register a handler class under *name* (defaults to its class name)."""
        self._check_not_frozen()
        return self._handlers.register(handler, name)

    def handler(self, cls: type | None = None, *, name: str | None = None) -> Any:
        """Decorator form of ``register``.

        Usage::

            @app.handler
            class Users: ...

            @app.handler(name="Admin::Panel")
            class AdminPanel(Logic): ...
        """
        if cls is not None:
            return self.register(cls, name)

        def decorator(target: type) -> type:
            return self.register(target, name)

        return decorator

    # -- Middleware --

    def use(self, middleware: Any, *args: Any, **kwargs: Any) -> bool:
        """Append middleware. Returns ``False`` if it was a skipped duplicate."""
        self._check_not_frozen()
        return self._middleware.use(middleware, *args, **kwargs)

    @property
    def middleware(self) -> MiddlewareStack:
        return self._middleware

    def enable_sessions(self, config: SessionConfig | None = None, **options: Any) -> bool:
        """Add signed cookie sessions, keyed by ``AppConfig.secret_key`` by default."""
        self._check_not_frozen()
        if config is None:
            config = SessionConfig(secret_key=options.pop("secret_key", self.config.secret_key), **options)
        return self._middleware.use(SessionMiddleware, config)

    # -- Authentication --

    def add_auth_strategy(self, name: str, strategy: AuthStrategy) -> None:
        """Register *strategy* for requirements named *name*.

        *name* is an exact requirement (``"session"``), a prefix
        (``"role"``) or a wildcard (``"role:*"``).
        """
        self._check_not_frozen()
        if not name:
            msg = "Auth strategy name must not be empty"
            raise ConfigurationError(msg)
        if not callable(getattr(strategy, "authenticate", None)):
            msg = f"Auth strategy {name!r} must define authenticate(request, argument)"
            raise ConfigurationError(msg)
        if name in self._auth_strategies:
            logger.warning("Auth strategy %r redefined", name)
        self._auth_strategies[name] = strategy

    def configure_auth_strategies(self, strategies: Mapping[str, AuthStrategy]) -> None:
        for name, strategy in strategies.items():
            self.add_auth_strategy(name, strategy)

    @property
    def auth_strategies(self) -> Mapping[str, AuthStrategy]:
        return MappingProxyType(self._auth_strategies)

    # -- Security --

    @property
    def security(self) -> SecurityConfig:
        return self._security

    def enable_csrf_protection(self, secret: str | None = None) -> bool:
        """Verify CSRF tokens on unsafe methods and inject them into HTML."""
        self._check_not_frozen()
        self._security.enable_csrf_protection(secret)
        return self._middleware.use(CSRFMiddleware)

    def enable_request_validation(
        self,
        *,
        max_request_size: int | None = None,
        max_param_depth: int | None = None,
        max_param_keys: int | None = None,
    ) -> bool:
        """Run the input validator on every request, optionally with new limits."""
        self._check_not_frozen()
        security = self._security
        security.input_validation = True
        if max_request_size is not None:
            security.max_request_size = max_request_size
        if max_param_depth is not None:
            security.max_param_depth = max_param_depth
        if max_param_keys is not None:
            security.max_param_keys = max_param_keys
        return self._middleware.use(ValidationMiddleware)

    def enable_rate_limiting(
        self,
        requests: int = 100,
        window_seconds: int = 60,
        rules: Iterable[RateLimitRule] = (),
    ) -> bool:
        self._check_not_frozen()
        security = self._security
        security.rate_limiting = True
        security.rate_limit_requests = requests
        security.rate_limit_window = window_seconds
        return self._middleware.use(RateLimitMiddleware, rules=tuple(rules))

    def add_trusted_proxy(self, proxy: str) -> None:
        self._check_not_frozen()
        self._security.add_trusted_proxy(proxy)

    def enable_hsts(self, max_age: int = 31_536_000, *, include_subdomains: bool = True) -> None:
        self._check_not_frozen()
        self._security.enable_hsts(max_age, include_subdomains=include_subdomains)

    def enable_csp(self, policy: str = "default-src 'self'") -> None:
        self._check_not_frozen()
        self._security.enable_csp(policy)

    def enable_frame_protection(self, option: str = "SAMEORIGIN") -> None:
        self._check_not_frozen()
        self._security.enable_frame_protection(option)

    def set_security_headers(self, headers: Mapping[str, str]) -> None:
        self._check_not_frozen()
        self._security.set_custom_headers(headers)

    # -- Error handling --

    def register_error_handler(
        self,
        exc_type: type[BaseException],
        status: int = 500,
        log_level: int | str = logging.INFO,
        handler: Callable[[BaseException, Request], Any] | None = None,
    ) -> None:
        """Answer *exc_type* (and subclasses) with *status* instead of a 500.

        *handler*, if given, receives ``(exc, request)`` and returns a dict
        (sent as JSON) or a ``Response``.
        """
        self._check_not_frozen()
        if not (inspect.isclass(exc_type) and issubclass(exc_type, BaseException)):
            msg = f"Expected an exception class, got {exc_type!r}"
            raise ConfigurationError(msg)
        if isinstance(log_level, str):
            levels = logging.getLevelNamesMapping()
            name = "WARNING" if log_level.upper() == "WARN" else log_level.upper()
            if name not in levels:
                msg = f"Unknown log level {log_level!r}"
                raise ConfigurationError(msg)
            log_level = levels[name]
        self._error_registrations[exc_type] = ErrorRegistration(exc_type, status, log_level, handler)

    def error(self, code_or_exception: int | type[Exception]) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler by status code or exception type.

        Handlers may accept zero, one (request), or two (request, exc) args.
        """
        self._check_not_frozen()

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    @property
    def error_registrations(self) -> Mapping[type, ErrorRegistration]:
        return MappingProxyType(self._error_registrations)

    # -- Lifecycle --

    def on_request_complete(
        self, callback: Callable[[Request, Response], None]
    ) -> Callable[[Request, Response], None]:
        """Call *callback* with ``(request, response)`` after every request.

        Usable as a decorator. Callbacks run in registration order once the
        final response (error pages included) is known. A callback that
        raises is logged and skipped; the response is unaffected.
        """
        self._check_not_frozen()
        self._request_complete_callbacks.append(callback)
        return callback

    def _run_request_complete(self, request: Request, response: Response) -> None:
        for callback in self._request_complete_callbacks:
            try:
                callback(request, response)
            except Exception:
                logger.exception("Error in request-complete callback %r", callback)

    # -- Serving --

    def handle(self, request: Request) -> Response:
        """Run *request* through the full pipeline and return the response."""
        self._ensure_frozen()
        router = self._router
        dispatcher = self._dispatcher
        pipeline = self._pipeline
        assert router is not None and dispatcher is not None and pipeline is not None

        context = RequestContext(security=self._security)
        request_token = request_var.set(request)
        context_token = context_var.set(context)
        response: Response | None = None
        try:
            try:
                context.match = router.resolve(request.method, normalize_path(request.path))
                response = pipeline(request)
            except HTTPError as exc:
                response = handle_http_error(exc, request, context, self._error_handlers)
            except Exception as exc:
                registration = find_registration(self._error_registrations, exc)
                if registration is not None:
                    response = handle_expected_error(
                        exc, request, context, registration, debug=self.config.debug
                    )
                else:
                    fallback = dispatcher.server_error if dispatcher.has_error_route("/500", request.method) else None
                    response = handle_internal_error(
                        exc,
                        request,
                        context,
                        self._error_handlers,
                        server_error_route=fallback,
                        debug=self.config.debug,
                    )
            response = apply_security_headers(response, self._security.security_headers)
            return response
        finally:
            if response is not None:
                self._run_request_complete(request, response)
            context_var.reset(context_token)
            request_var.reset(request_token)

    def __call__(self, environ: Environ, start_response: StartResponse) -> WSGIBody:
        """WSGI entry point."""
        request = Request.from_environ(environ)
        response = self.handle(request)
        start_response(status_line(response.status), response.wsgi_headers())
        if request.method == "HEAD":
            return [b""]
        return [response.body_bytes]

    # -- Freeze --

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Freeze now instead of on the first request (surfaces config errors at startup)."""
        self._ensure_frozen()

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking.

        Several worker threads may receive their first request at the same
        moment; exactly one of them compiles the app.
        """
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()

    def _freeze(self) -> None:
        """Compile the app into its frozen runtime state.

        MUST only be called while holding _freeze_lock. Everything that can
        fail runs before anything is frozen, so a failed freeze leaves the
        app configurable.
        """
        security = self._security
        if security.csrf_protection and not security.csrf_secret:
            msg = (
                "CSRF protection needs a secret. Set AppConfig.secret_key "
                "or pass one to enable_csrf_protection()."
            )
            raise ConfigurationError(msg)

        # 1. Compile route table
        static = None
        if self.config.public_dir is not None:
            static = StaticFiles(self.config.public_dir, cache_control=self.config.static_cache_control)
        router = Router(static)
        for definition in self._definitions:
            router.add(definition)
        router.compile()

        # 2. Resolve every route target against the handler table
        strategies: Mapping[str, AuthStrategy] = deep_freeze(self._auth_strategies)
        resolver = StrategyResolver(strategies)
        endpoints: dict[Route, Endpoint] = {}
        for route in router.routes:
            invoker = self._handlers.resolve(route.definition.target)
            endpoints[route] = build_endpoint(route, invoker, resolver, login_path=self.config.login_path)
            for requirement in route.definition.auth_requirements:
                if resolver.resolve(requirement) is None:
                    logger.warning(
                        "Route %s %s requires %r but no auth strategy matches it",
                        route.verb,
                        route.path,
                        requirement,
                    )

        # 3. Build the middleware pipeline once; middleware constructors may still reject config
        dispatcher = Dispatcher(router, MappingProxyType(endpoints), self.config)
        pipeline = self._middleware.build(dispatcher, security)

        # 4. Freeze configuration
        security.freeze()
        self._handlers.freeze()
        self._middleware.freeze()
        self._pipeline = pipeline
        self._router = router
        self._dispatcher = dispatcher
        self._auth_strategies = strategies  # type: ignore[assignment]
        self._error_handlers = deep_freeze(self._error_handlers)
        self._error_registrations = deep_freeze(self._error_registrations)
        self._request_complete_callbacks = deep_freeze(self._request_complete_callbacks)
        self._definitions = deep_freeze(self._definitions)
        self._frozen = True

        logger.info(
            "warble app frozen: %d routes, %d middleware, %d auth strategies",
            len(router.routes),
            len(self._middleware),
            len(strategies),
        )

    def _check_not_frozen(self) -> None:
        if self._frozen:
            raise FrozenError()
