"""Tests for warble.security.auth — strategies, resolution, and the route wrapper."""

from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from warble.context import RequestContext, context_var, get_strategy_result, request_var
from warble.errors import AuthenticationFailure, AuthorizationError
from warble.http.request import Request, make_environ
from warble.http.response import Response
from warble.middleware.sessions import bind_session, current_session
from warble.routing.definition import RouteDefinition
from warble.security.audit import SecurityEvent
from warble.security.auth import (
    APIKeyStrategy,
    AuthFailure,
    AuthStrategy,
    NoAuthStrategy,
    PermissionStrategy,
    RoleAuthorization,
    RoleStrategy,
    RouteAuthWrapper,
    SessionStrategy,
    StrategyResolver,
    StrategyResult,
)
from warble.security.auth.responses import authentication_required


def _request(path: str = "/", headers: dict[str, str] | None = None, query: str = "") -> Request:
    return Request.from_environ(make_environ("GET", path, headers=headers, query_string=query))


@contextmanager
def _in_request(request: Request) -> Iterator[RequestContext]:
    context = RequestContext()
    request_token = request_var.set(request)
    context_token = context_var.set(context)
    try:
        yield context
    finally:
        context_var.reset(context_token)
        request_var.reset(request_token)


def _ok(request: Request) -> Response:
    return Response(body="ok")


class Recording(AuthStrategy):
    """Succeeds or fails on demand and records every call."""

    def __init__(self, succeed: bool, calls: list[str], label: str) -> None:
        self.succeed = succeed
        self.calls = calls
        self.label = label

    def authenticate(self, request: Request, argument: str | None) -> StrategyResult | AuthFailure:
        self.calls.append(self.label)
        if self.succeed:
            return self.success({"id": self.label}, session={"who": self.label})
        return self.failure(f"{self.label} said no")


def _wrapper(
    auth: str | None,
    strategies: dict[str, AuthStrategy],
    *,
    extra: str = "",
    login_path: str | None = None,
) -> RouteAuthWrapper:
    options = f" auth={auth}" if auth else ""
    definition = RouteDefinition.parse("GET", "/r", f"Things#show{options}{extra}")
    return RouteAuthWrapper(_ok, definition, StrategyResolver(strategies), login_path=login_path)


class TestStrategyResolver:
    def test_exact_name(self) -> None:
        strategy = NoAuthStrategy()
        resolved = StrategyResolver({"role:admin": strategy}).resolve("role:admin")
        assert resolved is not None
        assert resolved.strategy is strategy
        assert resolved.name == "role:admin"
        assert resolved.argument is None

    def test_prefix(self) -> None:
        strategy = RoleStrategy()
        resolved = StrategyResolver({"role": strategy}).resolve("role:admin")
        assert resolved is not None
        assert resolved.name == "role"
        assert resolved.argument == "admin"

    def test_wildcard(self) -> None:
        strategy = RoleStrategy()
        resolved = StrategyResolver({"role:*": strategy}).resolve("role:editor")
        assert resolved is not None
        assert resolved.name == "role:*"
        assert resolved.argument == "editor"

    def test_exact_beats_prefix_beats_wildcard(self) -> None:
        exact, prefix, wildcard = NoAuthStrategy(), NoAuthStrategy(), NoAuthStrategy()
        resolver = StrategyResolver({"role:admin": exact, "role": prefix, "role:*": wildcard})
        assert resolver.resolve("role:admin").strategy is exact  # type: ignore[union-attr]
        assert resolver.resolve("role:user").strategy is prefix  # type: ignore[union-attr]
        assert StrategyResolver({"role:*": wildcard}).resolve("role:user").strategy is wildcard  # type: ignore[union-attr]

    def test_unregistered(self) -> None:
        resolver = StrategyResolver({"session": SessionStrategy()})
        assert resolver.resolve("apikey") is None
        assert resolver.resolve("role:admin") is None

    def test_lookup_cached(self) -> None:
        resolver = StrategyResolver({"role:*": RoleStrategy()})
        first = resolver.resolve("role:admin")
        assert resolver.resolve("role:admin") is first
        resolver.clear_cache()
        assert resolver.resolve("role:admin") is not first


class TestRouteAuthWrapper:
    def test_no_auth_sets_anonymous_result(self) -> None:
        wrapper = _wrapper(None, {})
        with _in_request(_request()) as context:
            assert wrapper(_request()).text == "ok"
            result = context.strategy_result
        assert result is not None
        assert result.auth_method == "anonymous"
        assert result.user is None
        assert dict(result.session) == {}

    def test_first_success_short_circuits(self) -> None:
        calls: list[str] = []
        strategies: dict[str, AuthStrategy] = {
            "a": Recording(False, calls, "a"),
            "b": Recording(True, calls, "b"),
            "c": Recording(True, calls, "c"),
        }
        wrapper = _wrapper("a,b,c", strategies)
        with _in_request(_request()) as context:
            assert wrapper(_request()).status == 200
            result = context.strategy_result
        assert calls == ["a", "b"]
        assert result is not None
        assert result.strategy_name == "b"
        assert result.user_id == "b"

    def test_winning_session_bound_for_handler(self) -> None:
        seen: list[object] = []

        def handler(request: Request) -> Response:
            seen.append(current_session())
            return Response(body="ok")

        definition = RouteDefinition.parse("GET", "/r", "Things#show auth=b")
        calls: list[str] = []
        wrapper = RouteAuthWrapper(handler, definition, StrategyResolver({"b": Recording(True, calls, "b")}))
        with _in_request(_request()):
            wrapper(_request())
            assert current_session() is None
        assert seen == [{"who": "b"}]

    def test_all_fail_returns_401(self, caplog: pytest.LogCaptureFixture) -> None:
        calls: list[str] = []
        wrapper = _wrapper("a,missing,c", {"a": Recording(False, calls, "a"), "c": Recording(False, calls, "c")})
        with _in_request(_request()) as context:
            response = wrapper(_request())
            assert context.strategy_result is None
        assert response.status == 401
        assert response.text == "Authentication Required"
        assert calls == ["a", "c"]
        assert "No auth strategy registered for 'missing'" in caplog.text
        assert "tried a, missing, c" in caplog.text

    def test_failure_emits_security_event(self, security_events: list[SecurityEvent]) -> None:
        wrapper = _wrapper("nothing", {})
        with _in_request(_request()):
            wrapper(_request())
        assert [event.name for event in security_events] == ["auth.failed"]
        assert security_events[0].details["tried"] == ["nothing"]

    def test_json_route_always_gets_json(self) -> None:
        wrapper = _wrapper("nothing", {}, extra=" response=json", login_path="/login")
        request = _request(headers={"Accept": "text/html"})
        with _in_request(request):
            response = wrapper(request)
        assert response.status == 401
        assert response.content_type == "application/json"
        body = response.json()
        assert body["error"] == "Authentication Required"
        assert isinstance(body["timestamp"], int)

    def test_json_accept_gets_json(self) -> None:
        wrapper = _wrapper("nothing", {})
        request = _request(headers={"Accept": "application/json"})
        with _in_request(request):
            response = wrapper(request)
        assert response.status == 401
        assert response.json()["message"] == "Authentication required"

    def test_response_built_from_failure(self) -> None:
        definition = RouteDefinition.parse("GET", "/r", "Things#show response=json")
        failure = AuthenticationFailure("Token expired", tried=("apikey",))
        response = authentication_required(_request(), definition, failure)
        assert response.status == 401
        assert response.json()["message"] == "Token expired"
        assert response.json()["error"] == "Authentication Required"

    def test_browser_redirected_to_login(self) -> None:
        wrapper = _wrapper("nothing", {}, login_path="/login")
        request = _request("/r", query="x=1")
        with _in_request(request):
            response = wrapper(request)
        assert response.status == 302
        assert response.header("Location") == "/login?next=/r%3Fx%3D1"

    def test_none_outcome_moves_on(self) -> None:
        class Abstains(AuthStrategy):
            def authenticate(self, request: Request, argument: str | None) -> None:
                return None

        wrapper = _wrapper("quiet,open", {"quiet": Abstains(), "open": NoAuthStrategy()})
        with _in_request(_request()) as context:
            assert wrapper(_request()).status == 200
            assert context.strategy_result is not None
            assert context.strategy_result.strategy_name == "open"


class TestBuiltinStrategies:
    def test_noauth_always_succeeds(self) -> None:
        result = NoAuthStrategy().authenticate(_request(), None)
        assert isinstance(result, StrategyResult)
        assert result.authenticated is False

    def test_session_strategy(self) -> None:
        strategy = SessionStrategy()
        assert isinstance(strategy.authenticate(_request(), None), AuthFailure)
        with bind_session({"user_id": 5, "user_roles": ["admin"]}):
            result = strategy.authenticate(_request(), None)
        assert isinstance(result, StrategyResult)
        assert result.user_id == 5
        assert result.has_role("admin")

    def test_session_strategy_user_loader(self) -> None:
        strategy = SessionStrategy(user_loader=lambda uid: None if uid == 1 else {"id": uid, "name": "Ada"})
        with bind_session({"user_id": 1}):
            assert isinstance(strategy.authenticate(_request(), None), AuthFailure)
        with bind_session({"user_id": 2}):
            result = strategy.authenticate(_request(), None)
        assert isinstance(result, StrategyResult)
        assert result.user_name == "Ada"

    def test_role_strategy_uses_argument(self) -> None:
        strategy = RoleStrategy()
        with bind_session({"user_roles": ["editor"]}):
            assert isinstance(strategy.authenticate(_request(), "admin"), AuthFailure)
            assert isinstance(strategy.authenticate(_request(), "editor"), StrategyResult)

    def test_role_strategy_allowed_roles(self) -> None:
        strategy = RoleStrategy(allowed_roles=["admin", "owner"])
        with bind_session({"user_roles": "owner"}):
            result = strategy.authenticate(_request(), None)
        assert isinstance(result, StrategyResult)
        assert result.metadata["required_role"] == "owner"

    def test_role_strategy_without_session(self) -> None:
        assert isinstance(RoleStrategy().authenticate(_request(), "admin"), AuthFailure)

    def test_permission_strategy(self) -> None:
        strategy = PermissionStrategy()
        with bind_session({"user_permissions": ["reports.read"]}):
            assert isinstance(strategy.authenticate(_request(), "reports.read"), StrategyResult)
            assert isinstance(strategy.authenticate(_request(), "reports.write"), AuthFailure)

    def test_api_key_header_and_query(self) -> None:
        strategy = APIKeyStrategy(api_keys=["k-123456"])
        assert isinstance(strategy.authenticate(_request(headers={"X-API-Key": "k-123456"}), None), StrategyResult)
        assert isinstance(strategy.authenticate(_request(query="api_key=k-123456"), None), StrategyResult)
        assert isinstance(strategy.authenticate(_request(headers={"X-API-Key": "wrong"}), None), AuthFailure)
        assert isinstance(strategy.authenticate(_request(), None), AuthFailure)

    def test_api_key_non_ascii_rejected(self) -> None:
        strategy = APIKeyStrategy(api_keys=["k-123456"])
        assert isinstance(strategy.authenticate(_request(query="api_key=%C3%A9"), None), AuthFailure)


class TestStrategyResult:
    def test_anonymous(self) -> None:
        result = StrategyResult.anonymous(ip="1.2.3.4")
        assert result.authenticated is False
        assert result.anonymous_user is True
        assert result.metadata["ip"] == "1.2.3.4"
        assert result.user_context() == {"authenticated": False}

    def test_user_accessors(self) -> None:
        result = StrategyResult(
            user={"id": 9, "name": "Ada", "roles": "admin,editor", "permissions": ["write"]},
            auth_method="session",
        )
        assert result.user_id == 9
        assert result.user_name == "Ada"
        assert result.roles == ("admin", "editor")
        assert result.has_any_role("viewer", "editor")
        assert result.has_permission("write")
        assert result.user_context()["roles"] == ["admin", "editor"]

    def test_object_user(self) -> None:
        class User:
            id = 3
            roles = ("staff",)

        result = StrategyResult(user=User())
        assert result.user_id == 3
        assert result.has_role("staff")

    def test_to_dict(self) -> None:
        data = StrategyResult(user={"id": 1}, auth_method="api_key", strategy_name="apikey").to_dict()
        assert data == {
            "authenticated": True,
            "auth_method": "api_key",
            "strategy_name": "apikey",
            "user_id": 1,
            "metadata": {},
        }

    def test_get_strategy_result_outside_wrapper(self) -> None:
        with _in_request(_request()), pytest.raises(LookupError, match="No authentication result"):
            get_strategy_result()


class TestRoleAuthorization:
    def test_passes_with_any_role(self) -> None:
        result = StrategyResult(user={"id": 1, "roles": ["editor"]})
        RoleAuthorization("admin", "editor").authorize(result)

    def test_raises_without_role(self) -> None:
        result = StrategyResult(user={"id": 1, "roles": ["viewer"]})
        with pytest.raises(AuthorizationError) as info:
            RoleAuthorization("admin").authorize(result, resource="reports", action="read")
        assert info.value.status == 403
        assert info.value.to_log_data()["resource"] == "reports"
        assert info.value.user_id == 1

    def test_anonymous_fails(self) -> None:
        assert RoleAuthorization("admin").check(StrategyResult.anonymous()) is False

    def test_requires_roles(self) -> None:
        with pytest.raises(ValueError):
            RoleAuthorization()
