"""Tests for session-bound CSRF tokens and CSRFMiddleware."""

import re

import pytest

from warble import App, AppConfig
from warble.errors import ConfigurationError
from warble.http.request import Request, make_environ
from warble.middleware.csrf import extract_csrf_token
from warble.security.audit import SecurityEvent
from warble.security.config import SecurityConfig
from warble.security.csrf import (
    csrf_form_tag,
    csrf_meta_tag,
    generate_csrf_token,
    inject_csrf_token,
    verify_csrf_token,
)
from warble.testing import TestClient

SECRET = "test-secret"
TOKEN_FORMAT = re.compile(r"^[0-9a-f]{64}:[0-9a-f]{64}$")
META_TOKEN = re.compile(r'<meta name="csrf-token" content="([^"]+)">')


class TestTokens:
    def test_format(self) -> None:
        token = generate_csrf_token(SECRET, "session-1")
        assert TOKEN_FORMAT.match(token)

    def test_tokens_are_fresh(self) -> None:
        assert generate_csrf_token(SECRET, "s") != generate_csrf_token(SECRET, "s")

    def test_verifies_for_own_session(self) -> None:
        token = generate_csrf_token(SECRET, "session-1")
        assert verify_csrf_token(SECRET, token, "session-1") is True

    def test_rejected_for_other_session(self) -> None:
        token = generate_csrf_token(SECRET, "session-1")
        assert verify_csrf_token(SECRET, token, "session-2") is False

    def test_rejected_with_other_secret(self) -> None:
        token = generate_csrf_token(SECRET, "session-1")
        assert verify_csrf_token("other", token, "session-1") is False

    @pytest.mark.parametrize(
        "token",
        [
            None,
            "",
            "abc",
            "a" * 64,
            f"{'a' * 64}:{'b' * 64}:{'c' * 64}",
            f"{'a' * 63}:{'b' * 64}",
            f"{'g' * 64}:{'b' * 64}",
            f"{'A' * 64}:{'B' * 64}",
        ],
    )
    def test_malformed_rejected(self, token: str | None) -> None:
        assert verify_csrf_token(SECRET, token, "session-1") is False

    @pytest.mark.parametrize(
        "position",
        [0, 31, 63, 64, 65, 96, 128],
        ids=[
            "payload-start",
            "payload-middle",
            "payload-end",
            "separator",
            "signature-start",
            "signature-middle",
            "signature-end",
        ],
    )
    def test_tampered_token_rejected(self, position: int) -> None:
        token = generate_csrf_token(SECRET, "session-1")
        replacement = "1" if token[position] == "0" else "0"
        tampered = token[:position] + replacement + token[position + 1 :]
        assert len(tampered) == len(token)
        assert tampered != token
        assert verify_csrf_token(SECRET, tampered, "session-1") is False

    def test_surrounding_whitespace_ignored(self) -> None:
        token = generate_csrf_token(SECRET, "s")
        assert verify_csrf_token(SECRET, f"  {token}\n", "s") is True

    def test_empty_secret_refused(self) -> None:
        with pytest.raises(ValueError, match="non-empty secret"):
            generate_csrf_token("", "s")


class TestInjection:
    def test_meta_after_head_and_hidden_inputs(self) -> None:
        html = '<html><head><title>x</title></head><body><form method="post"></form><form></form></body></html>'
        result = inject_csrf_token(html, "tok")
        assert f"<head>\n{csrf_meta_tag('tok')}" in result
        assert result.count(csrf_form_tag("tok")) == 2

    def test_head_with_attributes(self) -> None:
        result = inject_csrf_token('<head lang="en"></head>', "tok")
        assert result.startswith(f'<head lang="en">\n{csrf_meta_tag("tok")}')

    def test_no_head_leaves_body_alone(self) -> None:
        assert inject_csrf_token("<p>plain</p>", "tok") == "<p>plain</p>"

    def test_custom_field_name(self) -> None:
        result = inject_csrf_token("<form></form>", "tok", field_name="authenticity")
        assert 'name="authenticity"' in result


class TestExtraction:
    def _request(self, headers: dict[str, str] | None = None, query: str = "") -> Request:
        return Request.from_environ(make_environ("POST", "/", headers=headers, query_string=query))

    def test_parameter_first(self) -> None:
        request = self._request({"X-CSRF-Token": "header"}, query="_csrf_token=param")
        assert extract_csrf_token(request, SecurityConfig()) == "param"

    def test_header(self) -> None:
        assert extract_csrf_token(self._request({"X-CSRF-Token": "header"}), SecurityConfig()) == "header"

    def test_xsrf_header_only_for_xhr(self) -> None:
        config = SecurityConfig()
        assert extract_csrf_token(self._request({"X-XSRF-Token": "alt"}), config) is None
        xhr = self._request({"X-XSRF-Token": "alt", "X-Requested-With": "XMLHttpRequest"})
        assert extract_csrf_token(xhr, config) == "alt"


class Forms:
    def __init__(self, request: Request) -> None:
        self.request = request

    def new(self) -> str:
        return '<html><head></head><body><form method="post" action="/submit"></form></body></html>'

    def create(self) -> dict[str, bool]:
        return {"saved": True}


@pytest.fixture
def client() -> TestClient:
    app = App(AppConfig(secret_key=SECRET))
    app.register(Forms)
    app.add_route("GET  /form    Forms#new")
    app.add_route("POST /submit  Forms#create response=json")
    app.add_route("POST /hook    Forms#create response=json csrf=exempt")
    app.enable_csrf_protection()
    return TestClient(app)


def _token(client: TestClient) -> str:
    page = client.get("/form")
    found = META_TOKEN.search(page.text)
    assert found is not None
    return found.group(1)


class TestMiddleware:
    def test_get_injects_token_and_binding_cookie(self, client: TestClient) -> None:
        page = client.get("/form")
        assert page.status == 200
        assert TOKEN_FORMAT.match(META_TOKEN.search(page.text).group(1))  # type: ignore[union-attr]
        assert 'name="_csrf_token"' in page.text
        assert "_csrf_session" in client.cookies

    def test_post_without_token_rejected(self, client: TestClient) -> None:
        _token(client)
        response = client.post("/submit", data={"title": "x"}, headers={"Accept": "text/html"})
        assert response.status == 403
        assert response.content_type == "application/json"
        assert response.json()["error"] == "CSRF token validation failed"

    def test_post_with_form_token(self, client: TestClient) -> None:
        token = _token(client)
        response = client.post("/submit", data={"title": "x", "_csrf_token": token})
        assert response.status == 200
        assert response.json() == {"saved": True}

    def test_post_with_header_token(self, client: TestClient) -> None:
        token = _token(client)
        assert client.post("/submit", headers={"X-CSRF-Token": token}).status == 200

    def test_xsrf_header_requires_xhr(self, client: TestClient) -> None:
        token = _token(client)
        assert client.post("/submit", headers={"X-XSRF-Token": token}).status == 403
        response = client.post(
            "/submit", headers={"X-XSRF-Token": token, "X-Requested-With": "XMLHttpRequest"}
        )
        assert response.status == 200

    def test_token_from_other_session_rejected(self, client: TestClient) -> None:
        token = _token(client)
        client.cookies.clear()
        _token(client)
        assert client.post("/submit", headers={"X-CSRF-Token": token}).status == 403

    def test_exempt_route(self, client: TestClient) -> None:
        response = client.post("/hook", data={"event": "ping"})
        assert response.status == 200

    def test_rejection_emits_event(self, client: TestClient, security_events: list[SecurityEvent]) -> None:
        client.post("/submit", headers={"X-CSRF-Token": "nope"})
        assert [(event.name, event.details["reason"]) for event in security_events] == [("csrf.rejected", "invalid")]

    def test_missing_secret_fails_freeze(self) -> None:
        app = App()
        app.enable_csrf_protection()
        with pytest.raises(ConfigurationError, match="CSRF protection needs a secret"):
            app.freeze()
        assert app.frozen is False
