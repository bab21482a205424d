"""Tests for the HTTP primitives: headers, cookies, query, forms, request, response."""

from io import BytesIO

import pytest

from warble.errors import BadRequest
from warble.http.cookies import SetCookie, parse_cookies
from warble.http.forms import FormData, nest_params, parse_form_data
from warble.http.headers import Headers
from warble.http.query import QueryParams
from warble.http.request import Request, make_environ, wsgi_path
from warble.http.response import Response, json_response, redirect, status_line, text_response
from warble.testing import parse_set_cookie


def _request(method: str = "GET", path: str = "/", **kwargs: object) -> Request:
    return Request.from_environ(make_environ(method, path, **kwargs))  # type: ignore[arg-type]


class TestHeaders:
    def test_case_insensitive(self) -> None:
        headers = Headers((("Content-Type", "text/html"), ("X-Multi", "a"), ("x-multi", "b")))
        assert headers["content-type"] == "text/html"
        assert "CONTENT-TYPE" in headers
        assert headers.get_list("X-MULTI") == ["a", "b"]
        assert list(headers) == ["content-type", "x-multi"]
        assert len(headers) == 2
        assert headers.get("missing", "d") == "d"

    def test_immutable(self) -> None:
        with pytest.raises(AttributeError):
            Headers().foo = 1  # type: ignore[attr-defined]

    def test_from_environ(self) -> None:
        environ = make_environ("POST", "/", headers={"X-Token": "t", "Content-Type": "text/plain"}, body=b"abc")
        headers = Headers.from_environ(environ)
        assert headers["x-token"] == "t"
        assert headers["content-type"] == "text/plain"
        assert headers["content-length"] == "3"


class TestCookies:
    def test_parse(self) -> None:
        assert parse_cookies("") == {}
        assert parse_cookies('a=1; b="two"; junk; a=3') == {"a": "1", "b": "two"}

    def test_set_cookie_header(self) -> None:
        cookie = SetCookie("sid", "abc", max_age=60, domain="example.com", secure=True, samesite="strict")
        assert cookie.to_header_value() == (
            "sid=abc; Max-Age=60; Path=/; Domain=example.com; Secure; HttpOnly; SameSite=Strict"
        )

    def test_parse_set_cookie(self) -> None:
        cookie = parse_set_cookie("sid=abc; Max-Age=0; Path=/app; Secure; HttpOnly; SameSite=Lax")
        assert cookie == SetCookie("sid", "abc", max_age=0, path="/app", secure=True, httponly=True, samesite="lax")

    def test_samesite_normalised_and_checked(self) -> None:
        assert SetCookie("a", "1", samesite="Strict").samesite == "strict"
        with pytest.raises(ValueError, match="Invalid SameSite"):
            SetCookie("a", "1", samesite="sometimes")
        with pytest.raises(ValueError, match="requires secure=True"):
            SetCookie("a", "1", samesite="none")
        assert SetCookie("a", "1", samesite="none", secure=True).to_header_value().endswith("SameSite=None")

    def test_expire(self) -> None:
        expired = SetCookie("sid", "abc", path="/app").expire()
        assert (expired.value, expired.max_age, expired.path) == ("", 0, "/app")
        assert Response().without_cookie("sid").cookies[0].max_age == 0


class TestQueryParams:
    def test_access(self) -> None:
        query = QueryParams("a=1&a=2&b=&c=x%20y")
        assert query["a"] == "1"
        assert query.get_list("a") == ["1", "2"]
        assert query["b"] == ""
        assert query.get("c") == "x y"
        assert query.get("zz") is None
        assert query.raw == "a=1&a=2&b=&c=x%20y"
        assert query.to_dict() == {"a": ["1", "2"], "b": "", "c": "x y"}

    def test_pairs_keep_url_order(self) -> None:
        query = QueryParams("b=1&a=2&b=3")
        assert list(query.items_multi()) == [("b", "1"), ("a", "2"), ("b", "3")]
        with pytest.raises(AttributeError):
            query._raw = "x"  # type: ignore[misc]


class TestNestParams:
    def test_flat_and_nested(self) -> None:
        pairs = [("a", "1"), ("user[name]", "Ada"), ("user[address][city]", "London"), ("tags[]", "x"), ("tags[]", "y")]
        assert nest_params(pairs) == {
            "a": "1",
            "user": {"name": "Ada", "address": {"city": "London"}},
            "tags": ["x", "y"],
        }

    def test_repeated_plain_name_keeps_last(self) -> None:
        assert nest_params([("a", "1"), ("a", "2")]) == {"a": "2"}

    def test_malformed_brackets_stay_flat(self) -> None:
        assert nest_params([("a[b", "1"), ("[x]", "2")]) == {"a[b": "1", "[x]": "2"}

    def test_conflicting_shapes(self) -> None:
        with pytest.raises(BadRequest, match="Conflicting types"):
            nest_params([("a", "1"), ("a[b]", "2")])
        with pytest.raises(BadRequest, match="Conflicting types"):
            nest_params([("a[b]", "1"), ("a[]", "2")])


class TestForms:
    def test_urlencoded(self) -> None:
        form = parse_form_data(b"name=Ada&tag=a&tag=b", "application/x-www-form-urlencoded")
        assert form["name"] == "Ada"
        assert form.get_list("tag") == ["a", "b"]
        assert list(form.items_multi()) == [("name", "Ada"), ("tag", "a"), ("tag", "b")]

    def test_urlencoded_bad_utf8(self) -> None:
        with pytest.raises(BadRequest, match="not valid UTF-8"):
            parse_form_data(b"name=\xff", "application/x-www-form-urlencoded")

    def test_multipart(self) -> None:
        body = (
            b"--XyZ\r\n"
            b'Content-Disposition: form-data; name="title"\r\n\r\n'
            b"Report\r\n"
            b"--XyZ\r\n"
            b'Content-Disposition: form-data; name="upload"; filename="r.txt"\r\n'
            b"Content-Type: text/plain\r\n\r\n"
            b"hello\r\n"
            b"--XyZ--\r\n"
        )
        form = parse_form_data(body, "multipart/form-data; boundary=XyZ")
        assert form["title"] == "Report"
        upload = form.files["upload"]
        assert upload.filename == "r.txt"
        assert upload.content_type == "text/plain"
        assert upload.content == b"hello"
        assert upload.size == 5

    def test_multipart_without_boundary(self) -> None:
        with pytest.raises(BadRequest, match="missing boundary"):
            parse_form_data(b"", "multipart/form-data")

    def test_empty_form_data(self) -> None:
        assert len(FormData()) == 0


class TestRequest:
    def test_from_environ(self) -> None:
        request = _request(
            "post",
            "/items",
            query_string="page=2",
            headers={"Cookie": "sid=1", "Accept": "application/json"},
            remote_addr="1.2.3.4",
        )
        assert request.method == "POST"
        assert request.path == "/items"
        assert request.url == "/items?page=2"
        assert request.cookies == {"sid": "1"}
        assert request.remote_addr == "1.2.3.4"
        assert request.server == ("testserver", 80)
        assert request.accepts_json() is True

    def test_unicode_path(self) -> None:
        assert _request(path="/café").path == "/café"

    def test_make_environ_decodes_like_a_server(self) -> None:
        assert make_environ(path="/a%20b")["PATH_INFO"] == "/a b"
        assert make_environ(path="/caf%C3%A9")["PATH_INFO"] == "/caf\xc3\xa9"
        assert make_environ(path="/a%2541")["PATH_INFO"] == "/a%41"

    def test_wsgi_path(self) -> None:
        assert wsgi_path("/caf\xc3\xa9") == "/café"
        assert wsgi_path("/bad\xff") == "/bad\ufffd"
        assert wsgi_path("/a%41") == "/a%41"
        assert wsgi_path("/already-text-\u20ac") == "/already-text-\u20ac"

    def test_body_read_once(self) -> None:
        environ = make_environ("POST", "/", body=b"payload")
        stream = environ["wsgi.input"]
        request = Request.from_environ(environ)
        assert request.body() == b"payload"
        assert request.text() == "payload"
        assert stream.read() == b""

    def test_body_without_length(self) -> None:
        environ = make_environ("POST", "/")
        environ["wsgi.input"] = BytesIO(b"ignored")
        assert Request.from_environ(environ).body() == b""

    def test_json(self) -> None:
        request = _request("POST", "/", body=b'{"a": [1]}', headers={"Content-Type": "application/json"})
        assert request.json() == {"a": [1]}
        assert _request("POST", "/").json() is None

    def test_malformed_json(self) -> None:
        with pytest.raises(BadRequest, match="Malformed JSON"):
            _request("POST", "/", body=b"{nope").json()

    def test_params_merge_query_and_form(self) -> None:
        request = _request(
            "POST",
            "/",
            query_string="a=1&user[name]=q",
            body=b"user[email]=ada%40example.com&a=2",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert request.params() == {"a": "2", "user": {"name": "q", "email": "ada@example.com"}}
        assert request.param("a") == "2"
        assert request.param("missing", "d") == "d"

    def test_xhr(self) -> None:
        assert _request(headers={"X-Requested-With": "XMLHttpRequest"}).is_xhr is True
        assert _request().is_xhr is False

    def test_with_path_params_shares_body(self) -> None:
        request = _request("POST", "/", body=b"x")
        request.body()
        scoped = request.with_path_params({"id": "7"})
        assert scoped.path_params == {"id": "7"}
        assert scoped.body() == b"x"
        assert request.path_params == {}


class TestResponse:
    def test_chain_is_immutable(self) -> None:
        base = Response("hi")
        changed = base.with_status(201).with_header("X-A", "1").with_content_type("text/plain")
        assert base.status == 200
        assert base.headers == ()
        assert (changed.status, changed.header("x-a"), changed.content_type) == (201, "1", "text/plain")

    def test_without_header(self) -> None:
        response = Response().with_headers({"X-A": "1", "X-B": "2"}).without_header("x-a")
        assert response.headers == (("X-B", "2"),)

    def test_with_body_recomputes_length(self) -> None:
        response = Response("abc").with_header("Content-Length", "3").with_body("abcdef")
        assert response.header("Content-Length") == "6"

    def test_cookies(self) -> None:
        response = Response().with_cookie("a", "1", max_age=10).without_cookie("b")
        assert [(c.name, c.max_age) for c in response.cookies] == [("a", 10), ("b", 0)]

    def test_wsgi_headers(self) -> None:
        response = Response("héllo").with_header("X-A", "1").with_cookie("sid", "v")
        assert response.wsgi_headers() == [
            ("Content-Type", "text/html; charset=utf-8"),
            ("X-A", "1"),
            ("Content-Length", "6"),
            ("Set-Cookie", "sid=v; Path=/; HttpOnly; SameSite=Lax"),
        ]

    def test_helpers(self) -> None:
        assert json_response({"a": 1}, status=201).json() == {"a": 1}
        assert redirect("/x").header("Location") == "/x"
        assert text_response("t").content_type == "text/plain; charset=utf-8"

    @pytest.mark.parametrize(("status", "line"), [(200, "200 OK"), (429, "429 Too Many Requests"), (599, "599 Unknown")])
    def test_status_line(self, status: int, line: str) -> None:
        assert status_line(status) == line
