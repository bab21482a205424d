"""Tests for handler return value formatting."""

from typing import Any

import pytest

from warble.http.response import Response
from warble.server.negotiation import format_response


class TestDefault:
    def test_response_passes_through(self) -> None:
        response = Response("x", status=201)
        for response_type in ("default", "json", "redirect", "view", "auto"):
            assert format_response(response, response_type) is response

    def test_none_is_no_content(self) -> None:
        response = format_response(None)
        assert response.status == 204
        assert response.body == ""

    def test_str_is_html(self) -> None:
        response = format_response("<h1>Hi</h1>")
        assert response.status == 200
        assert response.content_type == "text/html; charset=utf-8"

    def test_bytes_is_octet_stream(self) -> None:
        assert format_response(b"\x00\x01").content_type == "application/octet-stream"

    @pytest.mark.parametrize("value", [{"a": 1}, [1, 2]])
    def test_containers_are_json(self, value: Any) -> None:
        response = format_response(value)
        assert response.content_type == "application/json"
        assert response.json() == value

    def test_status_tuple(self) -> None:
        response = format_response(({"id": 1}, 201))
        assert response.status == 201
        assert response.json() == {"id": 1}

    def test_status_headers_tuple(self) -> None:
        response = format_response(("made", 201, {"Location": "/things/1"}))
        assert response.status == 201
        assert response.header("Location") == "/things/1"
        assert response.text == "made"

    def test_other_values_stringified(self) -> None:
        assert format_response(42).text == "42"

    def test_unknown_type_uses_default(self) -> None:
        assert format_response({"a": 1}, "xml").json() == {"a": 1}


class TestJson:
    def test_none(self) -> None:
        assert format_response(None, "json").json() == {"success": True}

    def test_dict_as_is(self) -> None:
        assert format_response({"id": 7}, "json").json() == {"id": 7}

    @pytest.mark.parametrize("value", [[1, 2], "text", 5])
    def test_wrapped(self, value: Any) -> None:
        assert format_response(value, "json").json() == {"success": True, "data": value}


class TestRedirect:
    def test_to_path(self) -> None:
        response = format_response("/dashboard", "redirect")
        assert response.status == 302
        assert response.header("Location") == "/dashboard"

    @pytest.mark.parametrize("value", [None, "", {"a": 1}])
    def test_fallback_to_root(self, value: Any) -> None:
        assert format_response(value, "redirect").header("Location") == "/"


class TestView:
    def test_string(self) -> None:
        response = format_response("<p>x</p>", "view")
        assert response.is_html
        assert response.text == "<p>x</p>"

    def test_none_is_empty_page(self) -> None:
        response = format_response(None, "view")
        assert response.status == 200
        assert response.text == ""


class TestAuto:
    def test_containers_json(self) -> None:
        assert format_response([1], "auto").content_type == "application/json"

    def test_string_html(self) -> None:
        assert format_response("hi", "auto").is_html
