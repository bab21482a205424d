"""HTTP primitives: request, response, headers, cookies, query, forms."""

from warble.http.cookies import SetCookie, parse_cookies, parse_set_cookie
from warble.http.forms import FormData, UploadFile
from warble.http.headers import Headers
from warble.http.query import QueryParams
from warble.http.request import Request
from warble.http.response import Response, json_response, redirect, text_response

__all__ = [
    "FormData",
    "Headers",
    "QueryParams",
    "Request",
    "Response",
    "SetCookie",
    "UploadFile",
    "json_response",
    "parse_cookies",
    "parse_set_cookie",
    "redirect",
    "text_response",
]
