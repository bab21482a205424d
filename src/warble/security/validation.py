"""Input validation and sanitization.

Two distinct phases:

1. **Rejection** — size, structure, content-type, and content checks.
   Any violation raises ``ValidationError`` (400) or
   ``RequestTooLargeError`` (413). Injection-pattern matches are always
   rejected, never silently cleaned.
2. **Sanitization** — values that passed are cleaned of null bytes,
   HTML comments, CDATA sections, and stray control characters.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Mapping
from typing import Any

from warble.errors import RequestTooLargeError, ValidationError

MAX_KEY_LENGTH = 256

# MIME types that carry executable content
DENIED_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/javascript",
        "application/x-javascript",
        "text/javascript",
        "application/ecmascript",
        "text/ecmascript",
        "application/x-sh",
        "application/x-csh",
        "application/x-shellscript",
        "application/x-msdownload",
        "application/x-msdos-program",
        "application/x-executable",
        "application/x-httpd-php",
        "application/hta",
        "text/x-python",
        "text/vbscript",
    }
)

XSS_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"<\s*script\b",
        r"<\s*/\s*script\s*>",
        r"<\s*(iframe|object|embed|applet|meta|base|svg|math)\b",
        r"javascript\s*:",
        r"vbscript\s*:",
        r"data\s*:[^,]*base64",
        r"\bon[a-z]+\s*=",
        r"expression\s*\(",
        r"<[^>]*\bstyle\s*=[^>]*url\s*\(",
    )
)

SQL_INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bunion\b[\s(]+(all\s+)?select\b",
        r"\bselect\s+(\*|[\w.]+(\s*,\s*[\w.]+)*)\s+from\s+\w+\s*(\bwhere\b|;|--|$)",
        r"\b(insert\s+into|delete\s+from|drop\s+(table|database)|truncate\s+table|alter\s+table)\b",
        r"\bupdate\b\s+\w+\s+\bset\b",
        r"\b(exec|execute)\s*(\(|xp_|sp_)",
        r"'\s*(or|and)\s*'?\d+'?\s*=\s*'?\d+",
        r"'\s*(or|and)\s*'[^']*'\s*=\s*'",
        r"\b(or|and)\s+\d+\s*=\s*\d+\s*(--|#|/\*|$)",
        r"'\s*;\s*\w+",
        r"'\s*(--|#)",
        r"/\*[\s\S]*?\*/",
        r"\b(sleep|benchmark|pg_sleep)\s*\(",
        r"\bwaitfor\s+delay\b",
    )
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_KEY_CONTROL = re.compile(r"[\x00-\x1f\x7f]")
_HTML_COMMENT = re.compile(r"<!--[\s\S]*?-->")
_CDATA = re.compile(r"<!\[CDATA\[[\s\S]*?\]\]>", re.IGNORECASE)


class InputValidator:
    """Apply request limits from a ``SecurityConfig``-like object.

    Usage::

        validator = InputValidator(max_param_depth=4)
        validator.validate_params({"user": {"name": "Ada"}})
        clean = validator.sanitize_params(params)
    """

    __slots__ = ("max_param_depth", "max_param_keys", "max_request_size", "max_value_length")

    def __init__(
        self,
        *,
        max_request_size: int = 10 * 1024 * 1024,
        max_param_depth: int = 32,
        max_param_keys: int = 64,
        max_value_length: int = 10_000,
    ) -> None:
        self.max_request_size = max_request_size
        self.max_param_depth = max_param_depth
        self.max_param_keys = max_param_keys
        self.max_value_length = max_value_length

    @classmethod
    def from_config(cls, config: Any) -> InputValidator:
        return cls(
            max_request_size=config.max_request_size,
            max_param_depth=config.max_param_depth,
            max_param_keys=config.max_param_keys,
            max_value_length=config.max_value_length,
        )

    # -- Rejection phase --

    def check_request_size(self, content_length: int | None) -> None:
        if content_length is not None and content_length > self.max_request_size:
            raise RequestTooLargeError(content_length, self.max_request_size)

    def check_content_type(self, content_type: str | None) -> None:
        if not content_type:
            return
        media_type = content_type.split(";", 1)[0].strip().lower()
        if media_type in DENIED_CONTENT_TYPES:
            raise ValidationError(f"Content type {media_type!r} is not allowed")

    def validate_params(self, params: Any, depth: int = 1) -> None:
        """Walk *params* and raise ``ValidationError`` on the first violation.

        The top-level mapping counts as depth 1, so a value nested
        ``max_param_depth`` containers deep is accepted and one more level
        is rejected.
        """
        if isinstance(params, Mapping):
            if depth > self.max_param_depth:
                raise ValidationError(f"Parameter nesting exceeds {self.max_param_depth} levels")
            if len(params) > self.max_param_keys:
                raise ValidationError(f"Too many parameters (limit {self.max_param_keys})")
            for key, value in params.items():
                self.validate_key(key)
                self.validate_params(value, depth + 1)
        elif isinstance(params, (list, tuple)):
            if depth > self.max_param_depth:
                raise ValidationError(f"Parameter nesting exceeds {self.max_param_depth} levels")
            if len(params) > self.max_param_keys:
                raise ValidationError(f"Too many parameter items (limit {self.max_param_keys})")
            for item in params:
                self.validate_params(item, depth + 1)
        elif isinstance(params, str):
            self.validate_value(params)

    def validate_key(self, key: Any) -> None:
        key = str(key)
        if len(key) > MAX_KEY_LENGTH:
            raise ValidationError("Parameter name too long")
        if _KEY_CONTROL.search(key):
            raise ValidationError("Parameter name contains control characters")

    def validate_value(self, value: str) -> None:
        if "\x00" in value:
            raise ValidationError("Parameter value contains null bytes")
        if len(value) > self.max_value_length:
            raise ValidationError(f"Parameter value too long (limit {self.max_value_length})")
        if looks_like_xss(value):
            raise ValidationError("Potentially malicious content detected")
        if looks_like_sql_injection(value):
            raise ValidationError("Potential SQL injection detected")

    # -- Sanitization phase --

    def sanitize_params(self, params: Any) -> Any:
        """Return a cleaned copy of *params* (after ``validate_params`` passed)."""
        if isinstance(params, Mapping):
            return {key: self.sanitize_params(value) for key, value in params.items()}
        if isinstance(params, list):
            return [self.sanitize_params(item) for item in params]
        if isinstance(params, tuple):
            return tuple(self.sanitize_params(item) for item in params)
        if isinstance(params, str):
            return sanitize_value(params)
        return params


def looks_like_xss(value: str) -> bool:
    return any(pattern.search(value) for pattern in XSS_PATTERNS)


def looks_like_sql_injection(value: str) -> bool:
    return any(pattern.search(value) for pattern in SQL_INJECTION_PATTERNS)


def sanitize_value(value: str) -> str:
    """Strip null bytes, HTML comments, CDATA sections, and control characters.

    Tabs and line breaks survive.
    """
    cleaned = value.replace("\x00", "")
    cleaned = _HTML_COMMENT.sub("", cleaned)
    cleaned = _CDATA.sub("", cleaned)
    return _CONTROL_CHARS.sub("", cleaned)


def validate_input(value: Any, max_length: int = 1000, *, allow_html: bool = False) -> str:
    """Validate and clean one free-form value for handler code.

    Raises ``ValidationError`` for oversize or injection-looking input.
    """
    if value is None:
        return ""
    text = str(value)
    if len(text) > max_length:
        raise ValidationError(f"Input too long (limit {max_length})")
    if not allow_html and looks_like_xss(text):
        raise ValidationError("Dangerous content detected")
    if looks_like_sql_injection(text):
        raise ValidationError("Potential SQL injection detected")
    return sanitize_value(text)


_FILENAME_UNSAFE = re.compile(r"[^\w.\-]")


def sanitize_filename(filename: str | None) -> str:
    """Reduce *filename* to a safe basename of at most 100 characters."""
    if not filename:
        return "file"
    name = unicodedata.normalize("NFKC", filename)
    name = name.replace("\\", "/").rsplit("/", 1)[-1]
    name = _FILENAME_UNSAFE.sub("_", name)
    name = re.sub(r"_+", "_", name).strip("._")
    if not name:
        return "file"
    if len(name) > 100:
        stem, dot, ext = name.rpartition(".")
        if dot and 0 < len(ext) <= 10:
            name = f"{stem[: 99 - len(ext)]}.{ext}"
        else:
            name = name[:100]
    return name
