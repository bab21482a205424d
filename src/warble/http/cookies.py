"""Cookies in both directions.

``parse_cookies`` reads the ``Cookie`` request header. ``SetCookie`` is the
directive a Response carries, and ``parse_set_cookie`` turns a serialized
directive back into one (the test client keeps its jar that way).
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, replace
from typing import Any

SAMESITE_VALUES: frozenset[str] = frozenset({"", "lax", "strict", "none"})


def _pairs(header: str) -> Iterator[tuple[str, str]]:
    for chunk in header.split(";"):
        name, sep, value = chunk.partition("=")
        name = name.strip()
        if sep and name:
            yield name, value.strip().strip('"')


def parse_cookies(header: str) -> dict[str, str]:
    """Parse a ``Cookie`` header into a name -> value dict.

    The first occurrence of a repeated name wins, since browsers send the
    cookie with the most specific path first.
    """
    cookies: dict[str, str] = {}
    for name, value in _pairs(header or ""):
        cookies.setdefault(name, value)
    return cookies


@dataclass(frozen=True, slots=True)
class SetCookie:
    """A ``Set-Cookie`` directive attached to a Response.

    Defaults suit session and CSRF cookies: ``HttpOnly``, ``SameSite=Lax``,
    scoped to the whole site. ``samesite="none"`` is only accepted together
    with ``secure=True``, which browsers require.
    """

    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    def __post_init__(self) -> None:
        samesite = self.samesite.lower()
        if samesite not in SAMESITE_VALUES:
            msg = f"Invalid SameSite value {self.samesite!r}"
            raise ValueError(msg)
        if samesite == "none" and not self.secure:
            msg = f"Cookie {self.name!r}: SameSite=None requires secure=True"
            raise ValueError(msg)
        object.__setattr__(self, "samesite", samesite)

    def expire(self) -> SetCookie:
        """The same cookie, emptied and set to expire immediately."""
        return replace(self, value="", max_age=0)

    def to_header_value(self) -> str:
        """Serialize to a ``Set-Cookie`` header value."""
        attributes: list[str | None] = [
            f"{self.name}={self.value}",
            f"Max-Age={self.max_age}" if self.max_age is not None else None,
            f"Path={self.path}" if self.path else None,
            f"Domain={self.domain}" if self.domain else None,
            "Secure" if self.secure else None,
            "HttpOnly" if self.httponly else None,
            f"SameSite={self.samesite.capitalize()}" if self.samesite else None,
        ]
        return "; ".join(part for part in attributes if part)


def parse_set_cookie(value: str) -> SetCookie:
    """Parse a serialized ``Set-Cookie`` value back into a ``SetCookie``.

    Attributes that are absent read as off: no path, no ``HttpOnly``, no
    ``SameSite``. Unknown attributes (``Expires``, ``Priority``) are ignored.
    """
    first, *attributes = (part.strip() for part in value.split(";"))
    name, _, cookie_value = first.partition("=")
    options: dict[str, Any] = {"httponly": False, "samesite": "", "path": ""}
    for attribute in attributes:
        key, _, raw = attribute.partition("=")
        match key.lower():
            case "max-age":
                options["max_age"] = int(raw)
            case "path":
                options["path"] = raw
            case "domain":
                options["domain"] = raw
            case "secure":
                options["secure"] = True
            case "httponly":
                options["httponly"] = True
            case "samesite":
                options["samesite"] = raw.lower()
    return SetCookie(name=name.strip(), value=cookie_value, **options)
