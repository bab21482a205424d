"""Locale negotiation.

Resolution order:

1. ``?locale=`` query parameter
2. ``session["locale"]``
3. ``Accept-Language``, highest q-value first (``fr-CA`` also tries ``fr``)
4. the configured default

Only locales in ``AppConfig.available_locales`` are ever returned.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from warble.http.request import Request

logger = logging.getLogger("warble.server")


def parse_accept_language(header: str | None) -> list[str]:
    """Language tags from an ``Accept-Language`` header, best first.

    ``"fr-CA,en;q=0.8,de;q=0"`` -> ``["fr-ca", "en"]``. Tags with
    ``q=0`` are dropped; malformed q-values count as ``q=0``.
    """
    if not header:
        return []
    weighted: list[tuple[float, int, str]] = []
    for index, part in enumerate(header.split(",")):
        tag, _, params = part.strip().partition(";")
        tag = tag.strip().lower()
        if not tag or tag == "*":
            continue
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        if quality > 0:
            weighted.append((-quality, index, tag))
    return [tag for _, _, tag in sorted(weighted)]


def _match(candidate: Any, available: Sequence[str]) -> str | None:
    if not isinstance(candidate, str) or not candidate:
        return None
    lowered = candidate.lower()
    for locale in available:
        if locale.lower() == lowered:
            return locale
    return None


def negotiate_locale(
    request: Request,
    available: Sequence[str],
    default: str,
    session: Mapping[str, Any] | None = None,
) -> str:
    """Pick the request's locale from *available*, falling back to *default*."""
    found = _match(request.query.get("locale"), available)
    if found is not None:
        return found

    if session is not None:
        found = _match(session.get("locale"), available)
        if found is not None:
            return found

    for tag in parse_accept_language(request.headers.get("accept-language")):
        found = _match(tag, available) or _match(tag.split("-", 1)[0], available)
        if found is not None:
            return found

    logger.debug("No acceptable locale for %s %s; using %s", request.method, request.path, default)
    return default
