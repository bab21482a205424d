"""Session-bound CSRF tokens.

A token is ``payload:signature`` where *payload* is 32 random bytes
(hex) and::

    signature = HMAC-SHA256(secret, payload XOR SHA-256(session_id))

Binding the signature to the session id means a token issued for one
session never verifies for another. Verification always uses
``hmac.compare_digest``.
"""

import hashlib
import hmac
import re
import secrets

PAYLOAD_BYTES = 32
TOKEN_HEX_LENGTH = PAYLOAD_BYTES * 2

_HEX = re.compile(r"^[0-9a-f]+$")


def _binding(session_id: str) -> bytes:
    return hashlib.sha256(session_id.encode("utf-8")).digest()


def _sign(secret: str, payload: bytes, session_id: str) -> str:
    mixed = bytes(a ^ b for a, b in zip(payload, _binding(session_id), strict=True))
    return hmac.new(secret.encode("utf-8"), mixed, hashlib.sha256).hexdigest()


def generate_csrf_token(secret: str, session_id: str) -> str:
    """Issue a token bound to *session_id*."""
    if not secret:
        msg = "CSRF tokens require a non-empty secret"
        raise ValueError(msg)
    payload = secrets.token_bytes(PAYLOAD_BYTES)
    return f"{payload.hex()}:{_sign(secret, payload, session_id)}"


def verify_csrf_token(secret: str, token: str | None, session_id: str) -> bool:
    """Check *token* against the session it is presented with.

    Blank, malformed (segment count, hex, length) and foreign-session
    tokens all return ``False``.
    """
    if not token or not secret:
        return False
    parts = token.strip().split(":")
    if len(parts) != 2:
        return False
    payload_hex, signature = parts
    if len(payload_hex) != TOKEN_HEX_LENGTH or len(signature) != TOKEN_HEX_LENGTH:
        return False
    if not _HEX.match(payload_hex) or not _HEX.match(signature):
        return False
    expected = _sign(secret, bytes.fromhex(payload_hex), session_id)
    return hmac.compare_digest(signature, expected)


def csrf_meta_tag(token: str) -> str:
    """``<meta name="csrf-token" content="...">`` for HTML heads."""
    return f'<meta name="csrf-token" content="{token}">'


def csrf_form_tag(token: str, field_name: str = "_csrf_token") -> str:
    """Hidden input carrying the token inside a form."""
    return f'<input type="hidden" name="{field_name}" value="{token}">'


_HEAD_OPEN = re.compile(r"<head(\s[^>]*)?>", re.IGNORECASE)
_HEAD_CLOSE = re.compile(r"</head>", re.IGNORECASE)
_FORM_OPEN = re.compile(r"<form\b[^>]*>", re.IGNORECASE)


def inject_csrf_token(html: str, token: str, field_name: str = "_csrf_token") -> str:
    """Insert the meta tag into ``<head>`` and a hidden input into each form.

    The meta tag goes right after the opening ``<head>``, or before
    ``</head>`` when the opening tag cannot be found. HTML without either
    is left alone apart from forms.
    """
    meta = csrf_meta_tag(token)
    opened = _HEAD_OPEN.search(html)
    if opened is not None:
        html = f"{html[: opened.end()]}\n{meta}{html[opened.end() :]}"
    else:
        closed = _HEAD_CLOSE.search(html)
        if closed is not None:
            html = f"{html[: closed.start()]}{meta}\n{html[closed.start() :]}"
    hidden = csrf_form_tag(token, field_name)
    return _FORM_OPEN.sub(lambda m: f"{m.group(0)}\n{hidden}", html)
