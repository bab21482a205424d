"""Shared type aliases used across warble modules."""

from collections.abc import Callable, Iterable
from typing import Any, TypeAlias

# Error handler: receives (request, error?) and returns a response value
ErrorHandler: TypeAlias = Callable[..., Any]

# WSGI (PEP 3333)
Environ: TypeAlias = dict[str, Any]
StartResponse: TypeAlias = Callable[..., Any]
WSGIBody: TypeAlias = Iterable[bytes]
