"""Test utilities for warble applications::

    from warble.testing import TestClient
"""

from warble.http.cookies import parse_set_cookie
from warble.testing.client import TestClient

__all__ = ["TestClient", "parse_set_cookie"]
