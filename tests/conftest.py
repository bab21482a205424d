"""Shared pytest fixtures for the warble test suite."""

from collections.abc import Iterator

import pytest

from warble.security.audit import SecurityEvent, set_security_event_sink


@pytest.fixture
def security_events() -> Iterator[list[SecurityEvent]]:
    """Collect security audit events emitted during the test."""
    events: list[SecurityEvent] = []
    set_security_event_sink(events.append)
    try:
        yield events
    finally:
        set_security_event_sink(None)
