"""Security audit events.

Every rejection the security layer makes (failed authentication, CSRF,
input validation, rate limiting) is written to the
``warble.security.audit`` logger as a ``SecurityEvent``. An application
may also register one process-wide sink to forward events elsewhere::

    set_security_event_sink(lambda event: siem.send(event.to_dict()))
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from time import time
from typing import Any, TypeAlias

logger = logging.getLogger("warble.security.audit")


class SecurityEventName(StrEnum):
    AUTH_FAILED = "auth.failed"
    CSRF_REJECTED = "csrf.rejected"
    INPUT_REJECTED = "input.rejected"
    RATE_LIMIT_EXCEEDED = "rate_limit.exceeded"


@dataclass(frozen=True, slots=True)
class SecurityEvent:
    name: str
    timestamp: float = field(default_factory=time)
    method: str | None = None
    path: str | None = None
    remote_addr: str | None = None
    user_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["name"] = str(self.name)
        return data


SecurityEventSink: TypeAlias = Callable[[SecurityEvent], None]

_sink_lock = threading.Lock()
_sink: SecurityEventSink | None = None


def set_security_event_sink(sink: SecurityEventSink | None) -> None:
    """Install the process-wide sink. ``None`` stops delivery."""
    global _sink
    with _sink_lock:
        _sink = sink


def emit_security_event(
    name: str,
    *,
    request: Any | None = None,
    user_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> SecurityEvent:
    """Record *name* for *request*, log it, and deliver it to the sink.

    Exceptions raised by the sink propagate.
    """
    event = SecurityEvent(
        name=name,
        method=getattr(request, "method", None),
        path=getattr(request, "path", None),
        remote_addr=getattr(request, "remote_addr", None),
        user_id=user_id,
        details=details or {},
    )
    logger.info("%s %s %s %s", event.name, event.method or "-", event.path or "-", event.details)

    with _sink_lock:
        sink = _sink
    if sink is not None:
        sink(event)
    return event
