"""Authentication events emitted by the context pipeline.

Events carry a single descriptive string, e.g.
"Token validated for someone@example.com (10.0.0.1).". Listeners are plain
callables; a failing listener is logged and never breaks the pipeline.

Usage:
    events = EventEmitter()
    events.on(AuthEvent.ACCESS_DENIED, lambda message: print(message))
"""

from __future__ import annotations

__all__ = [
    "AuthEvent",
    "EventEmitter",
    "Listener",
]

from collections.abc import Callable
from enum import Enum

from sfdc_auth.telemetry.system_logger import get_system_logger

Listener = Callable[[str], object]


class AuthEvent(str, Enum):
    """Event names emitted by pipeline stages."""

    AUTHORIZATION_HEADER_SET = "authorization_header_set"
    ACCESS_DENIED = "access_denied"
    TOKEN_VALIDATED = "token_validated"
    TOKEN_INTROSPECTED = "token_introspected"
    GRANT_CHECKED = "grant_checked"
    IDENTITY_RETRIEVED = "identity_retrieved"


class EventEmitter:
    """Synchronous publish/subscribe for AuthEvents."""

    def __init__(self) -> None:
        self._listeners: dict[AuthEvent, list[Listener]] = {}

    def on(self, event: AuthEvent, listener: Listener) -> None:
        """Register a listener for an event."""
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: AuthEvent, listener: Listener) -> None:
        """Remove a previously registered listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: AuthEvent) -> int:
        """Number of listeners registered for an event."""
        return len(self._listeners.get(event, []))

    def emit(self, event: AuthEvent, message: str) -> None:
        """Deliver message to every listener of event, in registration order."""
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(message)
            except Exception as e:
                get_system_logger().error(
                    {
                        "event": "event_listener_failed",
                        "message": f"Listener for {event.value} failed: {e}",
                        "auth_event": event.value,
                        "error_type": type(e).__name__,
                    }
                )
