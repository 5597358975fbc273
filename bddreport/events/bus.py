"""Synchronous event publisher.

Handlers are registered per concrete event type and called in
registration order on the publishing thread.  ``publish`` returns only
after every handler for the event has run.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from bddreport.events.types import EVENT_TYPES

Handler = Callable[[Any], None]


class EventBus:
    """Delivers events to the handlers registered for their type."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = {}
        self._lock = threading.Lock()

    def register_handler_for(self, event_type: type, handler: Handler) -> None:
        """Register *handler* for events of exactly *event_type*.

        Raises:
            ValueError: If *event_type* is not one of the lifecycle events.
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type!r}")
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def handlers_for(self, event_type: type) -> list[Handler]:
        with self._lock:
            return list(self._handlers.get(event_type, []))

    def publish(self, event: Any) -> None:
        """Deliver *event* to its handlers, in registration order."""
        for handler in self.handlers_for(type(event)):
            handler(event)

    def publish_all(self, events: list[Any]) -> None:
        for event in events:
            self.publish(event)
