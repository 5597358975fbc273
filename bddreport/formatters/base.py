"""Formatter base class.

A formatter subscribes handlers for the event types it cares about.  All
handlers of one formatter run under that formatter's lock, so events
published concurrently from several workers are applied one at a time.

The first exception raised by a handler ends the formatter: the error is
kept in :attr:`Formatter.error`, the outputs are closed, and every later
event is ignored.  Other formatters and the test run itself carry on.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from bddreport.errors import ReportError
from bddreport.events.bus import EventBus

Handler = Callable[[Any], None]


class Formatter:
    """Event-driven report writer."""

    name = "formatter"

    def __init__(self) -> None:
        self.warnings: list[str] = []
        self.error: Exception | None = None
        self._lock = threading.RLock()

    @property
    def failed(self) -> bool:
        return self.error is not None

    def handlers(self) -> dict[type, Handler]:
        """Map of event type to the bound method handling it."""
        raise NotImplementedError

    def close(self) -> None:
        """Release the formatter's outputs."""

    def set_event_publisher(self, publisher: EventBus) -> None:
        for event_type, handler in self.handlers().items():
            publisher.register_handler_for(event_type, self._guarded(handler))

    def handle(self, event: Any) -> None:
        """Dispatch *event* to its handler, as the event bus would."""
        handler = self.handlers().get(type(event))
        if handler is not None:
            self._guarded(handler)(event)

    def _guarded(self, handler: Handler) -> Handler:
        def guarded(event: Any) -> None:
            with self._lock:
                if self.error is not None:
                    return
                try:
                    handler(event)
                except Exception as e:
                    self._abort(e)

        return guarded

    def _abort(self, error: Exception) -> None:
        self.error = error
        try:
            self.close()
        except ReportError as e:
            self.warnings.append(f"closing output after failure: {e}")
