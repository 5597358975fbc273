"""Event log formatter.

Records the event stream itself as ``[EVT]`` sentinel lines, so that a run
can be replayed later through any other formatter with ``bddreport
--events``.
"""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

from bddreport.errors import EncodingError
from bddreport.events.log import encode_event
from bddreport.events.types import EVENT_TYPES, Event, TestRunFinished
from bddreport.formatters.base import Formatter, Handler
from bddreport.formatters.sink import ReportSink


class EventLogFormatter(Formatter):
    """Writes one sentinel line per event."""

    name = "events"

    def __init__(self, output: Path | str | TextIO) -> None:
        super().__init__()
        self.out = ReportSink(output)

    def handlers(self) -> dict[type, Handler]:
        return {event_type: self.handle_event for event_type in EVENT_TYPES}

    def close(self) -> None:
        self.out.close()

    def handle_event(self, event: Event) -> None:
        try:
            line = encode_event(event)
        except EncodingError as e:
            self.warnings.append(
                f"skipped {event.mime_type} embedding in '{event.test_case.name}': {e}"
            )
            return
        self.out.append(line + "\n")
        if isinstance(event, TestRunFinished):
            self.out.close()
