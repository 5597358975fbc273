"""Exceptions raised while assembling reports.

Source-correlation misses are not errors: lookups return ``None`` and the
affected fields are left out of the report.
"""

from __future__ import annotations


class ReportError(Exception):
    """Base class for report generation failures."""


class OrderingViolation(ReportError):
    """An event arrived that the current state cannot accept.

    Raised for step or hook events without an open test case context, for
    results without a started step, and for after-step hooks when no step
    has been added yet.  Signals an event-ordering bug upstream.
    """


class SinkWriteError(ReportError):
    """Writing to or closing a report output failed."""


class SourceParseError(ReportError):
    """A feature file could not be parsed."""

    def __init__(self, uri: str, message: str) -> None:
        super().__init__(f"{uri}: {message}")
        self.uri = uri


class EncodingError(ReportError):
    """An embedding payload could not be encoded for the report."""
