"""Tests for the formatter base class."""

from __future__ import annotations

import io
import tempfile
import threading
from pathlib import Path

from bddreport.errors import SinkWriteError
from bddreport.events.bus import EventBus
from bddreport.events.types import (
    PickleStepTestStep,
    Result,
    Status,
    TestCase,
    TestRunFinished,
    TestSourceRead,
    TestStepFinished,
    TestStepStarted,
)
from bddreport.formatters.base import Formatter
from bddreport.formatters.json_formatter import JSONFormatter
from bddreport.formatters.usage_formatter import UsageFormatter


class _CountingFormatter(Formatter):
    name = "counting"

    def __init__(self, fail_on: int | None = None) -> None:
        super().__init__()
        self.count = 0
        self.closed = 0
        self.fail_on = fail_on

    def handlers(self):
        return {TestRunFinished: self.handle_run_finished}

    def close(self) -> None:
        self.closed += 1

    def handle_run_finished(self, event):
        self.count += 1
        if self.count == self.fail_on:
            raise RuntimeError("broken")


class TestFailureIsolation:
    """Tests for handler failures."""

    def test_first_error_recorded_and_later_events_ignored(self):
        """A failing handler ends the formatter and closes it once."""
        formatter = _CountingFormatter(fail_on=2)
        for _ in range(4):
            formatter.handle(TestRunFinished())
        assert formatter.count == 2
        assert formatter.failed
        assert str(formatter.error) == "broken"
        assert formatter.closed == 1

    def test_other_formatters_continue(self):
        """One formatter failing does not affect the others on the bus."""
        bus = EventBus()
        broken = _CountingFormatter(fail_on=1)
        healthy = _CountingFormatter()
        broken.set_event_publisher(bus)
        healthy.set_event_publisher(bus)
        bus.publish(TestRunFinished())
        bus.publish(TestRunFinished())
        assert broken.failed
        assert not healthy.failed
        assert healthy.count == 2

    def test_ordering_violation_in_one_formatter(self):
        """A JSON ordering violation leaves the usage formatter working."""
        bus = EventBus()
        json_formatter = JSONFormatter(io.StringIO())
        usage_out = io.StringIO()
        usage = UsageFormatter(usage_out)
        json_formatter.set_event_publisher(bus)
        usage.set_event_publisher(bus)

        test_case = TestCase(id="tc", uri="a.feature", line=3, name="A")
        step = PickleStepTestStep(id="s", uri="a.feature", line=4, text="x", pattern="x")
        bus.publish(TestStepStarted(test_case=test_case, test_step=step))
        bus.publish(TestStepFinished(
            test_case=test_case, test_step=step, result=Result(Status.PASSED, 10),
        ))
        bus.publish(TestRunFinished())

        assert json_formatter.failed
        assert not usage.failed
        assert '"source": "x"' in usage_out.getvalue()

    def test_sink_error_fails_formatter(self):
        """An unwritable output is recorded as the formatter's error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            blocker = Path(tmpdir) / "file"
            blocker.write_text("")
            formatter = JSONFormatter(blocker / "report.json")
            formatter.handle(TestSourceRead(uri="a.feature", source="Feature: A\n"))
            formatter.handle(TestRunFinished())
            assert isinstance(formatter.error, SinkWriteError)
            assert any("closing output after failure" in w for w in formatter.warnings)

    def test_source_parse_error_fails_formatter(self):
        """Invalid feature text ends the formatter."""
        formatter = JSONFormatter(io.StringIO())
        formatter.handle(TestSourceRead(uri="bad.feature", source="Given no feature\n"))
        assert formatter.failed
        assert "bad.feature" in str(formatter.error)


class TestSerialization:
    """Tests for concurrent delivery."""

    def test_handlers_run_one_at_a_time(self):
        """Events published from several threads are applied serially."""
        formatter = _CountingFormatter()
        bus = EventBus()
        formatter.set_event_publisher(bus)

        def publish():
            for _ in range(100):
                bus.publish(TestRunFinished())

        threads = [threading.Thread(target=publish) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert formatter.count == 400
