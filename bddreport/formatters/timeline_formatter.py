"""Timeline formatter.

Records one interval per test case, grouped by the worker that ran it.
Each worker gets a group id (1, 2, ...) the first time it starts a test
case.  Interval offsets are not wall-clock times: a worker's clock is the
sum of the step durations it has run so far, so three 6 second test cases
on one worker occupy ``[0, 6000)``, ``[6000, 12000)`` and
``[12000, 18000)`` milliseconds.  Wall-clock start and end are kept in
``startTime``/``endTime``.

A directory output gets ``report.js`` for the timeline page; an output
path ending in ``.json`` gets ``{"groups": [...], "items": [...]}``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

from bddreport.errors import OrderingViolation
from bddreport.events.types import (
    Status,
    TestCaseFinished,
    TestCaseStarted,
    TestRunFinished,
    TestSourceRead,
    TestStepFinished,
    worst_status,
)
from bddreport.formatters.base import Formatter, Handler
from bddreport.formatters.sink import ReportSink
from bddreport.sources.model import SourceIndex, convert_to_id

REPORT_JS = "report.js"
NANOS_PER_MILLI = 1_000_000


def _epoch_millis(instant: float) -> int:
    return int(round(instant * 1000))


@dataclass
class GroupData:
    id: int
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content}


@dataclass
class TestData:
    """Interval of one test case.  ``start``/``end`` are in nanoseconds."""

    __test__ = False

    id: str
    feature: str
    scenario: str
    start: int
    group: int
    thread_id: int
    tags: str
    start_time: int
    end: int = 0
    end_time: int | None = None
    statuses: list[Status] = field(default_factory=list)
    class_name: str = ""

    def finish(self, case_status: Status | None) -> None:
        statuses = list(self.statuses)
        if case_status is not None:
            statuses.append(case_status)
        worst = worst_status(statuses)
        self.class_name = worst.value if worst is not None else Status.UNDEFINED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "feature": self.feature,
            "start": self.start // NANOS_PER_MILLI,
            "end": self.end // NANOS_PER_MILLI,
            "group": self.group,
            "content": "",
            "tags": self.tags,
            "className": self.class_name,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "threadId": self.thread_id,
        }


class TimelineFormatter(Formatter):
    """Collects per-worker test case intervals."""

    name = "timeline"

    def __init__(
        self,
        output: Path | str | TextIO,
        as_json: bool | None = None,
        indent: int | None = 2,
    ) -> None:
        super().__init__()
        if isinstance(output, (str, Path)):
            path = Path(output)
            if as_json is None:
                as_json = path.suffix == ".json"
            self.out = ReportSink(path if as_json else path / REPORT_JS)
        else:
            self.out = ReportSink(output)
        self.as_json = bool(as_json)
        self.indent = indent
        self.sources = SourceIndex()
        self.groups: dict[int, GroupData] = {}
        self.tests: dict[str, TestData] = {}
        self._worker_totals: dict[int, int] = {}
        self._case_workers: dict[str, int] = {}

    def handlers(self) -> dict[type, Handler]:
        return {
            TestSourceRead: self.handle_test_source_read,
            TestCaseStarted: self.handle_test_case_started,
            TestStepFinished: self.handle_test_step_finished,
            TestCaseFinished: self.handle_test_case_finished,
            TestRunFinished: self.finish_report,
        }

    def close(self) -> None:
        self.out.close()

    def handle_test_source_read(self, event: TestSourceRead) -> None:
        self.sources.add_source(event.uri, event.source)

    def handle_test_case_started(self, event: TestCaseStarted) -> None:
        test_case = event.test_case
        if test_case.id in self.tests:
            raise OrderingViolation(
                f"Test case '{test_case.name}' ({test_case.id}) started twice"
            )
        worker = event.worker
        group = self.groups.get(worker.id)
        if group is None:
            group = GroupData(id=len(self.groups) + 1, content=worker.name)
            self.groups[worker.id] = group
        start = self._worker_totals.setdefault(worker.id, 0)

        feature = self.sources.get_feature(test_case.uri)
        feature_name = feature.name if feature is not None else ""
        self.tests[test_case.id] = TestData(
            id=convert_to_id(feature_name) + ";" + convert_to_id(test_case.name),
            feature=feature_name,
            scenario=test_case.name,
            start=start,
            end=start,
            group=group.id,
            thread_id=worker.id,
            tags="".join(tag.lower() + "," for tag in test_case.tags),
            start_time=_epoch_millis(event.instant),
        )
        self._case_workers[test_case.id] = worker.id

    def _worker_of(self, test_case_id: str) -> int:
        worker_id = self._case_workers.get(test_case_id)
        if worker_id is None:
            raise OrderingViolation(
                f"No test case in progress with id '{test_case_id}'"
            )
        return worker_id

    def handle_test_step_finished(self, event: TestStepFinished) -> None:
        worker_id = self._worker_of(event.test_case.id)
        self._worker_totals[worker_id] += event.result.duration
        test_data = self.tests[event.test_case.id]
        test_data.end = self._worker_totals[worker_id]
        test_data.statuses.append(event.result.status)

    def handle_test_case_finished(self, event: TestCaseFinished) -> None:
        worker_id = self._worker_of(event.test_case.id)
        test_data = self.tests[event.test_case.id]
        test_data.end = self._worker_totals[worker_id]
        test_data.end_time = _epoch_millis(event.instant)
        test_data.finish(event.result.status)
        del self._case_workers[event.test_case.id]

    def generate_report(self) -> dict[str, list[dict[str, Any]]]:
        for test_case_id in list(self._case_workers):
            self.tests[test_case_id].finish(None)
            del self._case_workers[test_case_id]
        return {
            "groups": [g.to_dict() for g in self.groups.values()],
            "items": [t.to_dict() for t in self.tests.values()],
        }

    def finish_report(self, event: TestRunFinished | None = None) -> None:
        report = self.generate_report()
        if self.as_json:
            self.out.append(json.dumps(report, indent=self.indent))
        else:
            self.out.append("$(document).ready(function() {\n")
            self._append_push_array("timelineItems", report["items"])
            self._append_push_array("timelineGroups", report["groups"])
            self.out.append("});\n")
        self.out.close()

    def _append_push_array(self, push_to: str, content: list[dict[str, Any]]) -> None:
        self.out.append(f"CucumberHTML.{push_to}.pushArray(")
        self.out.append(json.dumps(content, indent=self.indent))
        self.out.append(");\n")
