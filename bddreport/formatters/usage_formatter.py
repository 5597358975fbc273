"""Step usage formatter.

Measures how long step definitions take.  Every passed step that matched a
step definition adds its duration under the definition's pattern, then
under the exact step text::

    [{"source": "^I have (\\d+) cukes$",
      "steps": [{"name": "I have 42 cukes",
                 "aggregatedDurations": {"average": 0.5, "median": 0.5},
                 "durations": [{"duration": 0.5,
                                "location": "features/a.feature:3"}]}]}]

Patterns and step texts keep first-seen order.  Durations are seconds.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

import yaml

from bddreport.events.types import (
    PickleStepTestStep,
    Result,
    Status,
    TestRunFinished,
    TestStepFinished,
)
from bddreport.formatters.base import Formatter, Handler
from bddreport.formatters.sink import ReportSink

NANOS_PER_SECOND = 1_000_000_000

OUTPUT_FORMATS = ("json", "yaml")


def nanos_to_seconds(duration: int) -> float:
    return duration / NANOS_PER_SECOND


def calculate_average(durations: list[int]) -> int:
    """Mean of nanosecond durations, 0 for an empty list."""
    if not durations:
        return 0
    return sum(durations) // len(durations)


def calculate_median(durations: list[int]) -> int:
    """Median of nanosecond durations, 0 for an empty list.

    For an even count this is the mean of the two middle values.
    """
    if not durations:
        return 0
    ordered = sorted(durations)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) // 2


@dataclass
class StepDuration:
    duration: int
    location: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration": nanos_to_seconds(self.duration),
            "location": self.location,
        }


@dataclass
class StepContainer:
    """Durations of one step text under one step definition."""

    name: str
    durations: list[StepDuration] = field(default_factory=list)

    def aggregated_durations(self) -> dict[str, float]:
        raw = [d.duration for d in self.durations]
        return {
            "average": nanos_to_seconds(calculate_average(raw)),
            "median": nanos_to_seconds(calculate_median(raw)),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "aggregatedDurations": self.aggregated_durations(),
            "durations": [d.to_dict() for d in self.durations],
        }


class UsageFormatter(Formatter):
    """Collects step durations per step definition."""

    name = "usage"

    def __init__(
        self,
        output: Path | str | TextIO,
        output_format: str = "json",
        indent: int | None = 2,
    ) -> None:
        super().__init__()
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unknown usage output format: {output_format}")
        self.out = ReportSink(output)
        self.output_format = output_format
        self.indent = indent
        self.usage_map: dict[str, list[StepContainer]] = {}

    def handlers(self) -> dict[type, Handler]:
        return {
            TestStepFinished: self.handle_test_step_finished,
            TestRunFinished: self.finish_report,
        }

    def close(self) -> None:
        self.out.close()

    def handle_test_step_finished(self, event: TestStepFinished) -> None:
        test_step = event.test_step
        if (
            isinstance(test_step, PickleStepTestStep)
            and test_step.pattern is not None
            and event.result.status is Status.PASSED
        ):
            self.add_usage_entry(event.result, test_step)

    def add_usage_entry(self, result: Result, test_step: PickleStepTestStep) -> None:
        assert test_step.pattern is not None
        containers = self.usage_map.setdefault(test_step.pattern, [])
        container = self._find_or_create_container(test_step.text, containers)
        container.durations.append(StepDuration(
            duration=result.duration,
            location=f"{test_step.uri}:{test_step.line}",
        ))

    @staticmethod
    def _find_or_create_container(
        name: str, containers: list[StepContainer],
    ) -> StepContainer:
        for container in containers:
            if container.name == name:
                return container
        container = StepContainer(name=name)
        containers.append(container)
        return container

    def generate_report(self) -> list[dict[str, Any]]:
        """Usage report; aggregates reflect everything collected so far."""
        return [
            {
                "source": pattern,
                "steps": [c.to_dict() for c in containers],
            }
            for pattern, containers in self.usage_map.items()
        ]

    def finish_report(self, event: TestRunFinished | None = None) -> None:
        report = self.generate_report()
        if self.output_format == "yaml":
            text = yaml.dump(
                report,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )
        else:
            text = json.dumps(report, indent=self.indent)
        self.out.append(text)
        self.out.close()
