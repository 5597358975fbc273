"""Shared state machine of the document formatters.

The JSON and HTML formatters build different outputs from the same rules:

* ``TestSourceRead`` registers the feature text with the source index.
* ``TestCaseStarted`` opens a context for the test case.  When the source
  index reports a background for the test case's line, a background
  element becomes active first.
* The first step whose source line is not a background step hands off
  from the background element to the scenario element, once per test case.
* ``TestCaseFinished`` closes the context.

Lookups that miss the source index are not errors; the fields they would
have filled are left out.
"""

from __future__ import annotations

import datetime
from typing import Any

from bddreport.errors import OrderingViolation
from bddreport.events.types import (
    DataTableArgument,
    DocStringArgument,
    PickleStepTestStep,
    Result,
    TestCase,
    TestSourceRead,
)
from bddreport.formatters.base import Formatter
from bddreport.sources.model import STEP, SourceIndex, SourceNode, SourceTag
from bddreport.tracking.context import ContextTracker, TestCaseContext


def create_tag_list(names: list[str] | tuple[str, ...]) -> list[dict[str, Any]]:
    return [{"name": name} for name in names]


def create_source_tag_list(tags: list[SourceTag]) -> list[dict[str, Any]]:
    return [
        {
            "name": tag.name,
            "type": "Tag",
            "location": {"line": tag.line, "column": tag.column},
        }
        for tag in tags
    ]


def create_rows(cells: list[list[str]] | tuple[tuple[str, ...], ...]) -> list[dict[str, Any]]:
    return [{"cells": list(row)} for row in cells]


def create_result_map(result: Result, with_duration: bool = True) -> dict[str, Any]:
    """Result entry: lowercase status, error message, duration in nanoseconds."""
    result_map: dict[str, Any] = {"status": result.status.value}
    error_message = result.error_message
    if error_message is not None:
        result_map["error_message"] = error_message
    if with_duration and result.duration:
        result_map["duration"] = result.duration
    return result_map


def format_timestamp(instant: float) -> str:
    """UTC ISO-8601 timestamp with milliseconds, e.g. ``2024-01-02T03:04:05.678Z``."""
    moment = datetime.datetime.fromtimestamp(instant, tz=datetime.timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def create_step_argument(argument: DocStringArgument | DataTableArgument | None,
                         full: bool) -> tuple[str, Any] | None:
    """Report key and value for a step argument.

    *full* adds the doc string's line and content type (JSON report).
    """
    if isinstance(argument, DocStringArgument):
        doc_string: dict[str, Any] = {"value": argument.content}
        if full:
            doc_string["line"] = argument.line
            if argument.content_type is not None:
                doc_string["content_type"] = argument.content_type
        return "doc_string", doc_string
    if isinstance(argument, DataTableArgument):
        return "rows", create_rows(argument.cells)
    return None


class DocumentAssembler(Formatter):
    """Base for formatters that rebuild the feature/scenario/step tree."""

    def __init__(self) -> None:
        super().__init__()
        self.sources = SourceIndex()
        self.contexts = ContextTracker()

    def handle_test_source_read(self, event: TestSourceRead) -> None:
        self.sources.add_source(event.uri, event.source)

    def lookup(self, uri: str, line: int) -> SourceNode | None:
        return self.sources.lookup(uri, line)

    def scenario_definition(self, test_case: TestCase) -> SourceNode | None:
        return SourceIndex.scenario_definition_of(
            self.lookup(test_case.uri, test_case.line)
        )

    def step_keyword(self, test_step: PickleStepTestStep) -> str | None:
        node = self.lookup(test_step.uri, test_step.line)
        if node is not None and node.kind == STEP:
            return node.keyword
        return None

    def is_first_step_after_background(
        self, context: TestCaseContext, test_step: PickleStepTestStep,
    ) -> bool:
        """True for the step that ends the background of this test case.

        Steps without a source node never trigger the handoff.
        """
        node = self.lookup(test_step.uri, test_step.line)
        if node is None:
            return False
        return context.in_background and not SourceIndex.is_background_step(node)

    def current_node(self, context: TestCaseContext) -> dict[str, Any]:
        """The step or hook node the last start event of *context* created.

        Raises:
            OrderingViolation: If no step or hook has started yet.
        """
        if context.current is None:
            raise OrderingViolation(
                f"No step or hook in progress for test case "
                f"'{context.test_case.name}'"
            )
        return context.current

    @staticmethod
    def last_step(context: TestCaseContext) -> dict[str, Any]:
        """The step an after-step hook of *context* belongs to.

        Raises:
            OrderingViolation: If the active element has no step yet.
        """
        if not context.steps:
            raise OrderingViolation(
                f"After-step hook in '{context.test_case.name}' "
                f"before any step ran"
            )
        return context.steps[-1]

    def close_context(self, test_case_id: str) -> TestCaseContext | None:
        context = self.contexts.close(test_case_id)
        if context is not None and context.before_step_hooks:
            self.warnings.append(
                f"{len(context.before_step_hooks)} before-step hook(s) of "
                f"'{context.test_case.name}' had no following step; dropped"
            )
        return context

    def close_open_contexts(self) -> list[TestCaseContext]:
        """Close contexts whose test case never finished, in start order."""
        contexts = self.contexts.close_all()
        for context in contexts:
            self.warnings.append(
                f"test case '{context.test_case.name}' did not finish "
                f"before the end of the run"
            )
            if context.before_step_hooks:
                self.warnings.append(
                    f"{len(context.before_step_hooks)} before-step hook(s) of "
                    f"'{context.test_case.name}' had no following step; dropped"
                )
        return contexts
