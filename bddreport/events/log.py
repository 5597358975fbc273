"""Recorded event logs.

A recorded run is a text stream in which every event is one line with the
``[EVT]`` sentinel prefix followed by a JSON object carrying a ``type``
field.  Any other line (plain runner output) is ignored, so a log can be
captured straight from a runner's stdout.

Test cases are written in full once, on ``test_case_started``; later
events refer to them (and to started steps) by id.

Malformed lines, unknown ids and undecodable embeddings are skipped and
reported in ``EventLog.warnings``.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any

from bddreport.errors import EncodingError
from bddreport.events.types import (
    Argument,
    DataTableArgument,
    DocStringArgument,
    EmbedEvent,
    Event,
    HookTestStep,
    HookType,
    PickleStepTestStep,
    Result,
    Status,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestRunFinished,
    TestSourceRead,
    TestStep,
    TestStepFinished,
    TestStepStarted,
    Worker,
    WriteEvent,
)

# Sentinel prefix for event lines
SENTINEL = "[EVT] "

# Event types that refer to a started test case by id
CASE_EVENT_TYPES = frozenset({
    "test_step_started",
    "test_step_finished",
    "test_case_finished",
    "write",
    "embed",
})

EVENT_TYPE_NAMES = CASE_EVENT_TYPES | {
    "source_read",
    "test_case_started",
    "test_run_finished",
}


@dataclass
class EventLog:
    """Events decoded from a recorded log, in log order."""

    events: list[Event] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_run_finished(self) -> bool:
        return any(isinstance(e, TestRunFinished) for e in self.events)


def _test_case_to_dict(test_case: TestCase) -> dict[str, Any]:
    return {
        "id": test_case.id,
        "uri": test_case.uri,
        "line": test_case.line,
        "name": test_case.name,
        "tags": list(test_case.tags),
    }


def _result_to_dict(result: Result) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "status": result.status.value,
        "duration": result.duration,
    }
    if result.error is not None:
        entry["error"] = result.error_message
    return entry


def _test_step_to_dict(test_step: TestStep) -> dict[str, Any]:
    if isinstance(test_step, HookTestStep):
        return {
            "id": test_step.id,
            "kind": "hook",
            "hook_type": test_step.hook_type.value,
            "code_location": test_step.code_location,
        }

    entry: dict[str, Any] = {
        "id": test_step.id,
        "kind": "pickle",
        "uri": test_step.uri,
        "line": test_step.line,
        "text": test_step.text,
        "pattern": test_step.pattern,
        "code_location": test_step.code_location,
    }
    argument = test_step.argument
    if isinstance(argument, DocStringArgument):
        entry["argument"] = {"doc_string": {
            "content": argument.content,
            "line": argument.line,
            "content_type": argument.content_type,
        }}
    elif isinstance(argument, DataTableArgument):
        entry["argument"] = {"data_table": {
            "cells": [list(row) for row in argument.cells],
            "line": argument.line,
        }}
    if test_step.definition_arguments:
        entry["definition_arguments"] = [
            {"value": a.value, "start": a.start}
            for a in test_step.definition_arguments
        ]
    return entry


def encode_embedding(data: bytes) -> str:
    """Base64 text of an embedding payload.

    Raises:
        EncodingError: If *data* is not a bytes-like payload.
    """
    try:
        return base64.b64encode(data).decode("ascii")
    except TypeError as e:
        raise EncodingError(f"embedding payload is not binary data: {e}") from e


def event_to_dict(event: Event) -> dict[str, Any]:
    """Convert an event to its JSON-serializable log form.

    Raises:
        EncodingError: If an embed event carries a non-binary payload.
    """
    if isinstance(event, TestSourceRead):
        entry: dict[str, Any] = {
            "type": "source_read", "uri": event.uri, "source": event.source,
        }
    elif isinstance(event, TestCaseStarted):
        entry = {
            "type": "test_case_started",
            "test_case": _test_case_to_dict(event.test_case),
            "worker": {"id": event.worker.id, "name": event.worker.name},
        }
    elif isinstance(event, TestStepStarted):
        entry = {
            "type": "test_step_started",
            "test_case_id": event.test_case.id,
            "test_step": _test_step_to_dict(event.test_step),
        }
    elif isinstance(event, TestStepFinished):
        entry = {
            "type": "test_step_finished",
            "test_case_id": event.test_case.id,
            "test_step_id": event.test_step.id,
            "result": _result_to_dict(event.result),
        }
    elif isinstance(event, TestCaseFinished):
        entry = {
            "type": "test_case_finished",
            "test_case_id": event.test_case.id,
            "result": _result_to_dict(event.result),
        }
    elif isinstance(event, WriteEvent):
        entry = {
            "type": "write",
            "test_case_id": event.test_case.id,
            "text": event.text,
        }
    elif isinstance(event, EmbedEvent):
        entry = {
            "type": "embed",
            "test_case_id": event.test_case.id,
            "data": encode_embedding(event.data),
            "mime_type": event.mime_type,
        }
        if event.name is not None:
            entry["name"] = event.name
    elif isinstance(event, TestRunFinished):
        entry = {"type": "test_run_finished"}
    else:
        raise TypeError(f"Not a lifecycle event: {event!r}")

    entry["instant"] = event.instant
    return entry


def encode_event(event: Event) -> str:
    """Encode an event as a single sentinel log line (no newline)."""
    return SENTINEL + json.dumps(event_to_dict(event))


def _parse_result(data: dict[str, Any]) -> Result:
    return Result(
        status=Status(data.get("status", "undefined")),
        duration=int(data.get("duration", 0)),
        error=data.get("error"),
    )


def _parse_test_case(data: dict[str, Any]) -> TestCase:
    return TestCase(
        id=str(data["id"]),
        uri=data["uri"],
        line=int(data["line"]),
        name=data.get("name", ""),
        tags=tuple(data.get("tags", [])),
    )


def _parse_test_step(data: dict[str, Any]) -> TestStep:
    if data.get("kind") == "hook":
        return HookTestStep(
            id=str(data["id"]),
            hook_type=HookType(data["hook_type"]),
            code_location=data.get("code_location"),
        )

    argument: DocStringArgument | DataTableArgument | None = None
    raw_argument = data.get("argument") or {}
    if "doc_string" in raw_argument:
        doc = raw_argument["doc_string"]
        argument = DocStringArgument(
            content=doc.get("content", ""),
            line=int(doc.get("line", 0)),
            content_type=doc.get("content_type"),
        )
    elif "data_table" in raw_argument:
        table = raw_argument["data_table"]
        argument = DataTableArgument(
            cells=tuple(tuple(row) for row in table.get("cells", [])),
            line=int(table.get("line", 0)),
        )

    return PickleStepTestStep(
        id=str(data["id"]),
        uri=data["uri"],
        line=int(data["line"]),
        text=data.get("text", ""),
        pattern=data.get("pattern"),
        code_location=data.get("code_location"),
        argument=argument,
        definition_arguments=tuple(
            Argument(value=a.get("value"), start=int(a.get("start", 0)))
            for a in data.get("definition_arguments", [])
        ),
    )


def read_event_log(lines: list[str] | str) -> EventLog:
    """Decode a recorded event log.

    Args:
        lines: List of log lines, or a single string (split on newlines).

    Returns:
        An :class:`EventLog` with the decoded events and any warnings.
    """
    if isinstance(lines, str):
        lines = lines.splitlines()

    log = EventLog()
    test_cases: dict[str, TestCase] = {}
    test_steps: dict[str, TestStep] = {}

    for lineno, line in enumerate(lines, start=1):
        if not line.startswith(SENTINEL):
            continue

        try:
            entry = json.loads(line[len(SENTINEL):])
        except json.JSONDecodeError:
            log.warnings.append(f"line {lineno}: malformed event, skipping")
            continue

        if not isinstance(entry, dict) or "type" not in entry:
            log.warnings.append(
                f"line {lineno}: event is not an object with a type, skipping"
            )
            continue

        event_type = entry["type"]
        if not isinstance(event_type, str) or event_type not in EVENT_TYPE_NAMES:
            log.warnings.append(
                f"line {lineno}: unknown event type '{event_type}', skipping"
            )
            continue

        try:
            instant = float(entry.get("instant", 0.0))

            if event_type == "source_read":
                log.events.append(TestSourceRead(
                    uri=entry["uri"], source=entry["source"], instant=instant,
                ))
                continue

            if event_type == "test_run_finished":
                log.events.append(TestRunFinished(instant=instant))
                continue

            if event_type == "test_case_started":
                test_case = _parse_test_case(entry["test_case"])
                test_cases[test_case.id] = test_case
                worker = entry.get("worker") or {}
                log.events.append(TestCaseStarted(
                    test_case=test_case,
                    worker=Worker(
                        id=int(worker.get("id", 0)),
                        name=worker.get("name", ""),
                    ),
                    instant=instant,
                ))
                continue

            test_case_id = entry.get("test_case_id")
            if test_case_id is None:
                log.warnings.append(
                    f"line {lineno}: {event_type} without a test case id, skipping"
                )
                continue
            test_case = test_cases.get(str(test_case_id))
            if test_case is None:
                log.warnings.append(
                    f"line {lineno}: {event_type} for unknown test case "
                    f"'{test_case_id}', skipping"
                )
                continue

            if event_type == "test_step_started":
                test_step = _parse_test_step(entry["test_step"])
                test_steps[test_step.id] = test_step
                log.events.append(TestStepStarted(
                    test_case=test_case, test_step=test_step, instant=instant,
                ))

            elif event_type == "test_step_finished":
                step_id = entry.get("test_step_id")
                test_step = test_steps.get(str(step_id)) if step_id is not None else None
                if test_step is None:
                    log.warnings.append(
                        f"line {lineno}: result for unknown step "
                        f"'{step_id}', skipping"
                    )
                    continue
                log.events.append(TestStepFinished(
                    test_case=test_case,
                    test_step=test_step,
                    result=_parse_result(entry.get("result", {})),
                    instant=instant,
                ))

            elif event_type == "test_case_finished":
                log.events.append(TestCaseFinished(
                    test_case=test_case,
                    result=_parse_result(entry.get("result", {})),
                    instant=instant,
                ))

            elif event_type == "write":
                log.events.append(WriteEvent(
                    test_case=test_case,
                    text=entry.get("text", ""),
                    instant=instant,
                ))

            elif event_type == "embed":
                try:
                    data = base64.b64decode(entry.get("data", ""), validate=True)
                except (binascii.Error, ValueError):
                    log.warnings.append(
                        f"line {lineno}: embedding is not valid base64, skipping"
                    )
                    continue
                log.events.append(EmbedEvent(
                    test_case=test_case,
                    data=data,
                    mime_type=entry.get("mime_type", "application/octet-stream"),
                    name=entry.get("name"),
                    instant=instant,
                ))


        except (KeyError, TypeError, ValueError) as e:
            log.warnings.append(
                f"line {lineno}: invalid {event_type} event ({e}), skipping"
            )

    return log
