"""Tests for recorded event logs."""

from __future__ import annotations

import json

import pytest

from bddreport.errors import EncodingError
from bddreport.events.log import SENTINEL, encode_event, event_to_dict, read_event_log
from bddreport.events.types import (
    Argument,
    DataTableArgument,
    DocStringArgument,
    EmbedEvent,
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
    TestStepFinished,
    TestStepStarted,
    Worker,
    WriteEvent,
)

TEST_CASE = TestCase(
    id="tc-1", uri="features/a.feature", line=3, name="Eat", tags=("@fast",),
)
WORKER = Worker(id=7, name="worker-7")


def _line(entry: dict) -> str:
    return SENTINEL + json.dumps(entry)


def _started_line() -> str:
    return encode_event(TestCaseStarted(test_case=TEST_CASE, worker=WORKER, instant=1.0))


class TestEncode:
    """Tests for encoding events."""

    def test_sentinel_prefix(self):
        """Encoded events are single sentinel lines."""
        line = encode_event(TestRunFinished(instant=5.0))
        assert line.startswith("[EVT] ")
        assert "\n" not in line
        assert json.loads(line[len(SENTINEL):]) == {
            "type": "test_run_finished", "instant": 5.0,
        }

    def test_step_finished_refers_to_ids(self):
        """Step results carry test case and step ids, not the full objects."""
        step = HookTestStep(id="h1", hook_type=HookType.BEFORE)
        entry = event_to_dict(TestStepFinished(
            test_case=TEST_CASE,
            test_step=step,
            result=Result(Status.FAILED, 10, "boom"),
            instant=2.0,
        ))
        assert entry["test_case_id"] == "tc-1"
        assert entry["test_step_id"] == "h1"
        assert entry["result"] == {"status": "failed", "duration": 10, "error": "boom"}

    def test_embed_data_base64(self):
        """Embedding payloads are base64 encoded."""
        entry = event_to_dict(EmbedEvent(
            test_case=TEST_CASE, data=b"abc", mime_type="text/plain", instant=1.0,
        ))
        assert entry["data"] == "YWJj"
        assert "name" not in entry

    def test_embed_non_binary_raises_encoding_error(self):
        """A payload that is not bytes cannot be encoded."""
        with pytest.raises(EncodingError):
            event_to_dict(EmbedEvent(
                test_case=TEST_CASE, data="not-bytes", mime_type="image/png",
            ))


class TestReadEventLog:
    """Tests for decoding a recorded log."""

    def test_full_run_replays(self):
        """A recorded run decodes to equal events."""
        step = PickleStepTestStep(
            id="s1",
            uri="features/a.feature",
            line=4,
            text="I have 3 cukes",
            pattern="I have (\\d+) cukes",
            code_location="steps.py:10",
            argument=DataTableArgument(cells=(("a", "b"), ("1", "2")), line=5),
            definition_arguments=(Argument(value="3", start=7),),
        )
        events = [
            TestSourceRead(uri="features/a.feature", source="Feature: A\n", instant=0.5),
            TestCaseStarted(test_case=TEST_CASE, worker=WORKER, instant=1.0),
            TestStepStarted(test_case=TEST_CASE, test_step=step, instant=1.1),
            WriteEvent(test_case=TEST_CASE, text="hello", instant=1.2),
            EmbedEvent(
                test_case=TEST_CASE, data=b"\x89PNG", mime_type="image/png",
                name="shot", instant=1.3,
            ),
            TestStepFinished(
                test_case=TEST_CASE, test_step=step,
                result=Result(Status.PASSED, 1000), instant=1.4,
            ),
            TestCaseFinished(
                test_case=TEST_CASE, result=Result(Status.PASSED, 1000), instant=1.5,
            ),
            TestRunFinished(instant=2.0),
        ]
        log = read_event_log([encode_event(e) for e in events])
        assert log.warnings == []
        assert log.events == events
        assert log.has_run_finished

    def test_doc_string_argument_preserved(self):
        """Doc string arguments keep content, line and content type."""
        step = PickleStepTestStep(
            id="s1", uri="a.feature", line=4, text="a doc",
            argument=DocStringArgument(content="text", line=5, content_type="json"),
        )
        log = read_event_log([
            _started_line(),
            encode_event(TestStepStarted(test_case=TEST_CASE, test_step=step, instant=1.0)),
        ])
        assert log.events[1].test_step.argument == step.argument

    def test_plain_lines_ignored(self):
        """Lines without the sentinel are runner output and skipped silently."""
        log = read_event_log("running tests...\n" + _started_line() + "\ndone\n")
        assert len(log.events) == 1
        assert log.warnings == []
        assert not log.has_run_finished

    def test_malformed_json_warns(self):
        """Malformed event lines are skipped with a warning."""
        log = read_event_log(["[EVT] {not json"])
        assert log.events == []
        assert log.warnings == ["line 1: malformed event, skipping"]

    def test_missing_type_warns(self):
        """An event without a type is skipped."""
        log = read_event_log([_line({"uri": "a"})])
        assert log.events == []
        assert "not an object with a type" in log.warnings[0]

    def test_unknown_test_case_warns(self):
        """Events for a test case that never started are skipped."""
        log = read_event_log([_line({
            "type": "write", "test_case_id": "nope", "text": "x",
        })])
        assert log.events == []
        assert "unknown test case 'nope'" in log.warnings[0]

    def test_result_for_unknown_step_warns(self):
        """A step result without a started step is skipped."""
        log = read_event_log([
            _started_line(),
            _line({
                "type": "test_step_finished", "test_case_id": "tc-1",
                "test_step_id": "missing", "result": {"status": "passed"},
            }),
        ])
        assert len(log.events) == 1
        assert "unknown step 'missing'" in log.warnings[0]

    def test_invalid_base64_warns(self):
        """Embeddings that are not base64 are skipped."""
        log = read_event_log([
            _started_line(),
            _line({
                "type": "embed", "test_case_id": "tc-1",
                "data": "***", "mime_type": "text/plain",
            }),
        ])
        assert len(log.events) == 1
        assert "not valid base64" in log.warnings[0]

    def test_unknown_event_type_warns(self):
        """Unknown event types are skipped."""
        log = read_event_log([_line({"type": "snapshot"})])
        assert log.warnings == ["line 1: unknown event type 'snapshot', skipping"]

    def test_unknown_event_type_with_test_case_warns(self):
        """An unknown type is reported as such even for a started test case."""
        log = read_event_log([
            _started_line(),
            _line({"type": "snapshot", "test_case_id": "tc-1"}),
        ])
        assert len(log.events) == 1
        assert log.warnings == ["line 2: unknown event type 'snapshot', skipping"]

    def test_missing_test_case_id_warns(self):
        """A per-case event without a test case id is skipped."""
        log = read_event_log([_line({"type": "write", "text": "x"})])
        assert log.events == []
        assert log.warnings == ["line 1: write without a test case id, skipping"]

    def test_invalid_instant_warns(self):
        """A non-numeric instant skips the event instead of failing the read."""
        log = read_event_log([
            _line({"type": "test_run_finished", "instant": "soon"}),
            _line({"type": "test_run_finished", "instant": None}),
        ])
        assert log.events == []
        assert len(log.warnings) == 2
        assert all("invalid test_run_finished event" in w for w in log.warnings)
        assert not log.has_run_finished

    def test_invalid_status_warns(self):
        """A result with an unknown status is skipped, not fatal."""
        log = read_event_log([
            _started_line(),
            _line({
                "type": "test_case_finished", "test_case_id": "tc-1",
                "result": {"status": "exploded"},
            }),
        ])
        assert len(log.events) == 1
        assert "invalid test_case_finished event" in log.warnings[0]
