"""Tests for the test case context tracker."""

from __future__ import annotations

import pytest

from bddreport.errors import OrderingViolation
from bddreport.events.types import TestCase
from bddreport.tracking.context import ContextTracker, TestCaseContext


def _test_case(test_case_id: str = "tc-1") -> TestCase:
    return TestCase(id=test_case_id, uri="a.feature", line=3, name=f"Case {test_case_id}")


class TestContextTracker:
    """Tests for opening, finding and closing contexts."""

    def test_open_and_get(self):
        """An opened context is found by test case id."""
        tracker = ContextTracker()
        context = tracker.open(_test_case())
        assert tracker.get("tc-1") is context

    def test_get_missing_raises(self):
        """Looking up a test case that never started is an ordering violation."""
        with pytest.raises(OrderingViolation, match="tc-9"):
            ContextTracker().get("tc-9")

    def test_open_twice_raises(self):
        """A test case cannot start twice."""
        tracker = ContextTracker()
        tracker.open(_test_case())
        with pytest.raises(OrderingViolation, match="started twice"):
            tracker.open(_test_case())

    def test_close(self):
        """Closing returns the context and forgets it."""
        tracker = ContextTracker()
        context = tracker.open(_test_case())
        assert tracker.close("tc-1") is context
        assert tracker.close("tc-1") is None
        with pytest.raises(OrderingViolation):
            tracker.get("tc-1")

    def test_interleaved_contexts_independent(self):
        """Contexts of interleaved test cases do not share state."""
        tracker = ContextTracker()
        first = tracker.open(_test_case("a"))
        second = tracker.open(_test_case("b"))
        first.steps.append({"name": "one"})
        assert second.steps == []
        assert tracker.get("b") is second

    def test_close_all_in_opening_order(self):
        """close_all returns the leftovers in the order they were opened."""
        tracker = ContextTracker()
        for test_case_id in ("b", "a", "c"):
            tracker.open(_test_case(test_case_id))
        tracker.close("a")
        leftovers = tracker.close_all()
        assert [c.test_case_id for c in leftovers] == ["b", "c"]
        assert tracker.close_all() == []


class TestTestCaseContext:
    """Tests for the per-test-case cursor."""

    def test_background_handoff(self):
        """Entering the test case element switches the step list."""
        scenario = {"steps": []}
        background = {"steps": []}
        context = TestCaseContext(
            test_case=_test_case(),
            test_case_element=scenario,
            element=background,
            steps=background["steps"],
        )
        assert context.in_background
        context.enter_test_case_element()
        assert not context.in_background
        assert context.element is scenario
        assert context.steps is scenario["steps"]

    def test_take_before_step_hooks(self):
        """Buffered before-step hooks are handed over once."""
        context = TestCaseContext(test_case=_test_case())
        context.before_step_hooks.append({"result": {}})
        assert context.take_before_step_hooks() == [{"result": {}}]
        assert context.take_before_step_hooks() == []
