"""Per-test-case assembly state.

Formatters build their documents one test case at a time, but with
parallel workers the events of several test cases interleave.  Every
in-flight test case therefore gets its own :class:`TestCaseContext`,
looked up by test case id, holding the nodes its next events attach to.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from bddreport.errors import OrderingViolation
from bddreport.events.types import TestCase


@dataclass
class TestCaseContext:
    """Cursor state for one in-flight test case.

    ``element`` is the element steps are currently added to: the
    background element until the first non-background step, then the
    test case element.  ``steps`` is that element's step list.
    ``current`` is the step or hook node the last start event created;
    results, output and embeddings attach to it.
    """

    __test__ = False

    test_case: TestCase
    test_case_element: dict[str, Any] | None = None
    element: dict[str, Any] | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)
    current: dict[str, Any] | None = None
    before_step_hooks: list[dict[str, Any]] = field(default_factory=list)
    # Buffered (function, args) calls for stream formatters
    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    @property
    def test_case_id(self) -> str:
        return self.test_case.id

    @property
    def in_background(self) -> bool:
        return self.element is not None and self.element is not self.test_case_element

    def enter_test_case_element(self) -> None:
        """Make the test case element the target of subsequent steps."""
        self.element = self.test_case_element
        self.steps = self.element["steps"] if self.element is not None else []

    def take_before_step_hooks(self) -> list[dict[str, Any]]:
        hooks, self.before_step_hooks = self.before_step_hooks, []
        return hooks


class ContextTracker:
    """Open test case contexts, keyed by test case id."""

    def __init__(self) -> None:
        self._contexts: dict[str, TestCaseContext] = {}
        self._lock = threading.Lock()

    def open(self, test_case: TestCase) -> TestCaseContext:
        """Create and register the context for *test_case*.

        Raises:
            OrderingViolation: If the test case is already open.
        """
        with self._lock:
            if test_case.id in self._contexts:
                raise OrderingViolation(
                    f"Test case '{test_case.name}' ({test_case.id}) started twice"
                )
            context = TestCaseContext(test_case=test_case)
            self._contexts[test_case.id] = context
            return context

    def get(self, test_case_id: str) -> TestCaseContext:
        """Return the open context for *test_case_id*.

        Raises:
            OrderingViolation: If no context is open for it.
        """
        with self._lock:
            context = self._contexts.get(test_case_id)
        if context is None:
            raise OrderingViolation(
                f"No test case in progress with id '{test_case_id}'"
            )
        return context

    def close(self, test_case_id: str) -> TestCaseContext | None:
        with self._lock:
            return self._contexts.pop(test_case_id, None)

    def close_all(self) -> list[TestCaseContext]:
        """Close every open context and return them in opening order."""
        with self._lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()
        return contexts
