"""Test execution lifecycle events.

The event set is closed: a test run publishes ``TestSourceRead`` for every
feature file, then for each test case ``TestCaseStarted``, the started /
finished pairs of its hooks and steps (with ``WriteEvent`` and
``EmbedEvent`` in between), ``TestCaseFinished``, and finally a single
``TestRunFinished``.

Events for different test cases may interleave when the runner uses
several workers.  Events of one test case always arrive in order.
"""

from __future__ import annotations

import enum
import threading
import time
import traceback
from dataclasses import dataclass, field
from typing import Union


class Status(enum.Enum):
    """Result status, declared in increasing order of severity."""

    PASSED = "passed"
    SKIPPED = "skipped"
    PENDING = "pending"
    UNDEFINED = "undefined"
    AMBIGUOUS = "ambiguous"
    FAILED = "failed"
    UNUSED = "unused"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {status: rank for rank, status in enumerate(Status)}


def worst_status(statuses: list[Status]) -> Status | None:
    """Return the most severe status, or None for an empty list."""
    if not statuses:
        return None
    return max(statuses, key=lambda s: s.severity)


class HookType(enum.Enum):
    BEFORE = "before"
    AFTER = "after"
    BEFORE_STEP = "before_step"
    AFTER_STEP = "after_step"


@dataclass(frozen=True)
class Result:
    """Outcome of a step, hook or test case.

    ``duration`` is in nanoseconds.  ``error`` is either the exception that
    was raised or, for replayed runs, its formatted message.
    """

    status: Status
    duration: int = 0
    error: BaseException | str | None = None

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        if isinstance(self.error, BaseException):
            return "".join(traceback.format_exception(
                type(self.error), self.error, self.error.__traceback__,
            ))
        return str(self.error)


@dataclass(frozen=True)
class TestCase:
    """A pickle: one concrete scenario (or outline example row) to run."""

    __test__ = False

    id: str
    uri: str
    line: int
    name: str
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class DocStringArgument:
    content: str
    line: int = 0
    content_type: str | None = None


@dataclass(frozen=True)
class DataTableArgument:
    cells: tuple[tuple[str, ...], ...]
    line: int = 0


StepArgument = Union[DocStringArgument, DataTableArgument]


@dataclass(frozen=True)
class Argument:
    """A value captured by a step definition pattern, with its offset."""

    value: str | None
    start: int


@dataclass(frozen=True)
class PickleStepTestStep:
    """A step written in a feature file, bound to a step definition.

    ``pattern`` is the source of the matched step definition and is
    ``None`` when no definition matched (undefined step).
    """

    id: str
    uri: str
    line: int
    text: str
    pattern: str | None = None
    code_location: str | None = None
    argument: StepArgument | None = None
    definition_arguments: tuple[Argument, ...] = ()


@dataclass(frozen=True)
class HookTestStep:
    id: str
    hook_type: HookType
    code_location: str | None = None


TestStep = Union[PickleStepTestStep, HookTestStep]


@dataclass(frozen=True)
class Worker:
    """The execution unit (thread or process) a test case runs on."""

    id: int
    name: str

    @classmethod
    def current(cls) -> Worker:
        thread = threading.current_thread()
        return cls(id=thread.ident or 0, name=thread.name)


@dataclass(frozen=True)
class TestSourceRead:
    __test__ = False

    uri: str
    source: str
    instant: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TestCaseStarted:
    __test__ = False

    test_case: TestCase
    worker: Worker = field(default_factory=Worker.current)
    instant: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TestStepStarted:
    __test__ = False

    test_case: TestCase
    test_step: TestStep
    instant: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TestStepFinished:
    __test__ = False

    test_case: TestCase
    test_step: TestStep
    result: Result
    instant: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TestCaseFinished:
    __test__ = False

    test_case: TestCase
    result: Result
    instant: float = field(default_factory=time.time)


@dataclass(frozen=True)
class WriteEvent:
    test_case: TestCase
    text: str
    instant: float = field(default_factory=time.time)


@dataclass(frozen=True)
class EmbedEvent:
    test_case: TestCase
    data: bytes
    mime_type: str
    name: str | None = None
    instant: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TestRunFinished:
    __test__ = False

    instant: float = field(default_factory=time.time)


Event = Union[
    TestSourceRead,
    TestCaseStarted,
    TestStepStarted,
    TestStepFinished,
    TestCaseFinished,
    WriteEvent,
    EmbedEvent,
    TestRunFinished,
]

EVENT_TYPES: tuple[type, ...] = (
    TestSourceRead,
    TestCaseStarted,
    TestStepStarted,
    TestStepFinished,
    TestCaseFinished,
    WriteEvent,
    EmbedEvent,
    TestRunFinished,
)
