"""Test execution lifecycle events, the event bus, and recorded event logs."""

from bddreport.events.bus import EventBus
from bddreport.events.log import EventLog, encode_event, read_event_log
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

__all__ = [
    "Argument",
    "DataTableArgument",
    "DocStringArgument",
    "EmbedEvent",
    "EventBus",
    "EventLog",
    "HookTestStep",
    "HookType",
    "PickleStepTestStep",
    "Result",
    "Status",
    "TestCase",
    "TestCaseFinished",
    "TestCaseStarted",
    "TestRunFinished",
    "TestSourceRead",
    "TestStepFinished",
    "TestStepStarted",
    "Worker",
    "WriteEvent",
    "encode_event",
    "read_event_log",
]
