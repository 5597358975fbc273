"""Per-test-case assembly state for interleaved event streams."""

from bddreport.tracking.context import ContextTracker, TestCaseContext

__all__ = ["ContextTracker", "TestCaseContext"]
