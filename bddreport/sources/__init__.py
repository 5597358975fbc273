"""Parsed feature files indexed by uri and line."""

from bddreport.sources.model import (
    SourceIndex,
    SourceNode,
    SourceTag,
    calculate_id,
    convert_to_id,
)

__all__ = [
    "SourceIndex",
    "SourceNode",
    "SourceTag",
    "calculate_id",
    "convert_to_id",
]
