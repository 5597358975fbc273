"""Line-keyed index over parsed feature files.

Events identify steps and test cases only by file and 1-based line.  The
:class:`SourceIndex` parses each feature file once and maps every line that
starts a background, scenario, step or examples row to the
:class:`SourceNode` for it, so formatters can recover keywords, names,
descriptions and tags.

A line with no node is a correlation miss, not an error: every query
returns ``None`` (or ``False``) and callers leave the field out.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from typing import Any

from gherkin.errors import ParserError
from gherkin.parser import Parser
from gherkin.token_scanner import TokenScanner

from bddreport.errors import SourceParseError

# Node kinds
FEATURE = "feature"
RULE = "rule"
BACKGROUND = "background"
SCENARIO = "scenario"
SCENARIO_OUTLINE = "scenario_outline"
EXAMPLES = "examples"
EXAMPLES_HEADER = "examples_header"
EXAMPLES_ROW = "examples_row"
STEP = "step"

_ID_UNSAFE = re.compile(r"[\s'_,!]")


@dataclass(frozen=True)
class SourceTag:
    name: str
    line: int
    column: int


@dataclass(eq=False)
class SourceNode:
    """One construct of a parsed feature file.

    Nodes compare by identity: two scenario outlines with the same content
    are still different nodes.  ``ast`` is the parser's dict for the
    construct.  ``parent`` is for navigation only; the index owns all nodes.
    """

    kind: str
    ast: dict[str, Any] = field(repr=False)
    parent: SourceNode | None = field(default=None, repr=False)
    children: list[SourceNode] = field(default_factory=list, repr=False)
    row_index: int | None = None

    @property
    def keyword(self) -> str:
        return self.ast.get("keyword", "")

    @property
    def name(self) -> str:
        if self.kind == STEP:
            return self.ast.get("text", "")
        return self.ast.get("name", "")

    @property
    def description(self) -> str:
        return self.ast.get("description") or ""

    @property
    def line(self) -> int:
        return int(self.ast.get("location", {}).get("line", 0))

    @property
    def column(self) -> int:
        return int(self.ast.get("location", {}).get("column", 0))

    @property
    def tags(self) -> list[SourceTag]:
        return [
            SourceTag(
                name=tag["name"],
                line=int(tag["location"]["line"]),
                column=int(tag["location"]["column"]),
            )
            for tag in self.ast.get("tags", [])
        ]

    @property
    def cells(self) -> list[str]:
        """Cell values of an examples header or row."""
        return [cell.get("value", "") for cell in self.ast.get("cells", [])]

    def ancestor(self, *kinds: str) -> SourceNode | None:
        """Nearest node of one of *kinds*, starting with this node."""
        node: SourceNode | None = self
        while node is not None:
            if node.kind in kinds:
                return node
            node = node.parent
        return None

    def child(self, kind: str) -> SourceNode | None:
        for c in self.children:
            if c.kind == kind:
                return c
        return None


@dataclass
class _SourceFile:
    feature: SourceNode | None
    nodes: dict[int, SourceNode]


def convert_to_id(name: str) -> str:
    """Turn a name into an id segment: ``"Scenario 1"`` -> ``"scenario-1"``."""
    return _ID_UNSAFE.sub("-", name).lower()


def calculate_id(node: SourceNode | None) -> str:
    """Compute the report id of a node from its ancestors.

    Scenarios append their slug to the parent's id, examples rows their
    1-based row number (the header row is row 1).
    """
    if node is None:
        return ""
    if node.kind == FEATURE:
        return convert_to_id(node.name)
    if node.kind in (RULE, SCENARIO, SCENARIO_OUTLINE, EXAMPLES):
        return calculate_id(node.parent) + ";" + convert_to_id(node.name)
    if node.kind == EXAMPLES_HEADER:
        return calculate_id(node.parent) + ";1"
    if node.kind == EXAMPLES_ROW:
        return calculate_id(node.parent) + ";" + str((node.row_index or 0) + 2)
    return ""


def _add(kind: str, ast: dict[str, Any], parent: SourceNode | None) -> SourceNode:
    node = SourceNode(kind=kind, ast=ast, parent=parent)
    if parent is not None:
        parent.children.append(node)
    return node


def _index_steps(
    owner: SourceNode, steps: list[dict[str, Any]], nodes: dict[int, SourceNode],
) -> None:
    for step in steps:
        node = _add(STEP, step, owner)
        nodes[node.line] = node


def _index_children(
    parent: SourceNode,
    children: list[dict[str, Any]],
    nodes: dict[int, SourceNode],
) -> None:
    """Index the backgrounds, rules and scenarios under *parent*."""
    for child in children:
        if "background" in child:
            background = _add(BACKGROUND, child["background"], parent)
            nodes[background.line] = background
            _index_steps(background, child["background"].get("steps", []), nodes)

        elif "rule" in child:
            rule = _add(RULE, child["rule"], parent)
            _index_children(rule, child["rule"].get("children", []), nodes)

        elif "scenario" in child:
            scenario_ast = child["scenario"]
            examples_list = scenario_ast.get("examples") or []
            kind = SCENARIO_OUTLINE if examples_list else SCENARIO
            scenario = _add(kind, scenario_ast, parent)
            nodes[scenario.line] = scenario
            _index_steps(scenario, scenario_ast.get("steps", []), nodes)

            for examples_ast in examples_list:
                examples = _add(EXAMPLES, examples_ast, scenario)
                header = examples_ast.get("tableHeader")
                if header:
                    header_node = _add(EXAMPLES_HEADER, header, examples)
                    nodes[header_node.line] = header_node
                for i, row in enumerate(examples_ast.get("tableBody") or []):
                    row_node = _add(EXAMPLES_ROW, row, examples)
                    row_node.row_index = i
                    nodes[row_node.line] = row_node


def parse_feature(uri: str, source: str) -> tuple[SourceNode | None, dict[int, SourceNode]]:
    """Parse feature text into its feature node and line index.

    Raises:
        SourceParseError: If *source* is not valid Gherkin.
    """
    try:
        document = Parser().parse(TokenScanner(source))
    except ParserError as e:
        raise SourceParseError(uri, str(e)) from e

    feature_ast = document.get("feature")
    if not feature_ast:
        return None, {}

    feature = _add(FEATURE, feature_ast, None)
    nodes: dict[int, SourceNode] = {}
    _index_children(feature, feature_ast.get("children", []), nodes)
    return feature, nodes


class SourceIndex:
    """Parsed feature files, queryable by uri and line.

    Safe to share between threads; every query is a read.
    """

    def __init__(self) -> None:
        self._files: dict[str, _SourceFile] = {}
        self._lock = threading.Lock()

    def add_source(self, uri: str, source: str) -> None:
        """Parse and index *source* for *uri*.  Re-adding a uri is a no-op.

        Raises:
            SourceParseError: If *source* is not valid Gherkin.
        """
        with self._lock:
            if uri in self._files:
                return
            feature, nodes = parse_feature(uri, source)
            self._files[uri] = _SourceFile(feature=feature, nodes=nodes)

    def get_feature(self, uri: str) -> SourceNode | None:
        with self._lock:
            entry = self._files.get(uri)
        return entry.feature if entry else None

    def lookup(self, uri: str, line: int) -> SourceNode | None:
        """Node starting at *line* of *uri*, or None."""
        with self._lock:
            entry = self._files.get(uri)
        if entry is None:
            return None
        return entry.nodes.get(line)

    def background_of(self, uri: str, line: int) -> SourceNode | None:
        """Background that runs before the test case at *line*, or None.

        The feature's background wins over a rule's background.
        """
        node = self.lookup(uri, line)
        if node is None:
            return None
        feature = node.ancestor(FEATURE)
        if feature is not None:
            background = feature.child(BACKGROUND)
            if background is not None:
                return background
        rule = node.ancestor(RULE)
        if rule is not None:
            return rule.child(BACKGROUND)
        return None

    @staticmethod
    def is_background_step(node: SourceNode | None) -> bool:
        return (
            node is not None
            and node.kind == STEP
            and node.parent is not None
            and node.parent.kind == BACKGROUND
        )

    @staticmethod
    def scenario_definition_of(node: SourceNode | None) -> SourceNode | None:
        """Scenario or scenario outline that *node* belongs to."""
        if node is None:
            return None
        return node.ancestor(SCENARIO, SCENARIO_OUTLINE)

    @staticmethod
    def scenario_outline_of(node: SourceNode | None) -> SourceNode | None:
        definition = SourceIndex.scenario_definition_of(node)
        if definition is not None and definition.kind == SCENARIO_OUTLINE:
            return definition
        return None

    @staticmethod
    def examples_of(node: SourceNode | None) -> SourceNode | None:
        if node is None:
            return None
        return node.ancestor(EXAMPLES)

    @staticmethod
    def is_scenario_outline_scenario(node: SourceNode | None) -> bool:
        """True if *node* is the examples row a test case was built from."""
        return node is not None and node.kind == EXAMPLES_ROW
