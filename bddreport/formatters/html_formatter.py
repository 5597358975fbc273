"""HTML report formatter.

Writes ``report.js`` into the report directory: a stream of
``formatter.<call>(<json>);`` statements that the static report page
replays to build its DOM.  The calls for one test case are collected in
its context and written in one piece when the test case finishes, so
interleaved test cases never mix.

Scenario outlines and their examples tables are written once per outline
(and once per examples block) when consecutive test cases come from the
same outline; identity of the source node decides, not its content.
Text embeddings are written inline; images and videos are saved next to
``report.js`` as ``embedded<N>.<ext>``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, TextIO

from bddreport.errors import EncodingError
from bddreport.events.types import (
    EmbedEvent,
    HookTestStep,
    HookType,
    PickleStepTestStep,
    TestCase,
    TestCaseFinished,
    TestCaseStarted,
    TestRunFinished,
    TestSourceRead,
    TestStepFinished,
    TestStepStarted,
    WriteEvent,
)
from bddreport.formatters.assembler import (
    DocumentAssembler,
    create_result_map,
    create_rows,
    create_step_argument,
    create_tag_list,
)
from bddreport.formatters.base import Handler
from bddreport.formatters.sink import ReportSink, write_binary_file
from bddreport.sources.model import STEP, SourceIndex, SourceNode
from bddreport.tracking.context import TestCaseContext

JS_FORMATTER_VAR = "formatter"
JS_REPORT_FILENAME = "report.js"

MIME_TYPES_EXTENSIONS = {
    "image/bmp": "bmp",
    "image/gif": "gif",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/svg+xml": "svg",
    "video/ogg": "ogg",
}

HOOK_FUNCTIONS = {
    HookType.BEFORE: "before",
    HookType.AFTER: "after",
    HookType.BEFORE_STEP: "beforestep",
    HookType.AFTER_STEP: "afterstep",
}


def _tag_names(node: SourceNode) -> list[str]:
    return [tag.name for tag in node.tags]


class HTMLFormatter(DocumentAssembler):
    """Writes the report script for the HTML report page."""

    name = "html"

    def __init__(
        self,
        report_dir: Path | str,
        js_out: TextIO | None = None,
        indent: int | None = 2,
    ) -> None:
        super().__init__()
        self.report_dir = Path(report_dir)
        self.js_out = ReportSink(
            js_out if js_out is not None else self.report_dir / JS_REPORT_FILENAME
        )
        self.indent = indent
        self._first_feature = True
        self._current_feature_uri: str | None = None
        self._current_scenario_outline: SourceNode | None = None
        self._current_examples: SourceNode | None = None
        self._embedded_index = 0

    def handlers(self) -> dict[type, Handler]:
        return {
            TestSourceRead: self.handle_test_source_read,
            TestCaseStarted: self.handle_test_case_started,
            TestStepStarted: self.handle_test_step_started,
            TestStepFinished: self.handle_test_step_finished,
            TestCaseFinished: self.handle_test_case_finished,
            EmbedEvent: self.handle_embed,
            WriteEvent: self.handle_write,
            TestRunFinished: self.finish_report,
        }

    def close(self) -> None:
        self.js_out.close()

    def handle_test_case_started(self, event: TestCaseStarted) -> None:
        # The scenario call is deferred to the first step after the
        # background; a test case without steps of its own stays under its
        # background, after hooks included.
        test_case = event.test_case
        context = self.contexts.open(test_case)
        context.test_case_element = self._create_test_case(test_case)
        background = self._create_background(test_case)
        if background is not None:
            context.element = background
            context.calls.append(("background", (background,)))
        else:
            context.element = context.test_case_element
            context.calls.append(("scenario", (context.test_case_element,)))

    def handle_test_step_started(self, event: TestStepStarted) -> None:
        context = self.contexts.get(event.test_case.id)
        test_step = event.test_step
        if isinstance(test_step, HookTestStep):
            if test_step.hook_type is HookType.AFTER_STEP:
                self.last_step(context)
            return
        if not isinstance(test_step, PickleStepTestStep):
            raise TypeError(f"Unknown test step: {test_step!r}")

        if self.is_first_step_after_background(context, test_step):
            context.element = context.test_case_element
            context.steps = []
            context.calls.append(("scenario", (context.test_case_element,)))
        step_map = self._create_test_step(test_step)
        context.steps.append(step_map)
        context.calls.append(("step", (step_map,)))
        context.calls.append(("match", (self._create_match_map(test_step),)))

    def handle_test_step_finished(self, event: TestStepFinished) -> None:
        context = self.contexts.get(event.test_case.id)
        test_step = event.test_step
        result_map = create_result_map(event.result, with_duration=False)
        if isinstance(test_step, PickleStepTestStep):
            context.calls.append(("result", (result_map,)))
        elif isinstance(test_step, HookTestStep):
            context.calls.append((HOOK_FUNCTIONS[test_step.hook_type], (result_map,)))
        else:
            raise TypeError(f"Unknown test step: {test_step!r}")

    def handle_embed(self, event: EmbedEvent) -> None:
        context = self.contexts.get(event.test_case.id)
        mime_type = event.mime_type
        if mime_type.startswith("text/"):
            try:
                content = self._decode_text(event.data)
            except EncodingError as e:
                self.warnings.append(
                    f"skipped {mime_type} embedding in '{event.test_case.name}': {e}"
                )
                return
            context.calls.append(("embedding", (mime_type, content, event.name)))
            return

        extension = MIME_TYPES_EXTENSIONS.get(mime_type)
        if extension is None:
            self.warnings.append(
                f"skipped {mime_type} embedding in '{event.test_case.name}': "
                f"unsupported mime type"
            )
            return
        if not isinstance(event.data, (bytes, bytearray)):
            self.warnings.append(
                f"skipped {mime_type} embedding in '{event.test_case.name}': "
                f"payload is not binary data"
            )
            return
        file_name = f"embedded{self._embedded_index}.{extension}"
        self._embedded_index += 1
        write_binary_file(self.report_dir / file_name, bytes(event.data))
        context.calls.append(("embedding", (mime_type, file_name, event.name)))

    def handle_write(self, event: WriteEvent) -> None:
        context = self.contexts.get(event.test_case.id)
        context.calls.append(("write", (event.text,)))

    def handle_test_case_finished(self, event: TestCaseFinished) -> None:
        context = self.close_context(event.test_case.id)
        if context is not None:
            self._write_test_case(context)

    def finish_report(self, event: TestRunFinished | None = None) -> None:
        for context in self.close_open_contexts():
            self._write_test_case(context)
        if not self._first_feature:
            self.js_out.append("});\n")
        self.js_out.close()

    @staticmethod
    def _decode_text(data: bytes) -> str:
        if not isinstance(data, (bytes, bytearray)):
            raise EncodingError("text payload is not binary data")
        try:
            return bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError(f"text payload is not UTF-8: {e}") from e

    def _write_test_case(self, context: TestCaseContext) -> None:
        if self._first_feature:
            self.js_out.append(
                f"$(document).ready(function() {{var {JS_FORMATTER_VAR} = "
                f"new CucumberHTML.DOMFormatter($('.cucumber-report'));\n"
            )
            self._first_feature = False
        self._handle_start_of_feature(context.test_case)
        self._handle_scenario_outline(context.test_case)
        for function_name, args in context.calls:
            self._js_function_call(function_name, *args)

    def _handle_start_of_feature(self, test_case: TestCase) -> None:
        if self._current_feature_uri == test_case.uri:
            return
        self._current_feature_uri = test_case.uri
        self._current_scenario_outline = None
        self._current_examples = None
        self._js_function_call("uri", test_case.uri)
        self._js_function_call("feature", self._create_feature(test_case))

    def _handle_scenario_outline(self, test_case: TestCase) -> None:
        node = self.lookup(test_case.uri, test_case.line)
        if not SourceIndex.is_scenario_outline_scenario(node):
            self._current_scenario_outline = None
            self._current_examples = None
            return

        scenario_outline = SourceIndex.scenario_outline_of(node)
        if scenario_outline is not None and scenario_outline is not self._current_scenario_outline:
            self._current_scenario_outline = scenario_outline
            self._js_function_call(
                "scenarioOutline", self._create_scenario_outline(scenario_outline),
            )
            self._add_outline_steps_to_report(scenario_outline)

        examples = SourceIndex.examples_of(node)
        if examples is not None and examples is not self._current_examples:
            self._current_examples = examples
            self._js_function_call("examples", self._create_examples(examples))

    def _js_function_call(self, function_name: str, *args: Any) -> None:
        rendered = ", ".join(json.dumps(arg, indent=self.indent) for arg in args)
        self.js_out.append(f"{JS_FORMATTER_VAR}.{function_name}({rendered});\n")

    def _create_feature(self, test_case: TestCase) -> dict[str, Any]:
        feature_map: dict[str, Any] = {}
        feature = self.sources.get_feature(test_case.uri)
        if feature is not None:
            feature_map["keyword"] = feature.keyword
            feature_map["name"] = feature.name
            feature_map["description"] = feature.description
            if feature.tags:
                feature_map["tags"] = create_tag_list(_tag_names(feature))
        return feature_map

    def _create_scenario_outline(self, scenario_outline: SourceNode) -> dict[str, Any]:
        outline_map: dict[str, Any] = {
            "name": scenario_outline.name,
            "keyword": scenario_outline.keyword,
            "description": scenario_outline.description,
        }
        if scenario_outline.tags:
            outline_map["tags"] = create_tag_list(_tag_names(scenario_outline))
        return outline_map

    def _add_outline_steps_to_report(self, scenario_outline: SourceNode) -> None:
        for step in scenario_outline.children:
            if step.kind != STEP:
                continue
            step_map: dict[str, Any] = {"name": step.name, "keyword": step.keyword}
            doc_string = step.ast.get("docString")
            data_table = step.ast.get("dataTable")
            if doc_string is not None:
                step_map["doc_string"] = {"value": doc_string.get("content", "")}
            elif data_table is not None:
                step_map["rows"] = create_rows([
                    [cell.get("value", "") for cell in row.get("cells", [])]
                    for row in data_table.get("rows", [])
                ])
            self._js_function_call("step", step_map)

    def _create_examples(self, examples: SourceNode) -> dict[str, Any]:
        examples_map: dict[str, Any] = {
            "name": examples.name,
            "keyword": examples.keyword,
            "description": examples.description,
        }
        rows = [child.cells for child in examples.children]
        examples_map["rows"] = create_rows(rows)
        if examples.tags:
            examples_map["tags"] = create_tag_list(_tag_names(examples))
        return examples_map

    def _create_test_case(self, test_case: TestCase) -> dict[str, Any]:
        test_case_map: dict[str, Any] = {"name": test_case.name}
        definition = self.scenario_definition(test_case)
        if definition is not None:
            test_case_map["keyword"] = definition.keyword
            test_case_map["description"] = definition.description
        if test_case.tags:
            test_case_map["tags"] = create_tag_list(test_case.tags)
        return test_case_map

    def _create_background(self, test_case: TestCase) -> dict[str, Any] | None:
        background = self.sources.background_of(test_case.uri, test_case.line)
        if background is None:
            return None
        return {
            "name": background.name,
            "keyword": background.keyword,
            "description": background.description,
        }

    def _create_test_step(self, test_step: PickleStepTestStep) -> dict[str, Any]:
        step_map: dict[str, Any] = {"name": test_step.text}
        argument = create_step_argument(test_step.argument, full=False)
        if argument is not None:
            key, value = argument
            step_map[key] = value
        keyword = self.step_keyword(test_step)
        if keyword is not None:
            step_map["keyword"] = keyword
        return step_map

    @staticmethod
    def _create_match_map(test_step: PickleStepTestStep) -> dict[str, Any]:
        match_map: dict[str, Any] = {}
        if test_step.code_location is not None:
            match_map["location"] = test_step.code_location
        return match_map
