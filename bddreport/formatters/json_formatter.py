"""JSON report formatter.

Builds one document per feature file::

    {uri, keyword, name, description, line, id, tags, elements: [
        {type: "background" | "scenario", name, line, keyword, description,
         id, tags, before, after, steps: [
            {name, line, keyword, doc_string | rows, before, after,
             match, result, output, embeddings}]}]}

A feature's background steps are written to a background element placed
right before each scenario element that uses it.  Hooks go where they
ran: before/after hooks on the scenario element, before-step hooks on the
next step, after-step hooks on the step that just ran.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, TextIO

from bddreport.errors import EncodingError
from bddreport.events.log import encode_embedding
from bddreport.events.types import (
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
    TestStep,
    TestStepFinished,
    TestStepStarted,
    WriteEvent,
)
from bddreport.formatters.assembler import (
    DocumentAssembler,
    create_result_map,
    create_source_tag_list,
    create_step_argument,
    create_tag_list,
    format_timestamp,
)
from bddreport.formatters.base import Handler
from bddreport.formatters.sink import ReportSink
from bddreport.sources.model import calculate_id, convert_to_id
from bddreport.tracking.context import TestCaseContext

BEFORE = "before"
AFTER = "after"


class JSONFormatter(DocumentAssembler):
    """Writes the feature/element/step tree as a JSON array."""

    name = "json"

    def __init__(self, output: Path | str | TextIO, indent: int | None = 2) -> None:
        super().__init__()
        self.out = ReportSink(output)
        self.indent = indent
        self.feature_maps: list[dict[str, Any]] = []
        self._features_by_uri: dict[str, dict[str, Any]] = {}

    def handlers(self) -> dict[type, Handler]:
        return {
            TestSourceRead: self.handle_test_source_read,
            TestCaseStarted: self.handle_test_case_started,
            TestStepStarted: self.handle_test_step_started,
            TestStepFinished: self.handle_test_step_finished,
            TestCaseFinished: self.handle_test_case_finished,
            WriteEvent: self.handle_write,
            EmbedEvent: self.handle_embed,
            TestRunFinished: self.finish_report,
        }

    def close(self) -> None:
        self.out.close()

    def handle_test_case_started(self, event: TestCaseStarted) -> None:
        test_case = event.test_case
        feature_map = self._features_by_uri.get(test_case.uri)
        if feature_map is None:
            feature_map = self._create_feature_map(test_case)
            self._features_by_uri[test_case.uri] = feature_map
            self.feature_maps.append(feature_map)
        elements: list[dict[str, Any]] = feature_map["elements"]

        context = self.contexts.open(test_case)
        context.test_case_element = self._create_test_case(event)
        background = self._create_background(test_case)
        if background is not None:
            elements.append(background)
            context.element = background
        else:
            context.element = context.test_case_element
        elements.append(context.test_case_element)
        context.steps = context.element["steps"]

    def handle_test_step_started(self, event: TestStepStarted) -> None:
        context = self.contexts.get(event.test_case.id)
        test_step = event.test_step

        if isinstance(test_step, PickleStepTestStep):
            if self.is_first_step_after_background(context, test_step):
                context.enter_test_case_element()
            step_map = self._create_test_step(test_step)
            hooks = context.take_before_step_hooks()
            if hooks:
                step_map[BEFORE] = hooks
            context.steps.append(step_map)
            context.current = step_map

        elif isinstance(test_step, HookTestStep):
            hook_map: dict[str, Any] = {}
            context.current = hook_map
            self._add_hook(context, hook_map, test_step.hook_type)

        else:
            raise TypeError(f"Unknown test step: {test_step!r}")

    def handle_test_step_finished(self, event: TestStepFinished) -> None:
        context = self.contexts.get(event.test_case.id)
        node = self.current_node(context)
        node["match"] = self._create_match_map(event.test_step, event.result)
        node["result"] = create_result_map(event.result)

    def handle_test_case_finished(self, event: TestCaseFinished) -> None:
        self.close_context(event.test_case.id)

    def handle_write(self, event: WriteEvent) -> None:
        context = self.contexts.get(event.test_case.id)
        node = self.current_node(context)
        node.setdefault("output", []).append(event.text)

    def handle_embed(self, event: EmbedEvent) -> None:
        context = self.contexts.get(event.test_case.id)
        node = self.current_node(context)
        try:
            data = encode_embedding(event.data)
        except EncodingError as e:
            self.warnings.append(
                f"skipped {event.mime_type} embedding in "
                f"'{event.test_case.name}': {e}"
            )
            return
        embedding: dict[str, Any] = {"mime_type": event.mime_type, "data": data}
        if event.name is not None:
            embedding["name"] = event.name
        node.setdefault("embeddings", []).append(embedding)

    def finish_report(self, event: TestRunFinished | None = None) -> None:
        self.close_open_contexts()
        self.out.append(json.dumps(self.feature_maps, indent=self.indent))
        self.out.close()

    def _add_hook(
        self, context: TestCaseContext, hook_map: dict[str, Any], hook_type: HookType,
    ) -> None:
        if hook_type is HookType.BEFORE_STEP:
            context.before_step_hooks.append(hook_map)
            return

        if hook_type is HookType.AFTER_STEP:
            target = self.last_step(context)
        else:
            assert context.test_case_element is not None
            target = context.test_case_element

        hook_name = AFTER if hook_type in (HookType.AFTER, HookType.AFTER_STEP) else BEFORE
        target.setdefault(hook_name, []).append(hook_map)

    def _create_feature_map(self, test_case: TestCase) -> dict[str, Any]:
        feature_map: dict[str, Any] = {"uri": test_case.uri}
        feature = self.sources.get_feature(test_case.uri)
        if feature is not None:
            feature_map["keyword"] = feature.keyword
            feature_map["name"] = feature.name
            feature_map["description"] = feature.description
            feature_map["line"] = feature.line
            feature_map["id"] = convert_to_id(feature.name)
            feature_map["tags"] = create_source_tag_list(feature.tags)
        feature_map["elements"] = []
        return feature_map

    def _create_test_case(self, event: TestCaseStarted) -> dict[str, Any]:
        test_case = event.test_case
        test_case_map: dict[str, Any] = {
            "start_timestamp": format_timestamp(event.instant),
            "name": test_case.name,
            "line": test_case.line,
            "type": "scenario",
        }
        node = self.lookup(test_case.uri, test_case.line)
        if node is not None:
            test_case_map["id"] = calculate_id(node)
            definition = self.scenario_definition(test_case)
            if definition is not None:
                test_case_map["keyword"] = definition.keyword
                test_case_map["description"] = definition.description
        test_case_map["steps"] = []
        if test_case.tags:
            test_case_map["tags"] = create_tag_list(test_case.tags)
        return test_case_map

    def _create_background(self, test_case: TestCase) -> dict[str, Any] | None:
        background = self.sources.background_of(test_case.uri, test_case.line)
        if background is None:
            return None
        return {
            "name": background.name,
            "line": background.line,
            "type": "background",
            "keyword": background.keyword,
            "description": background.description,
            "steps": [],
        }

    def _create_test_step(self, test_step: PickleStepTestStep) -> dict[str, Any]:
        step_map: dict[str, Any] = {
            "name": test_step.text,
            "line": test_step.line,
        }
        argument = create_step_argument(test_step.argument, full=True)
        if argument is not None:
            key, value = argument
            step_map[key] = value
        keyword = self.step_keyword(test_step)
        if keyword is not None:
            step_map["keyword"] = keyword
        return step_map

    @staticmethod
    def _create_match_map(test_step: TestStep, result: Result) -> dict[str, Any]:
        match_map: dict[str, Any] = {}
        if isinstance(test_step, PickleStepTestStep) and test_step.definition_arguments:
            arguments = []
            for argument in test_step.definition_arguments:
                argument_map: dict[str, Any] = {}
                if argument.value is not None:
                    argument_map["val"] = argument.value
                    argument_map["offset"] = argument.start
                arguments.append(argument_map)
            match_map["arguments"] = arguments
        if result.status is not Status.UNDEFINED and test_step.code_location is not None:
            match_map["location"] = test_step.code_location
        return match_map
