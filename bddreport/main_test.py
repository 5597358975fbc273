"""Tests for the report generator entry point."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

import pytest

from bddreport.events.log import encode_event
from bddreport.events.types import (
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
)
from bddreport.main import main, parse_args

URI = "features/a.feature"
FEATURE_TEXT = "Feature: A\n\n  Scenario: One\n    Given a step\n"
TEST_CASE = TestCase(id="tc", uri=URI, line=3, name="One")
STEP = PickleStepTestStep(
    id="s", uri=URI, line=4, text="a step", pattern="a step", code_location="steps.py:1",
)


def _write_log(path: Path, run_finished: bool = True) -> None:
    events = [
        TestSourceRead(uri=URI, source=FEATURE_TEXT),
        TestCaseStarted(test_case=TEST_CASE, worker=Worker(id=1, name="main")),
        TestStepStarted(test_case=TEST_CASE, test_step=STEP),
        TestStepFinished(test_case=TEST_CASE, test_step=STEP, result=Result(Status.PASSED, 100)),
        TestCaseFinished(test_case=TEST_CASE, result=Result(Status.PASSED, 100)),
    ]
    if run_finished:
        events.append(TestRunFinished())
    lines = ["runner starting"] + [encode_event(e) for e in events]
    path.write_text("\n".join(lines) + "\n")


class TestParseArgs:
    """Tests for argument parsing."""

    def test_plugins_repeatable(self):
        """--plugin may be given several times."""
        args = parse_args([
            "--events", "run.log",
            "--plugin", "json:a.json",
            "--plugin", "usage:u.yaml",
        ])
        assert args.events == Path("run.log")
        assert args.plugin == ["json:a.json", "usage:u.yaml"]
        assert args.config_file == Path(".report_config")

    def test_events_required(self):
        """--events is required."""
        with pytest.raises(SystemExit):
            parse_args(["--plugin", "json:a.json"])


class TestMain:
    """Tests for replaying a recorded run."""

    def test_replay_writes_reports(self, capsys):
        """Each requested report is written."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            _write_log(tmp / "run.log")
            code = main([
                "--events", str(tmp / "run.log"),
                "--plugin", f"json:{tmp / 'cucumber.json'}",
                "--plugin", f"usage:{tmp / 'usage.json'}",
                "--config-file", str(tmp / "missing"),
            ])
            assert code == 0
            report = json.loads((tmp / "cucumber.json").read_text())
            assert report[0]["elements"][0]["steps"][0]["name"] == "a step"
            usage = json.loads((tmp / "usage.json").read_text())
            assert usage[0]["source"] == "a step"
            assert "Replayed 6 events" in capsys.readouterr().out

    def test_plugins_from_config(self):
        """Without --plugin the configured plugins are used."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            _write_log(tmp / "run.log")
            config_path = tmp / ".report_config"
            config_path.write_text(json.dumps({
                "plugins": [f"timeline:{tmp / 'timeline.json'}"],
            }))
            code = main(["--events", str(tmp / "run.log"), "--config-file", str(config_path)])
            assert code == 0
            data = json.loads((tmp / "timeline.json").read_text())
            assert data["groups"] == [{"id": 1, "content": "main"}]

    def test_config_warnings_printed(self, capsys):
        """Problems in the config file are reported, not fatal."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            _write_log(tmp / "run.log")
            config_path = tmp / ".report_config"
            config_path.write_text(json.dumps({"indent": 0, "colour": "blue"}))
            code = main([
                "--events", str(tmp / "run.log"),
                "--plugin", f"json:{tmp / 'cucumber.json'}",
                "--config-file", str(config_path),
            ])
            assert code == 0
            assert f"Warning: unknown config keys in {config_path}: colour" in (
                capsys.readouterr().err
            )

    def test_missing_run_finished_synthesized(self, capsys):
        """A log without a run end is finished with a warning."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            _write_log(tmp / "run.log", run_finished=False)
            code = main([
                "--events", str(tmp / "run.log"),
                "--plugin", f"json:{tmp / 'cucumber.json'}",
                "--config-file", str(tmp / "missing"),
            ])
            assert code == 0
            assert (tmp / "cucumber.json").exists()
            assert "run did not finish" in capsys.readouterr().err

    def test_no_plugins(self, capsys):
        """Nothing to write is a usage error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            code = main(["--events", str(tmp / "run.log"), "--config-file", str(tmp / "missing")])
            assert code == 2
            assert "no report requested" in capsys.readouterr().err

    def test_invalid_plugin(self, capsys):
        """Unknown plugins are a usage error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            code = main([
                "--events", str(tmp / "run.log"),
                "--plugin", "pdf:out.pdf",
                "--config-file", str(tmp / "missing"),
            ])
            assert code == 2
            assert "Unknown plugin 'pdf'" in capsys.readouterr().err

    def test_missing_log(self, capsys):
        """A missing event log is an error."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            code = main([
                "--events", str(tmp / "run.log"),
                "--plugin", f"json:{tmp / 'cucumber.json'}",
                "--config-file", str(tmp / "missing"),
            ])
            assert code == 1
            assert "Event log not found" in capsys.readouterr().err

    def test_malformed_lines_warned(self, capsys):
        """Malformed event lines are reported on stderr."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            (tmp / "run.log").write_text("[EVT] {broken\n")
            code = main([
                "--events", str(tmp / "run.log"),
                "--plugin", f"json:{tmp / 'cucumber.json'}",
                "--config-file", str(tmp / "missing"),
            ])
            assert code == 0
            assert "Warning:" in capsys.readouterr().err
            assert json.loads((tmp / "cucumber.json").read_text()) == []

    def test_failed_formatter_strict(self, capsys):
        """A failed report fails the run unless strict is off."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            _write_log(tmp / "run.log")
            (tmp / "blocker").write_text("")
            argv = [
                "--events", str(tmp / "run.log"),
                "--plugin", f"json:{tmp / 'blocker' / 'cucumber.json'}",
                "--plugin", f"usage:{tmp / 'usage.json'}",
                "--config-file", str(tmp / ".report_config"),
            ]
            assert main(argv) == 1
            assert "Error: json report failed" in capsys.readouterr().err
            assert (tmp / "usage.json").exists()

            (tmp / ".report_config").write_text(json.dumps({"strict": False}))
            assert main(argv) == 0
