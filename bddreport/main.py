"""Entry point for the report generator.

Replays a recorded event log through the requested formatters.  The log
is the ``[EVT]`` line stream written by the ``events`` plugin (or by any
runner that emits the same lines); other lines in it are ignored.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from bddreport.config import DEFAULT_CONFIG_FILE, ReportConfig
from bddreport.events.bus import EventBus
from bddreport.events.log import read_event_log
from bddreport.events.types import TestRunFinished
from bddreport.formatters import PLUGINS, create_formatter
from bddreport.formatters.base import Formatter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Build test reports from a recorded Gherkin test run"
    )
    parser.add_argument(
        "--events",
        required=True,
        type=Path,
        help="Path to the recorded event log",
    )
    parser.add_argument(
        "--plugin",
        action="append",
        default=[],
        metavar="NAME:PATH",
        help=f"Report to write, e.g. json:target/report.json; may be repeated "
             f"(plugins: {', '.join(sorted(PLUGINS))})",
    )
    parser.add_argument(
        "--config-file",
        type=Path,
        default=DEFAULT_CONFIG_FILE,
        help=f"Path to the report config JSON file (default: {DEFAULT_CONFIG_FILE})",
    )
    return parser.parse_args(argv)


def _create_formatters(
    plugin_specs: list[str], config: ReportConfig,
) -> list[Formatter] | None:
    """Build one formatter per plugin spec, or None if a spec is invalid."""
    formatters: list[Formatter] = []
    for spec in plugin_specs:
        try:
            formatters.append(create_formatter(spec, config))
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return None
    return formatters


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    config = ReportConfig(args.config_file)
    for warning in config.warnings:
        print(f"Warning: {warning}", file=sys.stderr)

    plugin_specs = args.plugin or config.plugins
    if not plugin_specs:
        print("Error: no report requested; pass --plugin NAME:PATH",
              file=sys.stderr)
        return 2
    formatters = _create_formatters(plugin_specs, config)
    if formatters is None:
        return 2

    try:
        text = args.events.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: Event log not found: {args.events}", file=sys.stderr)
        return 1
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: Unable to read event log {args.events}: {e}",
              file=sys.stderr)
        return 1

    log = read_event_log(text)
    for warning in log.warnings:
        print(f"Warning: {args.events}: {warning}", file=sys.stderr)

    bus = EventBus()
    for formatter in formatters:
        formatter.set_event_publisher(bus)

    bus.publish_all(log.events)
    if not log.has_run_finished:
        print(f"Warning: {args.events}: run did not finish; "
              f"reports may be incomplete", file=sys.stderr)
        bus.publish(TestRunFinished())

    return _print_summary(formatters, plugin_specs, config, len(log.events))


def _print_summary(
    formatters: list[Formatter],
    plugin_specs: list[str],
    config: ReportConfig,
    event_count: int,
) -> int:
    """Print per-formatter warnings and errors.

    Returns:
        Exit code: 1 if a formatter failed and the config is strict.
    """
    print(f"Replayed {event_count} events")
    failed = False
    for formatter, spec in zip(formatters, plugin_specs):
        for warning in formatter.warnings:
            print(f"Warning: {formatter.name}: {warning}", file=sys.stderr)
        if formatter.error is not None:
            failed = True
            print(f"Error: {formatter.name} report failed: {formatter.error}",
                  file=sys.stderr)
        else:
            print(f"  {spec}")
    return 1 if (failed and config.strict) else 0


if __name__ == "__main__":
    sys.exit(main())
