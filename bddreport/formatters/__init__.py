"""Report formatters and the plugin factory used by the CLI."""

from __future__ import annotations

from pathlib import Path

from bddreport.config import ReportConfig
from bddreport.formatters.base import Formatter
from bddreport.formatters.event_log_formatter import EventLogFormatter
from bddreport.formatters.html_formatter import HTMLFormatter
from bddreport.formatters.json_formatter import JSONFormatter
from bddreport.formatters.timeline_formatter import TimelineFormatter
from bddreport.formatters.usage_formatter import UsageFormatter

PLUGINS: dict[str, type[Formatter]] = {
    "json": JSONFormatter,
    "html": HTMLFormatter,
    "usage": UsageFormatter,
    "timeline": TimelineFormatter,
    "events": EventLogFormatter,
}

YAML_SUFFIXES = (".yaml", ".yml")


def parse_plugin_spec(spec: str) -> tuple[str, Path]:
    """Split a ``name:path`` plugin spec.

    Args:
        spec: Plugin spec, e.g. ``json:target/report.json``.

    Returns:
        The plugin name and the output path.

    Raises:
        ValueError: If the spec has no path or names an unknown plugin.
    """
    name, sep, path = spec.partition(":")
    name = name.strip()
    if not sep or not path.strip():
        raise ValueError(f"Plugin spec must be NAME:PATH, got '{spec}'")
    if name not in PLUGINS:
        known = ", ".join(sorted(PLUGINS))
        raise ValueError(f"Unknown plugin '{name}' (known: {known})")
    return name, Path(path.strip())


def create_formatter(spec: str, config: ReportConfig | None = None) -> Formatter:
    """Build the formatter a ``name:path`` plugin spec describes.

    Args:
        spec: Plugin spec, e.g. ``html:target/report``.
        config: Report configuration; defaults apply when omitted.

    Returns:
        A formatter writing to the spec's path.

    Raises:
        ValueError: If the spec is invalid.
    """
    if config is None:
        config = ReportConfig(None)
    name, path = parse_plugin_spec(spec)

    if name == "json":
        return JSONFormatter(path, indent=config.indent)
    if name == "html":
        return HTMLFormatter(path, indent=config.indent)
    if name == "usage":
        output_format = config.usage_format
        if path.suffix in YAML_SUFFIXES:
            output_format = "yaml"
        return UsageFormatter(path, output_format=output_format, indent=config.indent)
    if name == "timeline":
        return TimelineFormatter(path, indent=config.indent)
    return EventLogFormatter(path)


__all__ = [
    "PLUGINS",
    "EventLogFormatter",
    "Formatter",
    "HTMLFormatter",
    "JSONFormatter",
    "TimelineFormatter",
    "UsageFormatter",
    "create_formatter",
    "parse_plugin_spec",
]
