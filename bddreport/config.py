"""Report configuration file management.

Reads the .report_config JSON file that holds the output settings shared
by all formatters and the plugins the CLI enables by default.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_FILE = Path(".report_config")

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "indent": 2,
    "usage_format": "json",
    "plugins": [],
    "strict": True,
}


class ReportConfig:
    """Settings from the .report_config JSON file.

    Keys missing from the file keep their ``DEFAULT_CONFIG`` value.  A file
    that cannot be read or does not hold a JSON object is ignored; that and
    any unknown keys are reported in ``warnings``.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self.warnings: list[str] = []
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        if path is not None and path.exists():
            self._data.update(self._read(path))

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            self.warnings.append(f"ignoring unreadable config {path}: {e}")
            return {}
        if not isinstance(data, dict):
            self.warnings.append(f"ignoring config {path}: not a JSON object")
            return {}

        unknown = sorted(set(data) - set(DEFAULT_CONFIG))
        if unknown:
            self.warnings.append(
                f"unknown config keys in {path}: {', '.join(unknown)}"
            )
        return {key: value for key, value in data.items() if key in DEFAULT_CONFIG}

    @property
    def indent(self) -> int | None:
        """JSON indent of report outputs (None = compact)."""
        val = self._data["indent"]
        return int(val) if val is not None else None

    @property
    def usage_format(self) -> str:
        """Output format of the usage report ("json" or "yaml")."""
        return str(self._data["usage_format"])

    @property
    def plugins(self) -> list[str]:
        """The "name:path" plugin specs enabled without --plugin."""
        val = self._data["plugins"]
        return [str(p) for p in val] if isinstance(val, list) else []

    @property
    def strict(self) -> bool:
        return bool(self._data["strict"])
