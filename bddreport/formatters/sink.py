"""Report outputs.

A :class:`ReportSink` is an append-only text stream for one report file.
Files are opened on first use (parent directories are created) and closed
exactly once; streams handed in by the caller are flushed but left open.
I/O failures surface as :class:`SinkWriteError`.
"""

from __future__ import annotations

from pathlib import Path
from typing import TextIO

from bddreport.errors import SinkWriteError


class ReportSink:
    """Append-only text output, closed exactly once."""

    def __init__(self, target: Path | str | TextIO) -> None:
        if isinstance(target, (str, Path)):
            self.path: Path | None = Path(target)
            self._stream: TextIO | None = None
            self._owned = True
        else:
            self.path = None
            self._stream = target
            self._owned = False
        self.closed = False

    def __str__(self) -> str:
        return str(self.path) if self.path is not None else "<stream>"

    def _open(self) -> TextIO:
        if self._stream is None:
            assert self.path is not None
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._stream = open(self.path, "w", encoding="utf-8")
        return self._stream

    def append(self, text: str) -> ReportSink:
        """Append *text* to the output.

        Raises:
            SinkWriteError: If the sink is closed or the write fails.
        """
        if self.closed:
            raise SinkWriteError(f"Report output {self} is already closed")
        try:
            self._open().write(text)
        except OSError as e:
            raise SinkWriteError(f"Unable to write report {self}: {e}") from e
        return self

    def close(self) -> None:
        """Flush and close the output.  Later calls do nothing."""
        if self.closed:
            return
        self.closed = True
        try:
            stream = self._open()
            stream.flush()
            if self._owned:
                stream.close()
        except OSError as e:
            raise SinkWriteError(f"Unable to close report {self}: {e}") from e


def write_binary_file(path: Path, data: bytes) -> None:
    """Write *data* to *path*, creating parent directories.

    Raises:
        SinkWriteError: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise SinkWriteError(f"Unable to write report file {path}: {e}") from e
