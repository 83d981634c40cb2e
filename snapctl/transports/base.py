"""Transport interfaces."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class LineTransport(Protocol):
    def send_line(self, line: str) -> None:
        """Write one serialized line to the device."""

    def read_line(self) -> str | None:
        """Return the next line without terminator, or None at end of stream."""

    def close(self) -> None:
        """Tear the connection down, unblocking any pending read."""


class Uploader(Protocol):
    def upload(self, host: str, port: int, path: Path, *, timeout_s: float = 30.0) -> int:
        """Stream a file to host:port and return the number of bytes sent."""
