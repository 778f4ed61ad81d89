"""Line-oriented stream helpers shared by the patch engine.

Every line handled here is ``bytes`` and keeps its terminator, so content is
copied exactly as it was read.
"""

from __future__ import annotations

import io
from typing import BinaryIO, Protocol

from .errors import PatchError

__all__ = [
    "DestinationWriter",
    "LineSink",
    "PatchStream",
    "copy_lines",
    "read_line",
    "same_line",
    "strip_terminator",
]


class LineSink(Protocol):
    def write(self, line: bytes) -> None:
        ...


def strip_terminator(line: bytes) -> bytes:
    """Return ``line`` without its trailing ``\\n`` or ``\\r\\n``."""
    if line.endswith(b"\r\n"):
        return line[:-2]
    if line.endswith(b"\n"):
        return line[:-1]
    return line


def same_line(left: bytes, right: bytes) -> bool:
    """Compare two lines byte for byte, ignoring how each one is terminated."""
    return strip_terminator(left) == strip_terminator(right)


def read_line(stream: BinaryIO) -> bytes | None:
    """Read one line from ``stream``; ``None`` at end of file."""
    try:
        line = stream.readline()
    except OSError as error:
        raise PatchError(
            f"error reading {getattr(stream, 'name', 'stream')}: {error}",
            details={"path": getattr(stream, "name", None)},
        ) from error
    return line or None


def copy_lines(source: BinaryIO | None, destination: LineSink, count: int | None = None) -> int:
    """Copy up to ``count`` lines verbatim and return how many were NOT copied.

    ``count=None`` copies everything left in ``source`` and always returns 0.
    A missing source copies nothing.
    """
    remaining = count
    if source is None:
        return remaining or 0
    while remaining is None or remaining > 0:
        line = read_line(source)
        if line is None:
            break
        destination.write(line)
        if remaining is not None:
            remaining -= 1
    return remaining or 0


class PatchStream:
    """Forward-only reader over patch lines with one line of pushback."""

    def __init__(self, handle: BinaryIO) -> None:
        self._handle = handle
        self._pending: bytes | None = None
        self.line_number = 0

    @classmethod
    def from_bytes(cls, data: bytes) -> "PatchStream":
        return cls(io.BytesIO(data))

    def next_line(self) -> bytes | None:
        """Return the next patch line, or ``None`` once the stream is exhausted."""
        if self._pending is not None:
            line, self._pending = self._pending, None
            return line
        line = read_line(self._handle)
        if line is not None:
            self.line_number += 1
        return line

    def push_back(self, line: bytes) -> None:
        """Return ``line`` to the stream so the next read yields it again."""
        if self._pending is not None:
            raise PatchError("patch stream already holds a pushed back line")
        self._pending = line


class DestinationWriter:
    """Write rewritten content, holding back the last line until it is final.

    Holding the last line lets a ``\\ No newline at end of file`` marker drop
    the terminator of whatever was written just before it.
    """

    def __init__(self, handle: BinaryIO) -> None:
        self._handle = handle
        self._pending: bytes | None = None
        self.bytes_written = 0

    @property
    def name(self) -> str | None:
        return getattr(self._handle, "name", None)

    def write(self, line: bytes) -> None:
        self._flush_pending()
        self._pending = line

    def drop_line_terminator(self) -> None:
        if self._pending is not None:
            self._pending = strip_terminator(self._pending)

    def flush(self) -> None:
        self._flush_pending()
        try:
            self._handle.flush()
        except OSError as error:
            raise PatchError(
                f"error writing to {self.name}: {error}",
                details={"path": self.name},
            ) from error

    def _flush_pending(self) -> None:
        if self._pending is None:
            return
        try:
            self._handle.write(self._pending)
        except OSError as error:
            raise PatchError(
                f"error writing to {self.name}: {error}",
                details={"path": self.name},
            ) from error
        self.bytes_written += len(self._pending)
        self._pending = None
