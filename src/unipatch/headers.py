"""Parsing of unified diff file headers and hunk headers."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

__all__ = [
    "DEV_NULL",
    "HunkHeader",
    "NEW_FILE_PREFIX",
    "OLD_FILE_PREFIX",
    "STRIP_ALL",
    "extract_filename",
    "parse_hunk_header",
]

OLD_FILE_PREFIX = b"--- "
NEW_FILE_PREFIX = b"+++ "
DEV_NULL = "/dev/null"
STRIP_ALL = -1

_NAME_END = re.compile(rb"[\t\r\n]")
_HUNK_HEADER = re.compile(
    rb"^@@ -(?P<src_begin>\d+)(?:,(?P<src_count>\d+))? "
    rb"\+(?P<dst_begin>\d+)(?:,(?P<dst_count>\d+))? @@"
)


@dataclass(frozen=True, slots=True)
class HunkHeader:
    """Line ranges declared by an ``@@`` header."""

    src_begin: int
    src_count: int
    dst_begin: int
    dst_count: int

    def reversed(self) -> "HunkHeader":
        """Return the header as seen when applying the patch backwards."""
        return HunkHeader(
            src_begin=self.dst_begin,
            src_count=self.dst_count,
            dst_begin=self.src_begin,
            dst_count=self.src_count,
        )

    @property
    def creates_or_removes(self) -> bool:
        """True when either side starts at line 0 (whole new or deleted file)."""
        return self.src_begin == 0 or self.dst_begin == 0


def extract_filename(line: bytes, strip: int, prefix: bytes) -> str | None:
    """Return the file name from a ``prefix`` header line, or ``None``.

    The name ends at the first tab, carriage return or newline. ``strip``
    leading ``/``-separated segments are then removed; a negative ``strip``
    removes every directory component. ``/dev/null`` is returned as is.
    """
    if line[:4] != prefix:
        return None

    name = line[4:]
    end = _NAME_END.search(name)
    if end is not None:
        name = name[: end.start()]
    if os.fsdecode(name) == DEV_NULL:
        return DEV_NULL

    remaining = strip
    while remaining != 0:
        slash = name.find(b"/")
        if slash < 0:
            break
        name = name[slash + 1 :]
        remaining -= 1
    return os.fsdecode(name)


def parse_hunk_header(line: bytes) -> HunkHeader | None:
    """Parse ``@@ -B[,C] +B[,C] @@``; an omitted count stands for one line."""
    match = _HUNK_HEADER.match(line)
    if match is None:
        return None
    return HunkHeader(
        src_begin=int(match.group("src_begin")),
        src_count=_default_count(match.group("src_count")),
        dst_begin=int(match.group("dst_begin")),
        dst_count=_default_count(match.group("dst_count")),
    )


def _default_count(value: bytes | None) -> int:
    return int(value) if value is not None else 1
