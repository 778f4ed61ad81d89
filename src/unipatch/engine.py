"""Hunk application engine: reconcile a unified diff against files on disk."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Callable

from .config import PatchOptions
from .errors import PatchError
from .headers import (
    DEV_NULL,
    NEW_FILE_PREFIX,
    OLD_FILE_PREFIX,
    HunkHeader,
    extract_filename,
    parse_hunk_header,
)
from .session import FilePatchSession, open_session
from .streams import PatchStream, copy_lines, read_line, same_line, strip_terminator
from .telemetry import emit_event

__all__ = [
    "ExitStatus",
    "FileReport",
    "PatchApplier",
    "PatchReport",
    "SessionOutcome",
    "apply_patch",
]

LOGGER = logging.getLogger(__name__)

MessageSink = Callable[[str], None]

CONTEXT_MARKER = b" "
NO_NEWLINE_MARKER = b"\\"
_BODY_MARKERS = (b" ", b"-", b"+")


class SessionOutcome(str, Enum):
    """Result of patching a single file."""

    CLEAN = "clean"
    DEGRADED = "degraded"


class ExitStatus(IntEnum):
    """Process exit codes of a patch run."""

    SUCCESS = 0
    HUNKS_FAILED = 1
    FATAL = 2


@dataclass(slots=True)
class FileReport:
    """Summary of one file section once its session has been closed."""

    path: Path
    hunks: int
    failed_hunks: int
    backup: Path | None = None
    removed: bool = False

    @property
    def outcome(self) -> SessionOutcome:
        return SessionOutcome.DEGRADED if self.failed_hunks else SessionOutcome.CLEAN


@dataclass(slots=True)
class PatchReport:
    """Aggregate outcome of a patch run."""

    files: list[FileReport] = field(default_factory=list)

    @property
    def failed_files(self) -> list[FileReport]:
        return [report for report in self.files if report.outcome is SessionOutcome.DEGRADED]

    @property
    def exit_code(self) -> ExitStatus:
        return ExitStatus.HUNKS_FAILED if self.failed_files else ExitStatus.SUCCESS


@dataclass(slots=True)
class _HunkProgress:
    """Patch lines of the current hunk consumed so far, per side."""

    addition: bytes
    src_lines: int = 0
    dst_lines: int = 0

    def add(self, marker: bytes) -> None:
        if marker != self.addition:
            self.src_lines += 1
        if marker == CONTEXT_MARKER or marker == self.addition:
            self.dst_lines += 1

    def complete(self, header: HunkHeader) -> bool:
        return self.src_lines >= header.src_count and self.dst_lines >= header.dst_count


def _stdout(message: str) -> None:
    sys.stdout.write(message + "\n")


def _stderr(message: str) -> None:
    sys.stderr.write(message + "\n")


def _normalise_body_line(line: bytes) -> bytes:
    """Turn a whitespace-damaged empty line into an empty context line."""
    if not strip_terminator(line):
        return CONTEXT_MARKER + line
    return line


def _keep_source_terminator(source_line: bytes, payload: bytes) -> bytes:
    """Write a context line as the source has it, unless the source line is unterminated."""
    if strip_terminator(source_line) != source_line:
        return source_line
    return payload


def _use_line_ending(payload: bytes, line_ending: bytes | None) -> bytes:
    """Give an added line the terminator the target file uses."""
    text = strip_terminator(payload)
    if line_ending is None or text == payload:
        return payload
    return text + line_ending


class PatchApplier:
    """Apply every file section of a unified diff, one file at a time.

    Progress lines go to ``echo`` and failure diagnostics to ``echo_err``.
    Hunk mismatches are counted per file; anything that leaves the patch and
    the files out of step raises :class:`PatchError` and ends the run.
    """

    def __init__(
        self,
        options: PatchOptions | None = None,
        *,
        echo: MessageSink | None = None,
        echo_err: MessageSink | None = None,
    ) -> None:
        self.options = options or PatchOptions()
        self._echo = echo or _stdout
        self._echo_err = echo_err or _stderr

    def apply(self, stream: PatchStream) -> PatchReport:
        """Consume ``stream`` to the end and patch every file it names."""
        report = PatchReport()
        while True:
            filename = self._next_target(stream)
            if filename is None:
                break
            report.files.append(self._patch_file(stream, filename))

        emit_event(
            "run_completed",
            files=len(report.files),
            failed_files=[entry.path for entry in report.failed_files],
            exit_code=int(report.exit_code),
        )
        return report

    def _next_target(self, stream: PatchStream) -> str | None:
        """Skip to the next ``---``/``+++`` header pair and return the target name."""
        strip = self.options.strip
        while True:
            line = stream.next_line()
            if line is None:
                return None
            old_name = extract_filename(line, strip, OLD_FILE_PREFIX)
            if old_name is not None:
                break

        line = stream.next_line()
        if line is None:
            return None
        new_name = extract_filename(line, strip, NEW_FILE_PREFIX)
        if new_name is None:
            raise PatchError(
                "invalid patch: '---' header is not followed by a '+++' header",
                details={"line": stream.line_number, "text": line},
            )
        if new_name == DEV_NULL:
            if old_name == DEV_NULL:
                raise PatchError(
                    "invalid patch: both file headers name /dev/null",
                    details={"line": stream.line_number},
                )
            return old_name
        return new_name

    def _patch_file(self, stream: PatchStream, filename: str) -> FileReport:
        options = self.options
        with open_session(filename, dry_run=options.dry_run, backup_suffix=options.backup_suffix) as session:
            self._echo(f"patching file {filename}")
            emit_event(
                "file_started",
                path=session.target,
                backup=session.backup,
                new_file=session.is_new_file,
                dry_run=session.dry_run,
            )
            self._apply_hunks(stream, session)
            if session.copy_trailing or session.hunk_count == 0:
                copy_lines(session.source, session.destination)
        return self._finish(session)

    def _apply_hunks(self, stream: PatchStream, session: FilePatchSession) -> None:
        while True:
            line = stream.next_line()
            if line is None:
                return
            header = parse_hunk_header(line)
            if header is None:
                stream.push_back(line)
                return
            if self.options.reverse:
                header = header.reversed()
            session.hunk_count += 1
            session.last_dst_begin = header.dst_begin
            if not header.creates_or_removes:
                self._flush_context(session, header)
            if self.options.forward_only:
                self._apply_hunk_forward_only(stream, session, header)
            else:
                self._apply_hunk(stream, session, header)

    def _flush_context(self, session: FilePatchSession, header: HunkHeader) -> None:
        """Copy the unchanged lines between the previous hunk and this one."""
        begin = header.src_begin + session.line_offset
        gap = begin - session.src_line
        if gap < 0:
            raise PatchError(
                f"hunk #{session.hunk_count} starts at line {begin}, "
                f"before line {session.src_line} already reached in {session.target}",
                details={"path": str(session.target), "hunk": session.hunk_count},
            )
        if copy_lines(session.source, session.destination, gap):
            raise PatchError(
                f"bad source file {session.target}: shorter than hunk #{session.hunk_count} expects",
                details={"path": str(session.target), "hunk": session.hunk_count, "line": begin},
            )
        session.src_line += gap
        session.dst_line += gap
        session.copy_trailing = True

    def _apply_hunk_forward_only(
        self, stream: PatchStream, session: FilePatchSession, header: HunkHeader
    ) -> None:
        """Apply one hunk under ``-N``, passing it through when it is already in place.

        The hunk is already applied when the source does not hold its old side
        but does hold its new side. Those lines are copied unchanged and the
        line offset moves so later hunks are looked up where they now are.
        Anything else goes through the regular body loop, which skips lines
        that do not match.
        """
        addition = self.options.addition_marker
        body = [_normalise_body_line(line) for line in self._collect_hunk(stream, header)]
        old_side = [line for line in body if line[:1] in _BODY_MARKERS and line[:1] != addition]
        new_side = [line for line in body if line[:1] in (CONTEXT_MARKER, addition)]

        if not self._source_holds(session, old_side) and self._source_holds(session, new_side):
            LOGGER.debug("Hunk #%d of %s is already applied", session.hunk_count, session.target)
            copy_lines(session.source, session.destination, len(new_side))
            session.src_line += len(new_side)
            session.dst_line += len(new_side)
            session.line_offset += len(new_side) - len(old_side)
            return
        self._apply_hunk(PatchStream.from_bytes(b"".join(body)), session, header)

    def _collect_hunk(self, stream: PatchStream, header: HunkHeader) -> list[bytes]:
        """Read a hunk body up to its declared counts, markers included."""
        progress = _HunkProgress(addition=self.options.addition_marker)
        lines: list[bytes] = []
        while True:
            line = stream.next_line()
            if line is None:
                return lines
            marker = _normalise_body_line(line)[:1]
            if marker == NO_NEWLINE_MARKER:
                lines.append(line)
                continue
            if marker not in _BODY_MARKERS or progress.complete(header):
                stream.push_back(line)
                return lines
            progress.add(marker)
            lines.append(line)

    def _source_holds(self, session: FilePatchSession, lines: list[bytes]) -> bool:
        """Check the next source lines against ``lines`` without consuming them."""
        source = session.source
        if source is None:
            return not lines
        position = source.tell()
        try:
            for expected in lines:
                actual = read_line(source)
                if actual is None or not same_line(actual, expected[1:]):
                    return False
            return True
        finally:
            source.seek(position)

    def _apply_hunk(self, stream: PatchStream, session: FilePatchSession, header: HunkHeader) -> None:
        addition = self.options.addition_marker
        hunk_start = session.src_line
        src_end = hunk_start + header.src_count
        dst_end = session.dst_line + header.dst_count
        progress = _HunkProgress(addition=addition)
        last_written = False

        while True:
            line = stream.next_line()
            if line is None:
                return
            body = _normalise_body_line(line)
            marker = body[:1]

            if marker == NO_NEWLINE_MARKER:
                if last_written:
                    session.destination.drop_line_terminator()
                last_written = False
                continue
            if marker not in _BODY_MARKERS:
                stream.push_back(line)
                return
            last_written = False

            if marker != addition:
                if session.src_line == src_end:
                    stream.push_back(line)
                    return
                source_line = self._match_source_line(session, body)
                if source_line is None:
                    progress.add(marker)
                    if self.options.forward_only:
                        LOGGER.debug(
                            "Skipping already applied line in hunk #%d of %s",
                            session.hunk_count,
                            session.target,
                        )
                        continue
                    self._fail_hunk(session, hunk_start)
                    self._drain_hunk(stream, header, progress)
                    return
                if marker != CONTEXT_MARKER:
                    progress.add(marker)
                    continue
                payload = _keep_source_terminator(source_line, body[1:])
            else:
                payload = _use_line_ending(body[1:], session.line_ending)

            if session.dst_line == dst_end:
                stream.push_back(line)
                return
            progress.add(marker)
            session.destination.write(payload)
            session.dst_line += 1
            last_written = True

    def _match_source_line(self, session: FilePatchSession, body: bytes) -> bytes | None:
        """Read the next source line; return it when it equals the patch line's payload."""
        if session.source is None:
            return None
        source_line = read_line(session.source)
        if source_line is None:
            return None
        session.src_line += 1
        if not same_line(source_line, body[1:]):
            return None
        if strip_terminator(source_line) != source_line:
            session.line_ending = source_line[len(strip_terminator(source_line)):]
        return source_line

    def _fail_hunk(self, session: FilePatchSession, hunk_start: int) -> None:
        session.failed_hunks += 1
        self._echo_err(f"hunk #{session.hunk_count} FAILED at {hunk_start}")
        emit_event(
            "hunk_failed",
            path=session.target,
            hunk=session.hunk_count,
            line=hunk_start,
        )

    def _drain_hunk(self, stream: PatchStream, header: HunkHeader, progress: _HunkProgress) -> None:
        """Discard what is left of a failed hunk's body."""
        while not progress.complete(header):
            line = stream.next_line()
            if line is None:
                return
            marker = _normalise_body_line(line)[:1]
            if marker == NO_NEWLINE_MARKER:
                continue
            if marker not in _BODY_MARKERS:
                stream.push_back(line)
                return
            progress.add(marker)

    def _finish(self, session: FilePatchSession) -> FileReport:
        """Settle backups and empty results once the session's streams are closed."""
        report = FileReport(
            path=session.target,
            hunks=session.hunk_count,
            failed_hunks=session.failed_hunks,
        )
        if session.failed_hunks:
            report.backup = session.backup
            self._echo_err(f"{session.failed_hunks} out of {session.hunk_count} hunks FAILED")
        else:
            session.discard_backup()
            emptied = session.dst_line == 0 or session.last_dst_begin == 0
            if not session.dry_run and emptied and session.destination.bytes_written == 0:
                session.remove_target()
                report.removed = True

        emit_event(
            "file_completed",
            path=report.path,
            outcome=report.outcome.value,
            hunks=report.hunks,
            failed_hunks=report.failed_hunks,
            backup=report.backup,
            removed=report.removed,
        )
        return report


def apply_patch(
    patch: bytes | str,
    *,
    options: PatchOptions | None = None,
    echo: MessageSink | None = None,
    echo_err: MessageSink | None = None,
) -> PatchReport:
    """Apply the unified diff text ``patch`` relative to the working directory."""
    data = patch.encode("utf-8") if isinstance(patch, str) else patch
    applier = PatchApplier(options, echo=echo, echo_err=echo_err)
    return applier.apply(PatchStream.from_bytes(data))
