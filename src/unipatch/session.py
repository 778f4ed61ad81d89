"""Per-file patch sessions: target resolution, backups and stream ownership."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator

from .errors import PatchError
from .streams import DestinationWriter

__all__ = ["DEFAULT_BACKUP_SUFFIX", "DEFAULT_FILE_MODE", "FilePatchSession", "open_session"]

LOGGER = logging.getLogger(__name__)

DEFAULT_BACKUP_SUFFIX = ".orig"
DEFAULT_FILE_MODE = 0o644


@dataclass(slots=True)
class FilePatchSession:
    """Mutable state for one target file while its hunks are applied.

    ``src_line`` is the number of the next source line to be read and
    ``dst_line`` counts the lines hunks have placed in the destination.
    ``line_offset`` is how far hunks found already applied have moved the
    source away from the numbering in the hunk headers, and ``line_ending``
    is the terminator of the last source line a hunk matched.
    """

    target: Path
    source: BinaryIO | None
    destination: DestinationWriter
    backup: Path | None = None
    dry_run: bool = False
    src_line: int = 1
    dst_line: int = 0
    hunk_count: int = 0
    failed_hunks: int = 0
    copy_trailing: bool = False
    last_dst_begin: int | None = None
    line_offset: int = 0
    line_ending: bytes | None = None

    @property
    def is_new_file(self) -> bool:
        return self.source is None

    def discard_backup(self) -> None:
        """Delete the ``.orig`` copy once the file patched cleanly."""
        if self.backup is None:
            return
        try:
            self.backup.unlink(missing_ok=True)
        except OSError as error:
            raise PatchError(
                f"can't remove backup {self.backup}: {error}",
                details={"path": str(self.backup)},
            ) from error
        LOGGER.debug("Removed backup %s", self.backup)
        self.backup = None

    def remove_target(self) -> None:
        """Delete the target file, used when a patch empties it."""
        try:
            self.target.unlink()
        except OSError as error:
            raise PatchError(
                f"can't remove {self.target}: {error}",
                details={"path": str(self.target)},
            ) from error
        LOGGER.debug("Removed emptied file %s", self.target)


@contextmanager
def open_session(
    filename: str,
    *,
    dry_run: bool = False,
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX,
) -> Iterator[FilePatchSession]:
    """Open the source and destination streams for patching ``filename``.

    A real run renames an existing file to ``<name><backup_suffix>`` and reads
    from that backup while the target is rewritten. A dry run reads the
    target directly and sends output to ``os.devnull``. Both streams are
    closed when the block exits, whatever the outcome.
    """
    if not filename:
        raise PatchError("patch header does not name a target file")

    target = Path(filename)
    saved = _stat_or_none(target)
    if saved is not None and stat.S_ISDIR(saved.st_mode):
        raise PatchError(f"{target} is a directory", details={"path": str(target)})

    with ExitStack() as stack:
        backup: Path | None = None
        source: BinaryIO | None = None

        if saved is None:
            if not dry_run:
                _create_parents(target)
        elif dry_run:
            source = stack.enter_context(_open(target, "rb"))
        else:
            backup = target.with_name(target.name + backup_suffix)
            _rename(target, backup)
            source = stack.enter_context(_open(backup, "rb"))

        if dry_run:
            handle = stack.enter_context(_open(Path(os.devnull), "wb"))
        else:
            handle = stack.enter_context(_open(target, "wb"))
            _copy_mode(target, backup)

        session = FilePatchSession(
            target=target,
            source=source,
            destination=DestinationWriter(handle),
            backup=backup,
            dry_run=dry_run,
        )
        yield session
        session.destination.flush()


def _stat_or_none(path: Path) -> os.stat_result | None:
    try:
        return path.stat()
    except (FileNotFoundError, NotADirectoryError):
        return None
    except OSError as error:
        raise PatchError(f"can't stat {path}: {error}", details={"path": str(path)}) from error


def _create_parents(target: Path) -> None:
    parent = target.parent
    if parent == Path("."):
        return
    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise PatchError(
            f"can't create directory {parent}: {error}",
            details={"path": str(parent)},
        ) from error


def _rename(source: Path, destination: Path) -> None:
    try:
        source.replace(destination)
    except OSError as error:
        raise PatchError(
            f"can't rename {source} to {destination}: {error}",
            details={"path": str(source), "backup": str(destination)},
        ) from error
    LOGGER.debug("Backed up %s to %s", source, destination)


def _open(path: Path, mode: str) -> BinaryIO:
    try:
        return path.open(mode)
    except OSError as error:
        raise PatchError(f"can't open {path}: {error}", details={"path": str(path), "mode": mode}) from error


def _copy_mode(target: Path, backup: Path | None) -> None:
    try:
        if backup is None:
            os.chmod(target, DEFAULT_FILE_MODE)
        else:
            shutil.copymode(backup, target)
    except OSError as error:
        raise PatchError(
            f"can't set permissions on {target}: {error}",
            details={"path": str(target)},
        ) from error
