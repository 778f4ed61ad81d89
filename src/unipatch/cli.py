"""Command line entry point: apply a unified diff to files in place."""

from __future__ import annotations

import logging
import sys
from contextlib import ExitStack
from functools import partial
from pathlib import Path
from typing import BinaryIO, Optional

import typer

from .config import PatchOptions, load_options
from .engine import ExitStatus, PatchApplier, PatchReport
from .errors import PatchError
from .streams import PatchStream
from .telemetry import setup_logging

APP_HELP = "Apply a unified diff to the files it names."
STDIN_NAME = "-"

app = typer.Typer(help=APP_HELP, add_completion=False)


def _open_patch(stack: ExitStack, source: str) -> BinaryIO:
    """Open the patch input, ``-`` meaning standard input."""
    if source == STDIN_NAME:
        return sys.stdin.buffer
    path = Path(source)
    try:
        return stack.enter_context(path.open("rb"))
    except OSError as error:
        raise PatchError(f"can't open {path}: {error}", details={"path": str(path)}) from error


def _resolve_options(
    config: Optional[Path],
    *,
    strip: Optional[int],
    reverse: bool,
    forward: bool,
    dry_run: bool,
) -> PatchOptions:
    """Start from the config file (if any) and let flags that were given win."""
    base = load_options(config) if config is not None else PatchOptions()
    return base.merged(
        strip=strip,
        reverse=True if reverse else None,
        forward_only=True if forward else None,
        dry_run=True if dry_run else None,
    )


def _report_failures(report: PatchReport) -> None:
    for entry in report.failed_files:
        if entry.backup is not None:
            typer.echo(f"original of {entry.path} kept in {entry.backup}", err=True)


@app.command()
def main(
    strip: Optional[int] = typer.Option(
        None,
        "--strip",
        "-p",
        help="Leading path components to strip from file names (negative strips every directory).",
    ),
    input_path: str = typer.Option(
        STDIN_NAME,
        "--input",
        "-i",
        help="Patch file to read, '-' for standard input.",
    ),
    reverse: bool = typer.Option(False, "--reverse", "-R", help="Apply the patch backwards."),
    forward: bool = typer.Option(
        False,
        "--forward",
        "-N",
        help="Skip hunks that look already applied instead of failing them.",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Check the patch without changing any file."),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML file whose 'patch' section supplies default options.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug details and telemetry to stderr."),
    # Accepted for command line compatibility with GNU patch; no effect.
    force: bool = typer.Option(False, "--force", "-f", hidden=True),
    remove_empty_files: bool = typer.Option(False, "--remove-empty-files", "-E", hidden=True),
    get: Optional[int] = typer.Option(None, "--get", "-g", hidden=True),
    backup_if_mismatch: bool = typer.Option(False, "--backup-if-mismatch", hidden=True),
    no_backup_if_mismatch: bool = typer.Option(False, "--no-backup-if-mismatch", hidden=True),
) -> None:
    """Apply a unified diff read from INPUT to the files it names."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)
    echo_err = partial(typer.echo, err=True)

    try:
        options = _resolve_options(config, strip=strip, reverse=reverse, forward=forward, dry_run=dry_run)
        with ExitStack() as stack:
            handle = _open_patch(stack, input_path)
            applier = PatchApplier(options, echo=typer.echo, echo_err=echo_err)
            report = applier.apply(PatchStream(handle))
    except PatchError as error:
        echo_err(f"unipatch: {error}")
        raise typer.Exit(code=int(ExitStatus.FATAL)) from error

    _report_failures(report)
    raise typer.Exit(code=int(report.exit_code))


def run() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    app()
