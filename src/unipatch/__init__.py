"""Apply unified diffs to files in place, without a version control system."""

from .config import PatchOptions, load_options
from .engine import ExitStatus, FileReport, PatchApplier, PatchReport, SessionOutcome, apply_patch
from .errors import ConfigError, PatchError

__all__ = [
    "ConfigError",
    "ExitStatus",
    "FileReport",
    "PatchApplier",
    "PatchError",
    "PatchOptions",
    "PatchReport",
    "SessionOutcome",
    "apply_patch",
    "load_options",
]
