"""Error types raised while applying patches."""

from __future__ import annotations

from typing import Any, Mapping


class PatchError(RuntimeError):
    """Raised when a patch cannot be applied at all and the run must stop."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ConfigError(PatchError):
    """Raised when a configuration file is missing, unreadable or invalid."""


__all__ = ["ConfigError", "PatchError"]
