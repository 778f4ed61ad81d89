"""Run options and the optional YAML file that supplies their defaults."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .headers import STRIP_ALL
from .session import DEFAULT_BACKUP_SUFFIX

__all__ = ["CONFIG_SECTION", "PatchOptions", "load_options"]

CONFIG_SECTION = "patch"


class PatchOptions(BaseModel):
    """Settings that stay fixed for a whole patch run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    strip: int = STRIP_ALL
    reverse: bool = False
    forward_only: bool = False
    dry_run: bool = False
    backup_suffix: str = Field(default=DEFAULT_BACKUP_SUFFIX, min_length=1)

    @field_validator("backup_suffix")
    @classmethod
    def _suffix_is_plain(cls, value: str) -> str:
        if "/" in value or "\\" in value:
            raise ValueError("backup_suffix may not contain path separators")
        return value

    @property
    def addition_marker(self) -> bytes:
        """Marker of lines that exist only in the destination for this run."""
        return b"-" if self.reverse else b"+"

    def merged(self, **overrides: Any) -> "PatchOptions":
        """Return a copy with every override that is not ``None`` applied."""
        values = self.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return PatchOptions.model_validate(values)
        except ValidationError as error:
            raise ConfigError(f"Invalid options: {error}") from error


def load_options(config_path: Path | str) -> PatchOptions:
    """Load ``PatchOptions`` from the ``patch`` mapping of a YAML file."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}", details={"path": str(path)})

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}", details={"path": str(path)}) from error
    except OSError as error:
        raise ConfigError(f"Failed to read config: {error}", details={"path": str(path)}) from error

    if not isinstance(data, Mapping):
        raise ConfigError("Configuration must be a mapping at the top level.", details={"path": str(path)})

    section = data.get(CONFIG_SECTION) or {}
    if not isinstance(section, Mapping):
        raise ConfigError(
            f"The '{CONFIG_SECTION}' section must be a mapping.",
            details={"path": str(path)},
        )

    try:
        return PatchOptions.model_validate(dict(section))
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {path}: {error}", details={"path": str(path)}) from error
