from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from unipatch.config import PatchOptions, load_options
from unipatch.errors import ConfigError
from unipatch.headers import STRIP_ALL


def test_defaults_strip_every_directory() -> None:
    options = PatchOptions()
    assert options.strip == STRIP_ALL
    assert options.backup_suffix == ".orig"
    assert options.addition_marker == b"+"
    assert not (options.reverse or options.forward_only or options.dry_run)


def test_reverse_flips_addition_marker() -> None:
    assert PatchOptions(reverse=True).addition_marker == b"-"


def test_merged_ignores_unset_overrides() -> None:
    base = PatchOptions(strip=2, dry_run=True)
    merged = base.merged(strip=None, reverse=True, dry_run=None)
    assert merged.strip == 2
    assert merged.dry_run is True
    assert merged.reverse is True
    assert base.reverse is False


def test_load_options_reads_patch_section(tmp_path: Path) -> None:
    config_path = tmp_path / "unipatch.yaml"
    config_path.write_text(
        textwrap.dedent(
            """
            patch:
              strip: 1
              forward_only: true
              backup_suffix: .bak
            """
        ).lstrip(),
        encoding="utf-8",
    )

    options = load_options(config_path)

    assert options == PatchOptions(strip=1, forward_only=True, backup_suffix=".bak")


def test_load_options_empty_file_gives_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "empty.yaml"
    config_path.write_text("", encoding="utf-8")
    assert load_options(config_path) == PatchOptions()


def test_load_options_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_options(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("patch: [1, 2\n", "Failed to parse"),
        ("- just\n- a list\n", "mapping at the top level"),
        ("patch: 3\n", "must be a mapping"),
        ("patch:\n  unknown: 1\n", "Invalid configuration"),
        ("patch:\n  backup_suffix: ''\n", "Invalid configuration"),
        ("patch:\n  backup_suffix: ../x\n", "Invalid configuration"),
    ],
)
def test_load_options_rejects_bad_content(tmp_path: Path, content: str, message: str) -> None:
    config_path = tmp_path / "bad.yaml"
    config_path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_options(config_path)
