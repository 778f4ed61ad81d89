from __future__ import annotations

import textwrap
from pathlib import Path

from typer.testing import CliRunner

from unipatch.cli import app

PATCH = (
    "--- a/docs/readme.txt\n"
    "+++ b/docs/readme.txt\n"
    "@@ -1,2 +1,2 @@\n"
    " title\n"
    "-draft\n"
    "+final\n"
)


def _write_fixture(workdir: Path, body: bytes = b"title\ndraft\n") -> tuple[Path, Path]:
    target = workdir / "docs" / "readme.txt"
    target.parent.mkdir()
    target.write_bytes(body)
    patch_path = workdir / "change.diff"
    patch_path.write_text(PATCH, encoding="utf-8")
    return target, patch_path


def test_cli_applies_patch_file(workdir: Path) -> None:
    target, patch_path = _write_fixture(workdir)

    result = CliRunner().invoke(app, ["-p", "1", "-i", str(patch_path)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "patching file docs/readme.txt" in result.output
    assert target.read_bytes() == b"title\nfinal\n"


def test_cli_reads_standard_input(workdir: Path) -> None:
    target, _ = _write_fixture(workdir)

    result = CliRunner().invoke(app, ["--strip", "1"], input=PATCH, catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert target.read_bytes() == b"title\nfinal\n"


def test_cli_reverse_and_dry_run(workdir: Path) -> None:
    target, patch_path = _write_fixture(workdir, body=b"title\nfinal\n")
    runner = CliRunner()

    dry = runner.invoke(app, ["-p1", "-R", "--dry-run", "-i", str(patch_path)], catch_exceptions=False)
    assert dry.exit_code == 0, dry.output
    assert target.read_bytes() == b"title\nfinal\n"

    real = runner.invoke(app, ["-p1", "-R", "-i", str(patch_path)], catch_exceptions=False)
    assert real.exit_code == 0, real.output
    assert target.read_bytes() == b"title\ndraft\n"


def test_cli_exit_code_one_when_hunk_fails(workdir: Path) -> None:
    target, patch_path = _write_fixture(workdir, body=b"title\nsomething else\n")

    result = CliRunner().invoke(app, ["-p", "1", "-i", str(patch_path)], catch_exceptions=False)

    assert result.exit_code == 1
    assert "hunk #1 FAILED at 1" in result.output
    assert "1 out of 1 hunks FAILED" in result.output
    assert (workdir / "docs" / "readme.txt.orig").read_bytes() == b"title\nsomething else\n"


def test_cli_forward_only_skips_applied_patch(workdir: Path) -> None:
    target, patch_path = _write_fixture(workdir, body=b"title\nfinal\n")

    result = CliRunner().invoke(app, ["-p", "1", "-N", "-i", str(patch_path)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert target.read_bytes() == b"title\nfinal\n"


def test_cli_exit_code_two_on_malformed_patch(workdir: Path) -> None:
    patch_path = workdir / "broken.diff"
    patch_path.write_text("--- a/x\nnot a header\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["-i", str(patch_path)], catch_exceptions=False)

    assert result.exit_code == 2
    assert "unipatch: invalid patch" in result.output


def test_cli_exit_code_two_on_missing_input(workdir: Path) -> None:
    result = CliRunner().invoke(app, ["-i", str(workdir / "nope.diff")], catch_exceptions=False)

    assert result.exit_code == 2
    assert "can't open" in result.output


def test_cli_config_supplies_defaults(workdir: Path) -> None:
    target, patch_path = _write_fixture(workdir)
    config_path = workdir / "unipatch.yaml"
    config_path.write_text(
        textwrap.dedent(
            """
            patch:
              strip: 1
              backup_suffix: .bak
            """
        ).lstrip(),
        encoding="utf-8",
    )

    result = CliRunner().invoke(
        app,
        ["--config", str(config_path), "-i", str(patch_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert target.read_bytes() == b"title\nfinal\n"


def test_cli_flag_overrides_config(workdir: Path) -> None:
    _write_fixture(workdir)
    config_path = workdir / "unipatch.yaml"
    config_path.write_text("patch:\n  strip: 0\n", encoding="utf-8")

    result = CliRunner().invoke(
        app,
        ["--config", str(config_path), "-p", "1", "--dry-run", "-i", str(workdir / "change.diff")],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "patching file docs/readme.txt" in result.output


def test_cli_bad_config_is_fatal(workdir: Path) -> None:
    _, patch_path = _write_fixture(workdir)
    config_path = workdir / "unipatch.yaml"
    config_path.write_text("patch:\n  strip: many\n", encoding="utf-8")

    result = CliRunner().invoke(
        app,
        ["--config", str(config_path), "-i", str(patch_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 2
    assert "Invalid configuration" in result.output


def test_cli_accepts_ignored_compatibility_flags(workdir: Path) -> None:
    target, patch_path = _write_fixture(workdir)

    result = CliRunner().invoke(
        app,
        ["-p1", "-f", "-E", "-g", "0", "--no-backup-if-mismatch", "-i", str(patch_path)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert target.read_bytes() == b"title\nfinal\n"
