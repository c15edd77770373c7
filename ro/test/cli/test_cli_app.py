from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from ro import __version__
from ro.cli.app import app
from ro.core.errors import ErrorCode

runner = CliRunner()

CONFIG = """
[project]
name = "graphstore"
repository = "o/graphstore"

[[packages]]
name = "graphstore-server"
path = "server"
depends_on = ["graphstore"]

[[packages]]
name = "graphstore"
path = "lib"

[archive]
"""


def _config(tmp_path: Path, text: str = CONFIG) -> Path:
    path = tmp_path / "release.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_no_args_shows_help() -> None:
    result = runner.invoke(app, [])
    assert "run" in result.output
    assert "plan" in result.output


@pytest.mark.parametrize(
    ("tag", "code", "word"),
    [("v1.2.3", 0, "stable"), ("1.2.3", 0, "stable"), ("v1.2.3-rc.1", 1, "pre-release")],
)
def test_stable(tag: str, code: int, word: str) -> None:
    result = runner.invoke(app, ["stable", tag])
    assert result.exit_code == code
    assert result.output.strip() == word


def test_plan_prints_tiers(tmp_path: Path) -> None:
    result = runner.invoke(app, ["plan", "--config", str(_config(tmp_path))])
    assert result.exit_code == 0, result.output
    assert "tier 0: graphstore" in result.output
    assert "tier 1: graphstore-server" in result.output
    assert "archive" in result.output


def test_plan_reports_cycle(tmp_path: Path) -> None:
    text = CONFIG.replace('path = "lib"', 'path = "lib"\ndepends_on = ["graphstore-server"]')
    result = runner.invoke(app, ["plan", "--config", str(_config(tmp_path, text))])
    assert result.exit_code == int(ErrorCode.USER_ERROR)
    assert "dependency cycle" in result.output


def test_invalid_config(tmp_path: Path) -> None:
    result = runner.invoke(app, ["plan", "--config", str(_config(tmp_path, "[project]\n"))])
    assert result.exit_code == int(ErrorCode.USER_ERROR)


def test_run_requires_a_tag(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GITHUB_EVENT_PATH", raising=False)
    result = runner.invoke(app, ["run", "--config", str(_config(tmp_path))])
    assert result.exit_code == int(ErrorCode.USER_ERROR)
    assert "no release tag" in result.output


def test_run_dry_run(tmp_path: Path) -> None:
    config = _config(tmp_path)
    (tmp_path / "README.md").write_text("graphstore\n")

    result = runner.invoke(
        app,
        [
            "run",
            "--config",
            str(config),
            "--tag",
            "v1.4.0",
            "--commit",
            "0123456789abcdef",
            "--dry-run",
            "--only",
            "archive",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "release v1.4.0 published" in result.output
    assert not (tmp_path / ".ro").exists()


def test_run_unknown_channel(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        [
            "run",
            "--config",
            str(_config(tmp_path)),
            "--tag",
            "v1.4.0",
            "--commit",
            "abc",
            "--only",
            "nope",
        ],
    )
    assert result.exit_code == int(ErrorCode.USER_ERROR)
    assert "no channel matches" in result.output


def test_tap_without_tap_table(tmp_path: Path) -> None:
    result = runner.invoke(app, ["tap", "--config", str(_config(tmp_path)), "--tag", "v1.4.0"])
    assert result.exit_code == int(ErrorCode.USER_ERROR)
    assert "no [tap] table" in result.output


def test_tap_missing_archive(tmp_path: Path) -> None:
    text = CONFIG + '\n[tap]\nrepository = "o/homebrew-graphstore"\nformula = "Formula/g.rb"\n'
    config = _config(tmp_path, text)
    result = runner.invoke(app, ["tap", "--config", str(config), "--tag", "v1.4.0"])
    assert result.exit_code == int(ErrorCode.IO_ERROR)
    assert "archive not found" in result.output
