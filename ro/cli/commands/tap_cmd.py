from __future__ import annotations

from pathlib import Path

import typer

from ro.cli.commands._helpers import exit_with_code, unwrap_or_exit
from ro.cli.context import build_context
from ro.core.errors import ErrorCode
from ro.output.console import Style
from ro.release.builder import sha256_file
from ro.release.formula import TapFormulaUpdater
from ro.release.host import download_url
from ro.release.model import ReleaseEvent
from ro.release.tags import archive_name, validate_tag


def tap(
    tag: str = typer.Option(..., "--tag", help="Released tag"),
    archive: Path | None = typer.Option(
        None, "--archive", help="Local .tar.gz source archive (default: <work-dir>/dist/...)"
    ),
    url: str | None = typer.Option(
        None, "--url", help="Archive download URL (default: the release asset URL)"
    ),
    config: Path | None = typer.Option(None, "--config", help="Path to release.toml"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print commands without running them"),
) -> None:
    """Re-run the tap formula update for an already published archive."""
    ctx = build_context(config)
    tap_config = ctx.config.tap
    if tap_config is None:
        ctx.console.error("no [tap] table in release.toml")
        exit_with_code(int(ErrorCode.USER_ERROR))

    valid = unwrap_or_exit(validate_tag(tag), ctx.console)
    # The commit is not used by the tap update.
    step = ctx.step_context(ReleaseEvent(tag=valid, commit="HEAD"), dry_run=dry_run)

    name = archive_name(ctx.config.project.name, valid, "tar.gz")
    path = archive or step.work_dir / "dist" / name
    if not path.is_file():
        ctx.console.error(f"archive not found: {path}")
        ctx.console.print("hint: pass --archive, or run: ro run --only archive", Style.DIM)
        exit_with_code(int(ErrorCode.IO_ERROR))

    checksum = sha256_file(path)
    source_url = url or download_url(ctx.config.project.repository, valid, path.name)
    ctx.console.print(f"sha256 {checksum}  {path.name}", Style.DIM)

    updater = TapFormulaUpdater(step, repository=tap_config.repository, formula=tap_config.formula)
    result = unwrap_or_exit(
        updater.publish(valid, source_url, checksum), ctx.console, ErrorCode.IO_ERROR
    )
    if result.skipped_reason:
        ctx.console.warning(f"skipped: {result.skipped_reason}")
    elif result.changed:
        ctx.console.success(f"{tap_config.formula} upgraded to {valid}")
    else:
        ctx.console.success(f"{tap_config.formula} already at {valid}")
