from __future__ import annotations

from pathlib import Path

import typer

from ro.cli.commands._helpers import exit_with_code, unwrap_or_exit
from ro.cli.context import build_context
from ro.core.errors import ErrorCode
from ro.core.result import Err
from ro.output.errors import channel_error_exit_code
from ro.output.report import print_summary
from ro.release.event import resolve_event
from ro.release.service import default_services, run_release


def run(
    tag: str | None = typer.Option(None, "--tag", help="Release tag (default: from --event)"),
    commit: str | None = typer.Option(
        None, "--commit", help="Released commit (default: $GITHUB_SHA)"
    ),
    event: Path | None = typer.Option(
        None, "--event", help="GitHub event payload (default: $GITHUB_EVENT_PATH)"
    ),
    config: Path | None = typer.Option(None, "--config", help="Path to release.toml"),
    work_dir: Path | None = typer.Option(
        None, "--work-dir", help="Scratch directory (default: <source>/.ro)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print commands without running them"),
    only: list[str] = typer.Option(
        [], "--only", help="Run only matching channels (repeatable, shell patterns)"
    ),
    skip_package: list[str] = typer.Option(
        [], "--skip-package", help="Registry package already published (repeatable)"
    ),
    workers: int | None = typer.Option(
        None, "--workers", min=1, help="Channels run at once (default: all)"
    ),
) -> None:
    """Build and publish every configured channel for a release tag."""
    ctx = build_context(config)

    resolved = unwrap_or_exit(
        resolve_event(tag=tag, commit=commit, event_path=event), ctx.console
    )
    step = ctx.step_context(resolved, work_dir=work_dir, dry_run=dry_run)
    services = default_services(
        ctx.config, step, platform=ctx.platform, skip_packages=frozenset(skip_package)
    )

    result = run_release(ctx.config, step, services, only=only, workers=workers)
    code = ErrorCode.USER_ERROR
    if isinstance(result, Err):
        code = ErrorCode(channel_error_exit_code(result.error))
    report = unwrap_or_exit(result, ctx.console, code)
    print_summary(report, ctx.console)
    exit_with_code(report.exit_code)
