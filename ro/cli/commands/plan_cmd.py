from __future__ import annotations

from pathlib import Path

import typer

from ro.cli.commands._helpers import exit_with_code, unwrap_or_exit
from ro.cli.context import build_context
from ro.core.errors import ErrorCode
from ro.output.report import print_plan
from ro.release.model import ReleaseEvent
from ro.release.service import default_services, plan_release
from ro.release.tags import validate_tag


def plan(
    tag: str = typer.Option("v0.0.0", "--tag", help="Tag used to expand placeholders"),
    config: Path | None = typer.Option(None, "--config", help="Path to release.toml"),
) -> None:
    """Show publish tiers and channels without running anything."""
    ctx = build_context(config)
    valid = unwrap_or_exit(validate_tag(tag), ctx.console)

    step = ctx.step_context(ReleaseEvent(tag=valid, commit="HEAD"), dry_run=True)
    result = plan_release(ctx.config, step, default_services(ctx.config, step))
    print_plan(result, ctx.console)

    if result.tiers.is_err():
        exit_with_code(int(ErrorCode.USER_ERROR))
