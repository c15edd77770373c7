from __future__ import annotations

import typer

from ro.core.errors import ErrorCode
from ro.release.tags import is_stable_release


def stable(
    tag: str = typer.Argument(..., help="Release tag, e.g. v1.2.3 or v1.2.3-rc.1"),
) -> None:
    """Exit 0 if TAG is a stable release, 1 if it is a pre-release."""
    if is_stable_release(tag):
        typer.echo("stable")
        return
    typer.echo("pre-release")
    raise typer.Exit(code=int(ErrorCode.USER_ERROR))
