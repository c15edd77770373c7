from __future__ import annotations

import typer

from ro import __version__
from ro.cli.commands.plan_cmd import plan
from ro.cli.commands.run_cmd import run
from ro.cli.commands.stable_cmd import stable
from ro.cli.commands.tap_cmd import tap

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(plan)
app.command()(run)
app.command()(tap)
app.command()(stable)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_print_version,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Publish a tagged release to every configured distribution channel."""


def main() -> None:
    app()
