from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from ro.core.config import DEFAULT_CONFIG_NAME, Config, load_config
from ro.core.errors import ErrorCode
from ro.core.result import Err
from ro.output.console import ConsoleProtocol, RichConsole, Style
from ro.platform.detection import Platform, detect_platform
from ro.release.model import ReleaseEvent
from ro.release.steps import StepContext

WORK_DIR_NAME = ".ro"


@dataclass(frozen=True, slots=True)
class CLIContext:
    source_root: Path
    config: Config
    platform: Platform
    console: ConsoleProtocol

    def step_context(
        self, event: ReleaseEvent, *, work_dir: Path | None = None, dry_run: bool = False
    ) -> StepContext:
        return StepContext(
            source_root=self.source_root,
            work_dir=(work_dir or self.source_root / WORK_DIR_NAME).resolve(),
            event=event,
            console=self.console,
            dry_run=dry_run,
        )


def build_context(config_path: Path | None = None) -> CLIContext:
    console = RichConsole()
    path = (config_path or Path(DEFAULT_CONFIG_NAME)).expanduser()
    try:
        path = path.resolve()
    except OSError as e:
        typer.echo(f"error: invalid --config: {e}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    result = load_config(path)
    if isinstance(result, Err):
        console.error(result.error.message)
        console.print(f"config: {path}", Style.DIM)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    return CLIContext(
        source_root=path.parent,
        config=result.value,
        platform=detect_platform(),
        console=console,
    )
