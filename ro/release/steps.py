"""Command steps shared by every channel.

A step echoes the command it runs (dimmed), honours ``--dry-run`` and
returns the process result. Channels never call the process layer directly,
which keeps dry runs and tests going through one seam.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from ro.core.result import Ok, Result
from ro.output.console import ConsoleProtocol, Style
from ro.platform.process import ProcessError, which
from ro.platform.process import run as run_process
from ro.release.model import PlatformTarget, ReleaseEvent


@dataclass(frozen=True, slots=True)
class StepContext:
    """Read-only release metadata handed to every channel."""

    source_root: Path
    work_dir: Path  # scratch space: clones, packaged outputs
    event: ReleaseEvent
    console: ConsoleProtocol
    dry_run: bool = False

    def with_console(self, console: ConsoleProtocol) -> StepContext:
        return replace(self, console=console)

    def resolve(self, path: str) -> Path:
        return (self.source_root / path).resolve()


def placeholders(
    event: ReleaseEvent, target: PlatformTarget | None = None
) -> dict[str, str]:
    values = {"tag": event.tag, "version": event.version, "commit": event.commit}
    if target is not None:
        values["arch"] = target.arch
        values["os"] = target.os
    return values


def expand(cmd: Iterable[str], values: Mapping[str, str]) -> list[str]:
    """Substitute ``{name}`` placeholders.

    Unknown braces are left untouched so arguments such as jq filters pass
    through unchanged.
    """
    out: list[str] = []
    for arg in cmd:
        for key, value in values.items():
            arg = arg.replace("{" + key + "}", value)
        out.append(arg)
    return out


def tool_available(ctx: StepContext, tool: str) -> bool:
    if ctx.dry_run:
        return True
    return which(tool) is not None


def run_step(
    ctx: StepContext,
    cmd: list[str],
    *,
    cwd: Path,
    timeout: float | None = None,
    env: dict[str, str] | None = None,
) -> Result[str, ProcessError]:
    ctx.console.print(" ".join(cmd), Style.DIM)
    if ctx.dry_run:
        return Ok("")
    return run_process(cmd, cwd=cwd, env=env, timeout=timeout)
