"""Clone / commit / push helpers for the repositories a release writes to
(the package-manager tap and the documentation site)."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from ro.core.result import Err, Ok, Result
from ro.output.console import Style
from ro.platform.process import ProcessError
from ro.release.errors import ReleaseError
from ro.release.steps import StepContext, run_step
from ro.release.timeouts import (
    GH_CLONE_TIMEOUT_SECONDS,
    GIT_NETWORK_TIMEOUT_SECONDS,
    GIT_TIMEOUT_SECONDS,
)


@dataclass(frozen=True, slots=True)
class TreeState:
    dirty: bool
    ahead: bool


def _git(
    ctx: StepContext, cmd: list[str], *, repo_root: Path, network: bool = False
) -> Result[str, ProcessError]:
    timeout = GIT_NETWORK_TIMEOUT_SECONDS if network else GIT_TIMEOUT_SECONDS
    return run_step(ctx, cmd, cwd=repo_root, timeout=timeout)


def clone_repo(ctx: StepContext, *, repo: str, dest: Path) -> Result[Path, ReleaseError]:
    """Shallow-clone ``repo`` into ``dest``.

    A clone left by an earlier run is removed first; it may hold a commit
    whose push failed.
    """
    if not ctx.dry_run:
        if dest.exists():
            ctx.console.print(f"remove previous clone {dest}", Style.DIM)
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
    result = run_step(
        ctx,
        ["gh", "repo", "clone", repo, str(dest), "--", "--depth", "1"],
        cwd=ctx.work_dir if ctx.work_dir.is_dir() else ctx.source_root,
        timeout=GH_CLONE_TIMEOUT_SECONDS,
    )
    if isinstance(result, Err):
        e = result.error
        return Err(
            ReleaseError(
                kind="gh_missing" if e.not_found else "git_failed",
                message=f"failed to clone {repo}",
                hint=e.stderr.strip() or None,
            )
        )
    return Ok(dest)


def parse_status(output: str) -> TreeState:
    """Read ``git status --porcelain --branch`` output.

    The ``## branch...upstream [ahead N]`` header line carries the ahead
    count; every other non-empty line is a changed path.
    """
    dirty = False
    ahead = False
    for line in output.splitlines():
        if line.startswith("## "):
            ahead = "[ahead " in line
        elif line.strip():
            dirty = True
    return TreeState(dirty=dirty, ahead=ahead)


def tree_state(ctx: StepContext, *, repo_root: Path) -> Result[TreeState, ReleaseError]:
    if ctx.dry_run:
        return Ok(TreeState(dirty=True, ahead=False))
    result = _git(ctx, ["git", "status", "--porcelain", "--branch"], repo_root=repo_root)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                kind="git_failed",
                message="failed to check git status",
                hint=result.error.stderr.strip() or None,
            )
        )
    return Ok(parse_status(result.value))


def commit_all_and_push(
    ctx: StepContext,
    *,
    repo_root: Path,
    message: str,
) -> Result[bool, ReleaseError]:
    """Commit every change in ``repo_root`` and push it.

    A clean tree that is ahead of its upstream is pushed without a new
    commit. Returns ``Ok(False)`` when there is nothing to commit or push.
    """
    state = tree_state(ctx, repo_root=repo_root)
    if isinstance(state, Err):
        return state
    if not state.value.dirty and not state.value.ahead:
        ctx.console.print(f"{repo_root.name}: nothing to commit", Style.DIM)
        return Ok(False)

    if state.value.dirty:
        add = _git(ctx, ["git", "add", "-A"], repo_root=repo_root)
        if isinstance(add, Err):
            return Err(
                ReleaseError(
                    kind="git_failed",
                    message="git add failed",
                    hint=add.error.stderr.strip() or None,
                )
            )

        commit = _git(ctx, ["git", "commit", "-m", message], repo_root=repo_root)
        if isinstance(commit, Err):
            hint = commit.error.stderr.strip() or "Configure git user.name/user.email, then retry."
            return Err(ReleaseError(kind="git_failed", message="git commit failed", hint=hint))
    else:
        ctx.console.print(f"{repo_root.name}: pushing unpublished commits", Style.DIM)

    push = _git(ctx, ["git", "push", "origin", "HEAD"], repo_root=repo_root, network=True)
    if isinstance(push, Err):
        return Err(
            ReleaseError(
                kind="git_failed",
                message="git push failed",
                hint=push.error.stderr.strip() or None,
            )
        )

    return Ok(True)
