"""The hosted release (GitHub Releases, through ``gh``)."""

from __future__ import annotations

from pathlib import Path
from time import sleep

from ro.core.result import Err, Ok, Result
from ro.platform.process import ProcessError, which
from ro.platform.process import run as run_process
from ro.release.errors import ReleaseError, ReleaseErrorKind
from ro.release.steps import StepContext, run_step
from ro.release.timeouts import (
    GH_TIMEOUT_SECONDS,
    GH_UPLOAD_TIMEOUT_SECONDS,
    READ_RETRY_ATTEMPTS,
    READ_RETRY_DELAY_SECONDS,
)

_MISSING_RELEASE_HINT = "The release must exist before artifacts can be attached."


def _read(cmd: list[str], *, cwd: Path, attempts: int) -> Result[str, ProcessError]:
    """Run a read-only command; transient failures are retried with a linear backoff."""
    result = run_process(cmd, cwd=cwd, timeout=GH_TIMEOUT_SECONDS)
    for attempt in range(1, max(1, attempts)):
        if isinstance(result, Ok) or not result.error.transient:
            break
        sleep(READ_RETRY_DELAY_SECONDS * attempt)
        result = run_process(cmd, cwd=cwd, timeout=GH_TIMEOUT_SECONDS)
    return result


def check_release_host(
    *, cwd: Path, repo: str, tag: str, attempts: int = READ_RETRY_ATTEMPTS
) -> Result[None, ReleaseError]:
    """Verify that ``gh`` is installed and logged in and that ``repo@tag`` exists."""
    if which("gh") is None:
        return Err(
            ReleaseError(
                kind="gh_missing",
                message="gh: missing",
                hint="Install GitHub CLI: https://cli.github.com/",
            )
        )

    if isinstance(_read(["gh", "auth", "status"], cwd=cwd, attempts=attempts), Err):
        return Err(
            ReleaseError(
                kind="gh_auth_required",
                message="gh auth required",
                hint="Run: gh auth login (or set GH_TOKEN in CI)",
            )
        )

    view = _read(
        ["gh", "release", "view", tag, "--repo", repo, "--json", "tagName"],
        cwd=cwd,
        attempts=attempts,
    )
    if isinstance(view, Err):
        return Err(
            ReleaseError(
                kind="invalid_input",
                message=f"release not found: {repo}@{tag}",
                hint=view.error.stderr.strip() or _MISSING_RELEASE_HINT,
            )
        )
    return Ok(None)


def download_url(repo: str, tag: str, name: str) -> str:
    return f"https://github.com/{repo}/releases/download/{tag}/{name}"


class GhReleaseHost:
    """Attaches files to an existing GitHub release through ``gh``.

    Uploads use ``--clobber`` so a re-run replaces the asset instead of
    failing on the name that the first attempt already took.
    """

    def __init__(self, repo: str, *, timeout: float = GH_UPLOAD_TIMEOUT_SECONDS) -> None:
        self.repo = repo
        self._timeout = timeout

    def upload(self, ctx: StepContext, tag: str, path: Path) -> Result[str, ReleaseError]:
        url = download_url(self.repo, tag, path.name)
        cmd = ["gh", "release", "upload", tag, str(path), "--repo", self.repo, "--clobber"]
        result = run_step(ctx, cmd, cwd=ctx.source_root, timeout=self._timeout)
        if isinstance(result, Err):
            e = result.error
            kind: ReleaseErrorKind = "gh_missing" if e.not_found else "upload_failed"
            return Err(
                ReleaseError(
                    kind=kind,
                    message=f"failed to upload {path.name} to {self.repo}@{tag}",
                    hint=e.stderr.strip() or None,
                )
            )
        return Ok(url)
