from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from ro.core.config import DocsConfig
from ro.core.result import Err, Ok, Result
from ro.output.console import Style
from ro.release.errors import ReleaseError
from ro.release.git_repo import clone_repo, commit_all_and_push
from ro.release.steps import StepContext, expand, placeholders, run_step
from ro.release.tags import is_stable_release
from ro.release.timeouts import BUILD_TIMEOUT_SECONDS

STABLE_DIR = "stable"


@dataclass(frozen=True, slots=True)
class DocsPublication:
    directories: tuple[str, ...]
    committed: bool


def _replace_tree(src: Path, dest: Path) -> None:
    if dest.exists():
        shutil.rmtree(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(src, dest)


def site_directories(subdir: str, tag: str) -> tuple[str, ...]:
    """Site directories a release writes: ``{subdir}/{tag}`` and, for stable
    tags, ``{subdir}/stable``."""
    dirs = [f"{subdir}/{tag}"]
    if is_stable_release(tag):
        dirs.append(f"{subdir}/{STABLE_DIR}")
    return tuple(dirs)


class DocsPublisher:
    """Builds HTML documentation and pushes it to the documentation site."""

    def __init__(self, ctx: StepContext, docs: DocsConfig) -> None:
        self._ctx = ctx
        self._docs = docs

    def build(self) -> Result[Path, ReleaseError]:
        ctx = self._ctx
        cwd = ctx.resolve(self._docs.path)
        values = placeholders(ctx.event)
        for template in self._docs.build:
            result = run_step(ctx, expand(template, values), cwd=cwd, timeout=BUILD_TIMEOUT_SECONDS)
            if isinstance(result, Err):
                e = result.error
                return Err(
                    ReleaseError(
                        kind="docs_failed",
                        message=f"documentation build failed: {' '.join(e.command)}",
                        hint=e.output[-2000:] or None,
                    )
                )

        html = cwd / self._docs.html_dir
        if not ctx.dry_run and not html.is_dir():
            return Err(
                ReleaseError(
                    kind="docs_failed",
                    message=f"documentation output missing: {html}",
                    hint="Check [docs] html_dir in release.toml.",
                )
            )
        return Ok(html)

    def publish(self) -> Result[DocsPublication, ReleaseError]:
        ctx = self._ctx
        html = self.build()
        if isinstance(html, Err):
            return html

        site = clone_repo(ctx, repo=self._docs.site_repository, dest=ctx.work_dir / "site")
        if isinstance(site, Err):
            return site

        dirs = site_directories(self._docs.site_subdir, ctx.event.tag)
        for rel in dirs:
            ctx.console.print(f"copy {html} -> {rel}", Style.DIM)
            if not ctx.dry_run:
                _replace_tree(html.value, site.value / rel)

        pushed = commit_all_and_push(
            ctx,
            repo_root=site.value,
            message=f"Updates {self._docs.site_subdir} documentation",
        )
        if isinstance(pushed, Err):
            return pushed
        return Ok(DocsPublication(directories=dirs, committed=pushed.value))
