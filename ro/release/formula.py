"""Package-manager tap update (Homebrew formula).

The formula pins the source archive by download URL and SHA-256. Only those
two fields are rewritten; everything else in the formula is left as the tap
maintainers wrote it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from pathlib import Path

from ro.core.result import Err, Ok, Result
from ro.output.console import Style
from ro.release.errors import ReleaseError
from ro.release.git_repo import clone_repo, commit_all_and_push
from ro.release.steps import StepContext
from ro.release.tags import is_stable_release

_URL_RE = re.compile(r'^(\s*url\s+")([^"]*)(")', re.MULTILINE)
_SHA_RE = re.compile(r'^(\s*sha256\s+")([0-9a-fA-F]*)(")', re.MULTILINE)


@dataclass(frozen=True, slots=True)
class FormulaDocument:
    text: str
    url: str
    sha256: str

    def with_release(self, url: str, sha256: str) -> FormulaDocument:
        return replace(self, url=url, sha256=sha256)


@dataclass(frozen=True, slots=True)
class TapUpdate:
    """What ``update`` did: ``changed`` is False for an idempotent re-run."""

    formula: Path
    changed: bool
    skipped_reason: str | None = None


def parse_formula(text: str) -> Result[FormulaDocument, ReleaseError]:
    url = _URL_RE.search(text)
    sha = _SHA_RE.search(text)
    if url is None or sha is None:
        missing = "url" if url is None else "sha256"
        return Err(
            ReleaseError(
                kind="formula_invalid",
                message=f"formula has no {missing} field",
                hint='Expected lines like: url "https://..." and sha256 "<hex>"',
            )
        )
    return Ok(FormulaDocument(text=text, url=url.group(2), sha256=sha.group(2)))


def render_formula(doc: FormulaDocument) -> str:
    # Only the first url/sha256 pair belongs to the formula's main source;
    # resource blocks further down keep their own pins.
    text = _URL_RE.sub(lambda m: f"{m.group(1)}{doc.url}{m.group(3)}", doc.text, count=1)
    return _SHA_RE.sub(lambda m: f"{m.group(1)}{doc.sha256}{m.group(3)}", text, count=1)


def _prerelease(formula_path: Path, tag: str) -> TapUpdate:
    return TapUpdate(formula_path, changed=False, skipped_reason=f"{tag} is a pre-release")


class TapFormulaUpdater:
    def __init__(self, ctx: StepContext, *, repository: str, formula: str) -> None:
        self._ctx = ctx
        self.repository = repository
        self.formula = formula

    def rewrite(self, formula_path: Path, url: str, checksum: str) -> Result[bool, ReleaseError]:
        """Rewrite the formula in place; ``Ok(False)`` when nothing changes."""
        try:
            text = formula_path.read_text(encoding="utf-8")
        except OSError as e:
            return Err(
                ReleaseError(kind="formula_invalid", message=f"cannot read {formula_path}: {e}")
            )

        doc = parse_formula(text)
        if isinstance(doc, Err):
            return doc

        updated = render_formula(doc.value.with_release(url, checksum))
        if updated == text:
            return Ok(False)

        try:
            formula_path.write_text(updated, encoding="utf-8")
        except OSError as e:
            return Err(
                ReleaseError(kind="formula_invalid", message=f"cannot write {formula_path}: {e}")
            )
        return Ok(True)

    def update(
        self,
        formula_path: Path,
        tag: str,
        url: str,
        checksum: str,
        *,
        repo_root: Path | None = None,
    ) -> Result[TapUpdate, ReleaseError]:
        """Point the formula at ``url``/``checksum``, then commit and push.

        ``repo_root`` is the tap clone (defaults to the formula directory).
        """
        ctx = self._ctx
        if not is_stable_release(tag):
            return Ok(_prerelease(formula_path, tag))

        ctx.console.print(f"update {formula_path.name}: url={url} sha256={checksum}", Style.DIM)
        if ctx.dry_run:
            return Ok(TapUpdate(formula_path, changed=True))

        changed = self.rewrite(formula_path, url, checksum)
        if isinstance(changed, Err):
            return changed
        if not changed.value:
            ctx.console.print(f"{formula_path.name} already at {tag}", Style.DIM)

        # An unchanged formula may still sit in an unpushed commit.
        pushed = commit_all_and_push(
            ctx, repo_root=repo_root or formula_path.parent, message=f"Upgrades to {tag}"
        )
        if isinstance(pushed, Err):
            return pushed
        return Ok(TapUpdate(formula_path, changed=pushed.value))

    def publish(self, tag: str, url: str, checksum: str) -> Result[TapUpdate, ReleaseError]:
        """Clone the tap repository and run ``update`` on its formula."""
        dest = self._ctx.work_dir / "tap"
        if not is_stable_release(tag):
            return Ok(_prerelease(dest / self.formula, tag))
        cloned = clone_repo(self._ctx, repo=self.repository, dest=dest)
        if isinstance(cloned, Err):
            return cloned
        return self.update(
            cloned.value / self.formula, tag, url, checksum, repo_root=cloned.value
        )
