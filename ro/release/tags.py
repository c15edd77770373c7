from __future__ import annotations

import re
from dataclasses import dataclass

from ro.core.result import Err, Ok, Result
from ro.release.errors import ReleaseError
from ro.release.model import PlatformTarget, version_of

PRERELEASE_DELIMITER = "-"

_SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_FORBIDDEN_TAG_CHARS = re.compile(r"[\s/\\:]")


@dataclass(frozen=True, slots=True, order=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: str | None = None


def parse_semver(tag: str) -> SemVer | None:
    m = _SEMVER_RE.match(tag)
    if m is None:
        return None
    return SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3)), m.group(4))


def is_stable_release(tag: str) -> bool:
    """A tag is stable iff it carries no pre-release qualifier."""
    return bool(tag) and PRERELEASE_DELIMITER not in tag


def validate_tag(tag: str) -> Result[str, ReleaseError]:
    tag = tag.strip()
    if not tag:
        return Err(ReleaseError(kind="invalid_tag", message="release tag is empty"))
    if _FORBIDDEN_TAG_CHARS.search(tag):
        return Err(
            ReleaseError(
                kind="invalid_tag",
                message=f"release tag contains forbidden characters: {tag!r}",
                hint="Tags are used in file names; avoid spaces, slashes and colons.",
            )
        )
    return Ok(tag)


def archive_name(project: str, tag: str, fmt: str) -> str:
    return f"{project}_{tag}.{fmt}"


def binary_name(binary: str, tag: str, target: PlatformTarget) -> str:
    return f"{binary}_{tag}_{target.arch}_{target.os}{target.exe_suffix}"


def image_tags(image: str, tag: str) -> list[str]:
    """Image references pushed for a release tag.

    Stable semver tags also move ``{major}.{minor}`` and ``latest``.
    """
    refs = [f"{image}:{version_of(tag)}"]
    semver = parse_semver(tag)
    if semver is not None and semver.prerelease is None and is_stable_release(tag):
        refs.append(f"{image}:{semver.major}.{semver.minor}")
        refs.append(f"{image}:latest")
    return refs
