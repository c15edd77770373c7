from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Literal

ArtifactKind = Literal["binary", "wheel", "archive", "image"]


def version_of(tag: str) -> str:
    # v1.2.3 -> 1.2.3; other tags are already bare versions.
    if tag[:1] == "v" and tag[1:2].isdigit():
        return tag[1:]
    return tag


@dataclass(frozen=True, slots=True)
class ReleaseEvent:
    """The trigger: a published release tag and the commit it points to."""

    tag: str
    commit: str

    @property
    def version(self) -> str:
        return version_of(self.tag)

    @property
    def short_commit(self) -> str:
        return self.commit[:8]


@dataclass(frozen=True, slots=True)
class Package:
    """A registry package in the release graph."""

    name: str
    path: Path
    depends_on: tuple[str, ...] = ()
    registry: str = "crates"
    version: str | None = None


@dataclass(frozen=True, slots=True)
class PublishTier:
    """Packages with no dependency edges among them."""

    index: int
    packages: tuple[Package, ...]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.packages)


@dataclass(frozen=True, slots=True)
class PlatformTarget:
    arch: str
    os: str
    runner: str  # linux | macos | windows | any

    @property
    def label(self) -> str:
        return f"{self.arch}_{self.os}"

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self.runner == "windows" else ""


@dataclass(frozen=True, slots=True)
class Artifact:
    """Immutable result of a build.

    ``location`` is a filesystem path, except for images where it is the
    pushed image reference.
    """

    kind: ArtifactKind
    name: str
    location: str
    target: PlatformTarget | None = None
    sha256: str | None = None
    url: str | None = None

    @property
    def path(self) -> Path | None:
        if self.kind == "image":
            return None
        return Path(self.location)

    @property
    def is_file(self) -> bool:
        return self.kind != "image"

    def with_url(self, url: str) -> Artifact:
        return replace(self, url=url)
