"""Collection of every channel's outputs into one release record.

Channels finish in any order and attach concurrently; the record only ever
grows, under a lock, so no attach can lose another one's entry.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from ro.core.result import Err, Ok, Result
from ro.release.errors import MissingUpstreamArtifact, ReleaseError
from ro.release.model import Artifact
from ro.release.steps import StepContext


class ReleaseHost(Protocol):
    """Where release files are attached (GitHub releases)."""

    def upload(self, ctx: StepContext, tag: str, path: Path) -> Result[str, ReleaseError]: ...


class ReleaseRecord:
    """Append-only set of artifacts attached to one release tag.

    A record that is finalized with some channels missing is still a valid
    release: partial completion is reported, not rolled back.
    """

    def __init__(self, tag: str, commit: str, created_at: datetime | None = None) -> None:
        self.tag = tag
        self.commit = commit
        self.created_at = created_at or datetime.now(UTC)
        self._lock = threading.Lock()
        self._artifacts: list[Artifact] = []
        self._finalized = False

    def append(self, artifact: Artifact) -> None:
        with self._lock:
            if self._finalized:
                raise RuntimeError(
                    f"release {self.tag} is finalized; cannot attach {artifact.name}"
                )
            self._artifacts.append(artifact)

    @property
    def artifacts(self) -> tuple[Artifact, ...]:
        with self._lock:
            return tuple(self._artifacts)

    @property
    def finalized(self) -> bool:
        with self._lock:
            return self._finalized

    def find(self, name: str) -> Artifact | None:
        for artifact in self.artifacts:
            if artifact.name == name:
                return artifact
        return None

    def close(self) -> None:
        with self._lock:
            self._finalized = True


class ReleaseAggregator:
    def __init__(self, host: ReleaseHost) -> None:
        self._host = host

    def attach(
        self,
        ctx: StepContext,
        record: ReleaseRecord,
        artifact: Artifact,
    ) -> Result[Artifact, ReleaseError]:
        """Upload a file artifact (images are recorded only) and record it.

        The record is only extended once the upload succeeded, so every
        entry is actually downloadable.
        """
        if record.finalized:
            raise RuntimeError(
                f"release {record.tag} is finalized; cannot attach {artifact.name}"
            )

        attached = artifact
        path = artifact.path
        if path is not None:
            url = self._host.upload(ctx, record.tag, path)
            if isinstance(url, Err):
                return url
            attached = artifact.with_url(url.value)

        record.append(attached)
        return Ok(attached)

    def finalize(self, record: ReleaseRecord) -> ReleaseRecord:
        record.close()
        return record


def archive_checksum(record: ReleaseRecord) -> Result[Artifact, MissingUpstreamArtifact]:
    """The attached ``.tar.gz`` source archive, with its checksum."""
    for artifact in record.artifacts:
        if artifact.kind != "archive" or not artifact.name.endswith(".tar.gz"):
            continue
        if artifact.sha256 is None:
            break
        return Ok(artifact)

    return Err(
        MissingUpstreamArtifact(
            channel="tap",
            upstream=("archive",),
            reason=f"no checksummed .tar.gz archive attached to release {record.tag}",
        )
    )
