"""Error payloads of the release flow.

Each failure mode is a frozen dataclass so that callers can ``match`` on it
and the CLI can render it with the failing package or target named.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

# Release graph (configuration defects, fatal for the registry channel)


@dataclass(frozen=True, slots=True)
class CyclicDependency:
    packages: tuple[str, ...]  # packages left with no eligible order


@dataclass(frozen=True, slots=True)
class UnknownDependency:
    package: str
    dependency: str


@dataclass(frozen=True, slots=True)
class DuplicatePackage:
    name: str


GraphError = CyclicDependency | UnknownDependency | DuplicatePackage


# Builds (fatal for the building channel only)


@dataclass(frozen=True, slots=True)
class ToolchainUnavailable:
    tool: str
    target: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class CompilationFailed:
    target: str
    returncode: int
    detail: str = ""


@dataclass(frozen=True, slots=True)
class TargetUnsupported:
    target: str
    runner: str
    host: str


@dataclass(frozen=True, slots=True)
class OutputMissing:
    target: str
    path: Path


BuildError = ToolchainUnavailable | CompilationFailed | TargetUnsupported | OutputMissing


# Registry publishes (abort the remaining tiers)


@dataclass(frozen=True, slots=True)
class AuthFailure:
    package: str
    detail: str = ""


@dataclass(frozen=True, slots=True)
class ConflictFailure:
    package: str
    detail: str = ""


@dataclass(frozen=True, slots=True)
class NetworkFailure:
    package: str
    detail: str = ""


@dataclass(frozen=True, slots=True)
class PublishRejected:
    package: str
    returncode: int
    detail: str = ""


RegistryPublishError = AuthFailure | ConflictFailure | NetworkFailure | PublishRejected


@dataclass(frozen=True, slots=True)
class MissingUpstreamArtifact:
    """A downstream step cannot run because its input was never produced."""

    channel: str
    upstream: tuple[str, ...]
    reason: str


ReleaseErrorKind = Literal[
    "invalid_input",
    "invalid_tag",
    "gh_missing",
    "gh_auth_required",
    "upload_failed",
    "git_failed",
    "docker_failed",
    "docs_failed",
    "formula_invalid",
    "internal",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Failure of an infrastructure step (host upload, git, docker)."""

    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


ChannelError = (
    GraphError | BuildError | RegistryPublishError | MissingUpstreamArtifact | ReleaseError
)
