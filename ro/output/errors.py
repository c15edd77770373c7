"""Error presentation utilities.

Centralized error formatting and exit code mapping for consistent UX.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ro.core.errors import ErrorCode
from ro.output.console import Style
from ro.release.errors import (
    AuthFailure,
    ChannelError,
    CompilationFailed,
    ConflictFailure,
    CyclicDependency,
    DuplicatePackage,
    MissingUpstreamArtifact,
    NetworkFailure,
    OutputMissing,
    PublishRejected,
    ReleaseError,
    TargetUnsupported,
    ToolchainUnavailable,
    UnknownDependency,
)

if TYPE_CHECKING:
    from ro.output.console import ConsoleProtocol

__all__ = ["channel_error_exit_code", "describe_error", "print_channel_error"]


def describe_error(error: ChannelError) -> tuple[str, str | None]:
    """One-line message and optional hint/detail for a channel error."""
    match error:
        case CyclicDependency(packages=packages):
            return (
                f"dependency cycle among: {', '.join(packages)}",
                "Fix depends_on in release.toml; nothing was published.",
            )
        case UnknownDependency(package=package, dependency=dependency):
            return (
                f"{package} depends on {dependency}, which is not a release package",
                "Add it to [[packages]] or drop it from depends_on.",
            )
        case DuplicatePackage(name=name):
            return f"package declared twice: {name}", None
        case ToolchainUnavailable(tool=tool, target=target, hint=hint):
            return f"{tool}: missing (needed for {target})", hint
        case CompilationFailed(target=target, returncode=rc, detail=detail):
            return f"build failed for {target} (exit {rc})", detail or None
        case TargetUnsupported(target=target, runner=runner, host=host):
            return (
                f"{target} must be built on a {runner} runner (this host is {host})",
                None,
            )
        case OutputMissing(target=target, path=path):
            return f"{target}: output not found: {path}", None
        case AuthFailure(package=package, detail=detail):
            return f"{package}: registry rejected the credentials", detail or None
        case ConflictFailure(package=package, detail=detail):
            return (
                f"{package}: this version is already published",
                detail or "Re-run with --skip-package for packages already published.",
            )
        case NetworkFailure(package=package, detail=detail):
            return f"{package}: registry unreachable", detail or None
        case PublishRejected(package=package, returncode=rc, detail=detail):
            return f"{package}: publish failed (exit {rc})", detail or None
        case MissingUpstreamArtifact(upstream=upstream, reason=reason):
            return f"missing upstream artifact from {', '.join(upstream)}", reason
        case ReleaseError(message=message, hint=hint):
            return message, hint


def print_channel_error(channel: str, error: ChannelError, console: ConsoleProtocol) -> None:
    message, hint = describe_error(error)
    console.error(f"[{channel}] {message}")
    if hint:
        for line in hint.splitlines():
            console.print(f"  {line}", Style.DIM)


def channel_error_exit_code(error: ChannelError) -> int:
    """Get exit code for a channel error."""
    match error:
        case CyclicDependency() | UnknownDependency() | DuplicatePackage():
            return int(ErrorCode.USER_ERROR)
        case ToolchainUnavailable() | TargetUnsupported():
            return int(ErrorCode.ENV_ERROR)
        case CompilationFailed():
            return int(ErrorCode.BUILD_ERROR)
        case OutputMissing() | MissingUpstreamArtifact():
            return int(ErrorCode.IO_ERROR)
        case AuthFailure():
            return int(ErrorCode.ENV_ERROR)
        case NetworkFailure():
            return int(ErrorCode.NETWORK_ERROR)
        case ConflictFailure() | PublishRejected():
            return int(ErrorCode.PUBLISH_ERROR)
        case ReleaseError(kind=kind):
            return _release_error_exit_code(kind)


def _release_error_exit_code(kind: str) -> int:
    match kind:
        case "invalid_input" | "invalid_tag" | "formula_invalid":
            return int(ErrorCode.USER_ERROR)
        case "gh_missing" | "gh_auth_required":
            return int(ErrorCode.ENV_ERROR)
        case "upload_failed":
            return int(ErrorCode.NETWORK_ERROR)
        case "docker_failed" | "docs_failed":
            return int(ErrorCode.BUILD_ERROR)
        case "git_failed":
            return int(ErrorCode.IO_ERROR)
    return int(ErrorCode.INTERNAL_ERROR)
