from __future__ import annotations

import json
from collections.abc import Mapping

from ro.core.result import Err, Ok, Result
from ro.platform.http import HttpClient, HttpError
from ro.platform.process import ProcessError
from ro.release.errors import (
    AuthFailure,
    ConflictFailure,
    NetworkFailure,
    PublishRejected,
    RegistryPublishError,
)
from ro.release.model import Package
from ro.release.steps import StepContext, expand, placeholders, run_step, tool_available

# Checked in this order: a duplicate-version rejection often also mentions
# the token that was used.
_CONFLICT_MARKERS = (
    "is already uploaded",  # crates.io
    "cannot publish over",  # npm
    "file already exists",  # PyPI
    "http 409",
    "409 conflict",
)
_AUTH_MARKERS = (
    "http 401",
    "http 403",
    "401 unauthorized",
    "403 forbidden",
    "unauthorized",
    "authentication",
    "invalid token",
    "not logged in",
    "e401",
    "e403",
)


def _tail(text: str, lines: int = 20) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


def classify_publish_failure(package: str, error: ProcessError) -> RegistryPublishError:
    text = error.output.lower()
    detail = _tail(error.output)
    if any(m in text for m in _CONFLICT_MARKERS):
        return ConflictFailure(package=package, detail=detail)
    if any(m in text for m in _AUTH_MARKERS):
        return AuthFailure(package=package, detail=detail)
    if error.transient:
        return NetworkFailure(package=package, detail=detail)
    return PublishRejected(package=package, returncode=error.returncode, detail=detail)


class CommandRegistryPublisher:
    """Publishes a package by running its registry's publish command in the
    package directory (``cargo publish``, ``npm publish``, ...).

    A failed publish is never retried: the registry may have accepted the
    upload before the failure was observed.
    """

    def __init__(
        self,
        ctx: StepContext,
        commands: Mapping[str, tuple[str, ...]],
        *,
        timeout: float | None = None,
    ) -> None:
        self._ctx = ctx
        self._commands = commands
        self._timeout = timeout

    def publish(self, package: Package) -> Result[Package, RegistryPublishError]:
        template = self._commands.get(package.registry)
        if template is None:
            return Err(
                PublishRejected(
                    package=package.name,
                    returncode=-1,
                    detail=f"no publish command configured for registry '{package.registry}'",
                )
            )

        cmd = expand(template, placeholders(self._ctx.event))
        if not tool_available(self._ctx, cmd[0]):
            return Err(
                PublishRejected(
                    package=package.name,
                    returncode=-1,
                    detail=f"{cmd[0]}: not found on PATH",
                )
            )

        result = run_step(self._ctx, cmd, cwd=package.path, timeout=self._timeout)
        if isinstance(result, Err):
            return Err(classify_publish_failure(package.name, result.error))

        self._ctx.console.success(f"published {package.name}")
        return Ok(package)


def crates_index_path(name: str) -> str:
    """Path of a crate in the sparse index (https://index.crates.io)."""
    n = name.lower()
    if len(n) == 1:
        return f"1/{n}"
    if len(n) == 2:
        return f"2/{n}"
    if len(n) == 3:
        return f"3/{n[0]}/{n}"
    return f"{n[0:2]}/{n[2:4]}/{n}"


class RegistryIndexProbe:
    """Checks whether ``package.version`` is served by the registry index."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    def is_visible(self, package: Package) -> Result[bool, HttpError]:
        version = package.version
        if version is None:
            return Ok(False)

        match package.registry:
            case "crates":
                url = f"https://index.crates.io/{crates_index_path(package.name)}"
                body = self._http.get_text(url)
                if isinstance(body, Err):
                    return Ok(False) if body.error.not_found else body
                return Ok(_crates_index_has(body.value, version))
            case "pypi":
                url = f"https://pypi.org/pypi/{package.name}/{version}/json"
            case "npm":
                url = f"https://registry.npmjs.org/{package.name}/{version}"
            case _:
                return Ok(False)

        result = self._http.get_text(url)
        if isinstance(result, Err):
            return Ok(False) if result.error.not_found else result
        return Ok(True)


def _crates_index_has(body: str, version: str) -> bool:
    # One JSON document per line, one line per published version.
    for line in body.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry: object = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict) and entry.get("vers") == version:
            return True
    return False
