"""Artifact builders.

A builder turns the source tree into one typed artifact for one target by
invoking an external toolchain. Builders hold no shared state; two builders
(or one builder on two targets) can run concurrently as long as their output
paths differ, which the naming scheme guarantees.
"""

from __future__ import annotations

import gzip
import hashlib
import shutil
import tarfile
from pathlib import Path
from typing import Protocol
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

from ro.core.config import ArchiveConfig, BinaryConfig, BundleConfig
from ro.core.result import Err, Ok, Result
from ro.output.console import Style
from ro.platform.detection import Platform, detect_platform, host_arch, runner_matches_host
from ro.platform.process import ProcessError
from ro.release.errors import (
    BuildError,
    CompilationFailed,
    OutputMissing,
    TargetUnsupported,
    ToolchainUnavailable,
)
from ro.release.model import Artifact, PlatformTarget
from ro.release.steps import StepContext, expand, placeholders, run_step, tool_available
from ro.release.tags import archive_name, binary_name
from ro.release.timeouts import BUILD_TIMEOUT_SECONDS


class ArtifactBuilder(Protocol):
    def build(self, target: PlatformTarget) -> Result[Artifact, BuildError]: ...


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _tail(text: str, lines: int = 20) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


def _toolchain_error(label: str, error: ProcessError) -> BuildError:
    if error.not_found:
        return ToolchainUnavailable(tool=error.command[0], target=label, hint=error.stderr)
    return CompilationFailed(target=label, returncode=error.returncode, detail=_tail(error.output))


def _check_host(
    label: str, runner: str, host: Platform | None
) -> Result[None, BuildError]:
    if runner_matches_host(runner, host):
        return Ok(None)
    return Err(TargetUnsupported(target=label, runner=runner, host=str(host or detect_platform())))


class BinaryBuilder:
    """Builds a binary for one platform target and stages it under its
    release name (``{name}_{tag}_{arch}_{os}[.exe]``)."""

    def __init__(
        self,
        ctx: StepContext,
        binary: BinaryConfig,
        *,
        host: Platform | None = None,
        timeout: float = BUILD_TIMEOUT_SECONDS,
    ) -> None:
        self._ctx = ctx
        self._binary = binary
        self._host = host
        self._timeout = timeout

    def build(self, target: PlatformTarget) -> Result[Artifact, BuildError]:
        ctx = self._ctx
        label = f"{self._binary.name} {target.label}"

        supported = _check_host(label, target.runner, self._host)
        if isinstance(supported, Err):
            return supported

        values = placeholders(ctx.event, target)
        cmd = expand(self._binary.build, values)
        if not tool_available(ctx, cmd[0]):
            return Err(ToolchainUnavailable(tool=cmd[0], target=label))

        cwd = ctx.resolve(self._binary.path)
        result = run_step(ctx, cmd, cwd=cwd, timeout=self._timeout)
        if isinstance(result, Err):
            return Err(_toolchain_error(label, result.error))

        output = cwd / expand([self._binary.output], values)[0]
        if target.exe_suffix and output.suffix != target.exe_suffix:
            output = output.with_name(output.name + target.exe_suffix)

        dest = ctx.work_dir / "dist" / binary_name(self._binary.name, ctx.event.tag, target)
        if ctx.dry_run:
            return Ok(Artifact(kind="binary", name=dest.name, location=str(dest), target=target))

        if not output.is_file():
            return Err(OutputMissing(target=label, path=output))

        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(output, dest)
        return Ok(
            Artifact(
                kind="binary",
                name=dest.name,
                location=str(dest),
                target=target,
                sha256=sha256_file(dest),
            )
        )


class BundleBuilder:
    """Runs a bundle's build commands and collects every produced file.

    Unlike binaries, one bundle build yields several files (one wheel per
    interpreter ABI, an sdist, an npm tarball).
    """

    def __init__(
        self,
        ctx: StepContext,
        bundle: BundleConfig,
        *,
        host: Platform | None = None,
        timeout: float = BUILD_TIMEOUT_SECONDS,
    ) -> None:
        self._ctx = ctx
        self._bundle = bundle
        self._host = host
        self._timeout = timeout

    def target(self) -> PlatformTarget:
        return PlatformTarget(arch=host_arch(), os=self._bundle.runner, runner=self._bundle.runner)

    def build_all(self) -> Result[tuple[Artifact, ...], BuildError]:
        ctx = self._ctx
        bundle = self._bundle
        target = self.target()

        supported = _check_host(bundle.name, bundle.runner, self._host)
        if isinstance(supported, Err):
            return supported

        values = placeholders(ctx.event, target)
        cwd = ctx.resolve(bundle.path)
        for template in bundle.build:
            cmd = expand(template, values)
            if not tool_available(ctx, cmd[0]):
                return Err(ToolchainUnavailable(tool=cmd[0], target=bundle.name))
            result = run_step(ctx, cmd, cwd=cwd, timeout=self._timeout)
            if isinstance(result, Err):
                return Err(_toolchain_error(bundle.name, result.error))

        pattern = expand([bundle.outputs], values)[0]
        if ctx.dry_run:
            return Ok(())

        files = sorted(p for p in cwd.glob(pattern) if p.is_file())
        if not files:
            return Err(OutputMissing(target=bundle.name, path=cwd / pattern))

        return Ok(
            tuple(
                Artifact(
                    kind=bundle.kind,
                    name=p.name,
                    location=str(p),
                    target=target,
                    sha256=sha256_file(p),
                )
                for p in files
            )
        )


def _collect_sources(root: Path, *, exclude: set[str], skip: set[Path]) -> list[tuple[Path, str]]:
    root = root.resolve()
    out: list[tuple[Path, str]] = []
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root)
        if any(part in exclude for part in rel.parts):
            continue
        if any(p == s or s in p.parents for s in skip):
            continue
        if p.is_dir() or (p.is_symlink() and not p.exists()):
            continue
        out.append((p, rel.as_posix()))
    return out


# Entries carry fixed metadata: the same sources always give the same bytes.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def _normalized(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info


def _write_zip(dest: Path, files: list[tuple[Path, str]]) -> None:
    with ZipFile(dest, "w", compression=ZIP_DEFLATED) as zf:
        for src, arc in files:
            info = ZipInfo.from_file(src, arcname=arc, strict_timestamps=False)
            info.date_time = _ZIP_EPOCH
            info.compress_type = ZIP_DEFLATED
            zf.writestr(info, src.read_bytes())


def _write_tar_gz(dest: Path, files: list[tuple[Path, str]]) -> None:
    # tarfile's "w:gz" stamps the current time into the gzip header.
    with (
        open(dest, "wb") as raw,
        gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=0) as gz,
        tarfile.open(fileobj=gz, mode="w") as tf,
    ):
        for src, arc in files:
            tf.add(src, arcname=arc, recursive=False, filter=_normalized)


class SourceArchiver:
    """Packs the full source tree as ``{project}_{tag}.{zip|tar.gz}``.

    The checksum of each archive is computed here; the tar.gz checksum is
    what the tap formula pins.
    """

    def __init__(self, ctx: StepContext, project: str, archive: ArchiveConfig) -> None:
        self._ctx = ctx
        self._project = project
        self._archive = archive

    def build(self, target: PlatformTarget) -> Result[Artifact, BuildError]:
        ctx = self._ctx
        fmt = target.os  # archive targets are keyed by format
        dest = ctx.work_dir / "dist" / archive_name(self._project, ctx.event.tag, fmt)
        ctx.console.print(f"archive {ctx.source_root} -> {dest.name}", Style.DIM)
        if ctx.dry_run:
            return Ok(Artifact(kind="archive", name=dest.name, location=str(dest), target=target))

        files = _collect_sources(
            ctx.source_root,
            exclude=set(self._archive.exclude),
            skip={ctx.work_dir.resolve()},
        )
        if not files:
            return Err(OutputMissing(target=dest.name, path=ctx.source_root))

        dest.parent.mkdir(parents=True, exist_ok=True)
        match fmt:
            case "zip":
                _write_zip(dest, files)
            case "tar.gz":
                _write_tar_gz(dest, files)
            case _:
                return Err(TargetUnsupported(target=dest.name, runner=fmt, host="archive"))

        return Ok(
            Artifact(
                kind="archive",
                name=dest.name,
                location=str(dest),
                target=target,
                sha256=sha256_file(dest),
            )
        )

    def targets(self) -> list[PlatformTarget]:
        return [PlatformTarget(arch="src", os=fmt, runner="any") for fmt in self._archive.formats]
