"""Tests for ro.release.builder module."""

from __future__ import annotations

import hashlib
import os
import tarfile
from pathlib import Path
from zipfile import ZipFile

import pytest

from ro.core.config import ArchiveConfig, BinaryConfig, BundleConfig, TargetConfig
from ro.core.result import Err, Ok, Result
from ro.output.console import MockConsole
from ro.platform.detection import Platform
from ro.platform.process import ProcessError
from ro.release import steps as steps_mod
from ro.release.builder import BinaryBuilder, BundleBuilder, SourceArchiver, sha256_file
from ro.release.errors import (
    CompilationFailed,
    OutputMissing,
    TargetUnsupported,
    ToolchainUnavailable,
)
from ro.release.model import PlatformTarget, ReleaseEvent
from ro.release.steps import StepContext

LINUX = PlatformTarget(arch="x86_64", os="linux_gnu", runner="linux")
MACOS = PlatformTarget(arch="universal", os="macos", runner="macos")
WINDOWS = PlatformTarget(arch="x86_64", os="windows_msvc", runner="windows")


def _ctx(root: Path, *, dry_run: bool = False) -> StepContext:
    return StepContext(
        source_root=root,
        work_dir=root / ".ro",
        event=ReleaseEvent(tag="v1.4.0", commit="0123456789abcdef"),
        console=MockConsole(),
        dry_run=dry_run,
    )


def _binary(output: str = "target/release/srv") -> BinaryConfig:
    return BinaryConfig(
        name="srv",
        path="server",
        build=("cargo", "build", "--release", "--target", "{arch}-{os}"),
        output=output,
        targets=(TargetConfig("x86_64", "linux_gnu", "linux"),),
    )


class FakeToolchain:
    """Stands in for the process layer; writes ``produce`` files on success."""

    def __init__(
        self, produce: dict[Path, bytes] | None = None, error: ProcessError | None = None
    ) -> None:
        self.calls: list[tuple[list[str], Path]] = []
        self._produce = produce or {}
        self._error = error

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        self.calls.append((cmd, cwd))
        if self._error is not None:
            return Err(self._error)
        for path, data in self._produce.items():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        return Ok("")


@pytest.fixture
def on_path(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(steps_mod, "which", lambda tool: f"/usr/bin/{tool}")


class TestBinaryBuilder:
    @pytest.mark.usefixtures("on_path")
    def test_build_stages_release_name(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        built = tmp_path / "server" / "target" / "release" / "srv"
        toolchain = FakeToolchain(produce={built: b"ELF"})
        monkeypatch.setattr(steps_mod, "run_process", toolchain)

        result = BinaryBuilder(_ctx(tmp_path), _binary(), host=Platform.LINUX).build(LINUX)

        assert isinstance(result, Ok)
        artifact = result.value
        assert artifact.kind == "binary"
        assert artifact.name == "srv_v1.4.0_x86_64_linux_gnu"
        assert artifact.path == tmp_path / ".ro" / "dist" / "srv_v1.4.0_x86_64_linux_gnu"
        assert artifact.sha256 == hashlib.sha256(b"ELF").hexdigest()
        assert artifact.target == LINUX
        cmd, cwd = toolchain.calls[0]
        assert cmd[-1] == "x86_64-linux_gnu"
        assert cwd == (tmp_path / "server").resolve()

    @pytest.mark.usefixtures("on_path")
    def test_windows_output_gets_exe_suffix(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        built = tmp_path / "server" / "target" / "release" / "srv.exe"
        monkeypatch.setattr(steps_mod, "run_process", FakeToolchain(produce={built: b"MZ"}))

        result = BinaryBuilder(_ctx(tmp_path), _binary(), host=Platform.WINDOWS).build(WINDOWS)

        assert isinstance(result, Ok)
        assert result.value.name == "srv_v1.4.0_x86_64_windows_msvc.exe"

    def test_wrong_runner_is_unsupported(self, tmp_path: Path) -> None:
        result = BinaryBuilder(_ctx(tmp_path), _binary(), host=Platform.LINUX).build(MACOS)

        assert result == Err(
            TargetUnsupported(target="srv universal_macos", runner="macos", host="linux")
        )

    def test_missing_toolchain(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(steps_mod, "which", lambda tool: None)

        result = BinaryBuilder(_ctx(tmp_path), _binary(), host=Platform.LINUX).build(LINUX)

        assert isinstance(result, Err)
        assert isinstance(result.error, ToolchainUnavailable)
        assert result.error.tool == "cargo"

    @pytest.mark.usefixtures("on_path")
    def test_compilation_failure_keeps_output_tail(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        error = ProcessError(("cargo",), 101, "", "error[E0425]: cannot find value `x`")
        monkeypatch.setattr(steps_mod, "run_process", FakeToolchain(error=error))

        result = BinaryBuilder(_ctx(tmp_path), _binary(), host=Platform.LINUX).build(LINUX)

        assert isinstance(result, Err)
        assert isinstance(result.error, CompilationFailed)
        assert result.error.returncode == 101
        assert "E0425" in result.error.detail

    @pytest.mark.usefixtures("on_path")
    def test_missing_output(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(steps_mod, "run_process", FakeToolchain())

        result = BinaryBuilder(_ctx(tmp_path), _binary(), host=Platform.LINUX).build(LINUX)

        assert isinstance(result, Err)
        assert isinstance(result.error, OutputMissing)

    def test_dry_run_builds_nothing(self, tmp_path: Path) -> None:
        result = BinaryBuilder(
            _ctx(tmp_path, dry_run=True), _binary(), host=Platform.LINUX
        ).build(LINUX)

        assert isinstance(result, Ok)
        assert result.value.sha256 is None
        assert not (tmp_path / ".ro").exists()


class TestBundleBuilder:
    @pytest.mark.usefixtures("on_path")
    def test_collects_every_output(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        dist = tmp_path / "python" / "dist"
        toolchain = FakeToolchain(
            produce={
                dist / "pygraph-1.4.0-cp312-linux.whl": b"a",
                dist / "pygraph-1.4.0-cp313-linux.whl": b"b",
                dist / "pygraph-1.4.0.tar.gz": b"c",
            }
        )
        monkeypatch.setattr(steps_mod, "run_process", toolchain)
        bundle = BundleConfig(
            name="pygraph",
            kind="wheel",
            path="python",
            build=(("maturin", "sdist"), ("maturin", "build", "--out", "dist")),
            outputs="dist/*.whl",
            runner="linux",
        )

        result = BundleBuilder(_ctx(tmp_path), bundle, host=Platform.LINUX).build_all()

        assert isinstance(result, Ok)
        assert [a.name for a in result.value] == [
            "pygraph-1.4.0-cp312-linux.whl",
            "pygraph-1.4.0-cp313-linux.whl",
        ]
        assert all(a.kind == "wheel" and a.sha256 for a in result.value)
        assert len(toolchain.calls) == 2

    @pytest.mark.usefixtures("on_path")
    def test_no_outputs(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(steps_mod, "run_process", FakeToolchain())
        bundle = BundleConfig(
            name="js", kind="archive", path=".", build=(("npm", "pack"),), outputs="*.tgz"
        )

        result = BundleBuilder(_ctx(tmp_path), bundle).build_all()

        assert isinstance(result, Err)
        assert isinstance(result.error, OutputMissing)

    def test_runner_mismatch(self, tmp_path: Path) -> None:
        bundle = BundleConfig(
            name="wheels-macos",
            kind="wheel",
            path=".",
            build=(("maturin", "build"),),
            outputs="*.whl",
            runner="macos",
        )
        result = BundleBuilder(_ctx(tmp_path), bundle, host=Platform.WINDOWS).build_all()
        assert isinstance(result, Err)
        assert isinstance(result.error, TargetUnsupported)


def _source_tree(root: Path) -> None:
    (root / "src").mkdir()
    (root / "src" / "lib.rs").write_text("pub fn f() {}\n")
    (root / "README.md").write_text("graphstore\n")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (root / ".ro").mkdir()
    (root / ".ro" / "scratch").write_text("x")


class TestSourceArchiver:
    def test_targets_follow_formats(self, tmp_path: Path) -> None:
        archiver = SourceArchiver(_ctx(tmp_path), "graphstore", ArchiveConfig())
        assert [t.os for t in archiver.targets()] == ["zip", "tar.gz"]

    def test_zip(self, tmp_path: Path) -> None:
        _source_tree(tmp_path)
        archiver = SourceArchiver(_ctx(tmp_path), "graphstore", ArchiveConfig())

        result = archiver.build(PlatformTarget("src", "zip", "any"))

        assert isinstance(result, Ok)
        artifact = result.value
        assert artifact.name == "graphstore_v1.4.0.zip"
        assert artifact.path is not None
        with ZipFile(artifact.path) as zf:
            assert sorted(zf.namelist()) == ["README.md", "src/lib.rs"]
        assert artifact.sha256 == sha256_file(artifact.path)

    def test_tar_gz(self, tmp_path: Path) -> None:
        _source_tree(tmp_path)
        archiver = SourceArchiver(
            _ctx(tmp_path), "graphstore", ArchiveConfig(exclude=(".git", "src"))
        )

        result = archiver.build(PlatformTarget("src", "tar.gz", "any"))

        assert isinstance(result, Ok)
        assert result.value.path is not None
        with tarfile.open(result.value.path) as tf:
            assert tf.getnames() == ["README.md"]

    @pytest.mark.parametrize("fmt", ["zip", "tar.gz"])
    def test_rebuild_is_byte_identical(self, tmp_path: Path, fmt: str) -> None:
        _source_tree(tmp_path)
        archiver = SourceArchiver(_ctx(tmp_path), "graphstore", ArchiveConfig())
        target = PlatformTarget("src", fmt, "any")

        first = archiver.build(target)
        os.utime(tmp_path / "README.md", (1_700_000_000, 1_700_000_000))
        second = archiver.build(target)

        assert isinstance(first, Ok) and isinstance(second, Ok)
        assert first.value.sha256 == second.value.sha256

    def test_tar_gz_header_has_no_timestamp(self, tmp_path: Path) -> None:
        _source_tree(tmp_path)
        archiver = SourceArchiver(_ctx(tmp_path), "graphstore", ArchiveConfig())

        result = archiver.build(PlatformTarget("src", "tar.gz", "any"))

        assert isinstance(result, Ok)
        assert result.value.path is not None
        # gzip header bytes 4..8 hold MTIME
        assert result.value.path.read_bytes()[4:8] == b"\x00\x00\x00\x00"


    def test_empty_tree(self, tmp_path: Path) -> None:
        archiver = SourceArchiver(_ctx(tmp_path), "graphstore", ArchiveConfig())
        result = archiver.build(PlatformTarget("src", "zip", "any"))
        assert isinstance(result, Err)
        assert isinstance(result.error, OutputMissing)
