"""End-to-end tests for ro.release.service with faked collaborators."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from ro.core.config import Config
from ro.core.errors import ErrorCode
from ro.core.result import Err, Ok, Result
from ro.output.console import MockConsole
from ro.platform.detection import Platform
from ro.platform.http import MockHttpClient
from ro.platform.process import ProcessError
from ro.release import host as host_mod
from ro.release import steps as steps_mod
from ro.release.aggregator import ReleaseAggregator, ReleaseRecord
from ro.release.channels import ReleaseServices, build_channels
from ro.release.errors import (
    CompilationFailed,
    CyclicDependency,
    NetworkFailure,
    RegistryPublishError,
    ReleaseError,
)
from ro.release.fanout import ChannelOutcome
from ro.release.model import Package, PublishTier, ReleaseEvent
from ro.release.service import (
    ReleaseReport,
    make_waiter,
    plan_release,
    preflight,
    run_release,
    select_channels,
)
from ro.release.steps import StepContext
from ro.release.waiter import FixedDelayWaiter, VisibilityPollWaiter

FORMULA = """class Graphstore < Formula
  url "https://github.com/o/graphstore/releases/download/v1.3.0/graphstore_v1.3.0.tar.gz"
  sha256 "0000000000000000000000000000000000000000000000000000000000000000"
end
"""

CONFIG = {
    "project": {"name": "graphstore", "repository": "o/graphstore"},
    "registry": {"propagation_delay": 60},
    "packages": [
        {"name": "graphstore-server", "path": "server", "depends_on": ["graphstore"]},
        {"name": "graphstore", "path": "lib"},
    ],
    "binaries": [
        {
            "name": "srv",
            "path": "server",
            "build": ["cargo", "build", "--release"],
            "output": "target/release/srv",
            "targets": [
                {"arch": "x86_64", "os": "linux_gnu", "runner": "linux"},
                {"arch": "universal", "os": "macos", "runner": "macos"},
            ],
        }
    ],
    "archive": {"exclude": [".git", ".ro", "target"]},
    "tap": {"repository": "o/homebrew-graphstore", "formula": "Formula/graphstore.rb"},
}


class FakeHost:
    def __init__(self) -> None:
        self.uploads: list[str] = []
        self._lock = threading.Lock()

    def upload(self, ctx: StepContext, tag: str, path: Path) -> Result[str, ReleaseError]:
        with self._lock:
            self.uploads.append(path.name)
        return Ok(f"https://github.com/o/graphstore/releases/download/{tag}/{path.name}")


class FakePublisher:
    def __init__(self, fail: dict[str, RegistryPublishError] | None = None) -> None:
        self.calls: list[str] = []
        self._fail = fail or {}

    def publish(self, package: Package) -> Result[Package, RegistryPublishError]:
        self.calls.append(package.name)
        error = self._fail.get(package.name)
        return Err(error) if error is not None else Ok(package)


class RecordingWaiter:
    def __init__(self) -> None:
        self.waits: list[tuple[tuple[str, ...], tuple[str, ...]]] = []

    def wait(self, published: PublishTier, upcoming: PublishTier) -> None:
        self.waits.append((published.names, upcoming.names))


class FakeToolchain:
    """cargo writes the binary, gh clones the tap, git reports a dirty tree."""

    def __init__(self, work_dir: Path) -> None:
        self.calls: list[list[str]] = []
        self._work_dir = work_dir
        self._lock = threading.Lock()

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        with self._lock:
            self.calls.append(cmd)
        if cmd[0] == "cargo":
            out = cwd / "target" / "release" / "srv"
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(b"\x7fELF")
        elif cmd[:3] == ["gh", "repo", "clone"]:
            clone = Path(cmd[4])
            (clone / ".git").mkdir(parents=True)
            (clone / "Formula").mkdir()
            (clone / "Formula" / "graphstore.rb").write_text(FORMULA, encoding="utf-8")
        elif cmd[:2] == ["git", "status"]:
            return Ok(" M Formula/graphstore.rb\n")
        return Ok("")


def _source_tree(root: Path) -> None:
    for rel in ("lib/src/lib.rs", "server/src/main.rs", "README.md"):
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"// {rel}\n")


def _ctx(tmp_path: Path, tag: str = "v1.4.0", *, dry_run: bool = False) -> StepContext:
    return StepContext(
        source_root=tmp_path,
        work_dir=tmp_path / ".ro",
        event=ReleaseEvent(tag=tag, commit="0123456789abcdef"),
        console=MockConsole(),
        dry_run=dry_run,
    )


def _services(
    tag: str = "v1.4.0",
    *,
    host: FakeHost | None = None,
    publisher: FakePublisher | None = None,
    waiter: RecordingWaiter | None = None,
) -> ReleaseServices:
    publisher = publisher or FakePublisher()
    waiter = waiter or RecordingWaiter()
    return ReleaseServices(
        aggregator=ReleaseAggregator(host or FakeHost()),
        record=ReleaseRecord(tag, "0123456789abcdef"),
        make_publisher=lambda ctx: publisher,
        make_waiter=lambda ctx: waiter,
        host=Platform.LINUX,
    )


@pytest.fixture
def gh_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_gh(cmd: list[str], *, cwd: Path, timeout: float | None = None):
        return Ok(json.dumps({"assets": []}))

    monkeypatch.setattr(host_mod, "which", lambda tool: f"/usr/bin/{tool}")
    monkeypatch.setattr(host_mod, "run_process", fake_gh)
    monkeypatch.setattr(steps_mod, "which", lambda tool: f"/usr/bin/{tool}")


@pytest.mark.usefixtures("gh_ready")
class TestRunRelease:
    def test_full_release(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _source_tree(tmp_path)
        ctx = _ctx(tmp_path)
        toolchain = FakeToolchain(ctx.work_dir)
        monkeypatch.setattr(steps_mod, "run_process", toolchain)
        host, publisher, waiter = FakeHost(), FakePublisher(), RecordingWaiter()
        services = _services(host=host, publisher=publisher, waiter=waiter)

        result = run_release(Config.from_dict(CONFIG), ctx, services)

        assert isinstance(result, Ok)
        report = result.value
        assert report.ok
        assert report.exit_code == 0
        assert {name: o.status for name, o in report.outcomes.items()} == {
            "registry": "success",
            "binary-srv-x86_64_linux_gnu": "success",
            "binary-srv-universal_macos": "skipped",
            "archive": "success",
            "tap": "success",
        }

        # lib strictly before server, with one propagation wait in between
        assert publisher.calls == ["graphstore", "graphstore-server"]
        assert waiter.waits == [(("graphstore",), ("graphstore-server",))]

        sequence_report = report.outcomes["registry"].detail
        assert sequence_report is not None
        assert [t.status for t in sequence_report.tiers] == ["published", "published"]
        assert sequence_report.succeeded == (0, 1)

        assert sorted(host.uploads) == [
            "graphstore_v1.4.0.tar.gz",
            "graphstore_v1.4.0.zip",
            "srv_v1.4.0_x86_64_linux_gnu",
        ]
        assert services.record.finalized
        assert len(report.artifacts) == 3

        tarball = services.record.find("graphstore_v1.4.0.tar.gz")
        assert tarball is not None and tarball.sha256 is not None
        formula = ctx.work_dir / "tap" / "Formula" / "graphstore.rb"
        text = formula.read_text(encoding="utf-8")
        assert tarball.sha256 in text
        assert "/download/v1.4.0/graphstore_v1.4.0.tar.gz" in text
        assert ["git", "commit", "-m", "Upgrades to v1.4.0"] in toolchain.calls

    def test_registry_failure_does_not_stop_other_channels(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _source_tree(tmp_path)
        ctx = _ctx(tmp_path)
        monkeypatch.setattr(steps_mod, "run_process", FakeToolchain(ctx.work_dir))
        publisher = FakePublisher(fail={"graphstore": NetworkFailure(package="graphstore")})
        waiter = RecordingWaiter()
        services = _services(publisher=publisher, waiter=waiter)

        result = run_release(Config.from_dict(CONFIG), ctx, services)

        assert isinstance(result, Ok)
        report = result.value
        assert not report.ok
        assert report.outcomes["registry"].error == NetworkFailure(package="graphstore")
        assert report.outcomes["archive"].status == "success"
        assert report.outcomes["tap"].status == "success"
        # server was never attempted, and nothing waited on the failed tier
        assert publisher.calls == ["graphstore"]
        assert waiter.waits == []
        sequence_report = report.outcomes["registry"].detail
        assert sequence_report is not None
        assert [t.status for t in sequence_report.tiers] == ["failed", "not_attempted"]
        assert report.exit_code == int(ErrorCode.NETWORK_ERROR)

    def test_cyclic_packages_publish_nothing(self, tmp_path: Path) -> None:
        publisher = FakePublisher()
        config = Config.from_dict(
            {
                "project": {"name": "graphstore", "repository": "o/graphstore"},
                "packages": [
                    {"name": "graphstore", "path": "lib", "depends_on": ["graphstore-server"]},
                    {"name": "graphstore-server", "path": "server", "depends_on": ["graphstore"]},
                ],
            }
        )

        result = run_release(config, _ctx(tmp_path), _services(publisher=publisher))

        assert isinstance(result, Ok)
        registry = result.value.outcomes["registry"]
        assert registry.status == "failed"
        assert registry.error == CyclicDependency(packages=("graphstore", "graphstore-server"))
        assert registry.detail is None
        assert publisher.calls == []
        assert result.value.exit_code == int(ErrorCode.USER_ERROR)

    def test_prerelease_skips_tap(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _source_tree(tmp_path)
        ctx = _ctx(tmp_path, "v1.4.0-rc1")
        toolchain = FakeToolchain(ctx.work_dir)
        monkeypatch.setattr(steps_mod, "run_process", toolchain)

        result = run_release(Config.from_dict(CONFIG), ctx, _services("v1.4.0-rc1"))

        assert isinstance(result, Ok)
        tap = result.value.outcomes["tap"]
        assert tap.status == "skipped"
        assert tap.reason == "v1.4.0-rc1 is a pre-release"
        assert not any(c[:3] == ["gh", "repo", "clone"] for c in toolchain.calls)
        assert result.value.exit_code == 0

    def test_only_selects_channel_and_its_needs(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _source_tree(tmp_path)
        ctx = _ctx(tmp_path)
        monkeypatch.setattr(steps_mod, "run_process", FakeToolchain(ctx.work_dir))
        publisher = FakePublisher()

        result = run_release(
            Config.from_dict(CONFIG), ctx, _services(publisher=publisher), only=("tap",)
        )

        assert isinstance(result, Ok)
        assert list(result.value.outcomes) == ["archive", "tap"]
        assert publisher.calls == []

    def test_unknown_only_pattern(self, tmp_path: Path) -> None:
        result = run_release(
            Config.from_dict(CONFIG), _ctx(tmp_path), _services(), only=("wheels",)
        )
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_input"

    def test_nothing_configured(self, tmp_path: Path) -> None:
        config = Config.from_dict({"project": {"name": "x", "repository": "o/x"}})
        result = run_release(config, _ctx(tmp_path), _services())
        assert isinstance(result, Err)
        assert result.error.message == "nothing to release"

    def test_dry_run_runs_no_process(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def boom(*args: object, **kwargs: object) -> Result[str, ProcessError]:
            raise AssertionError("dry runs must not execute commands")

        monkeypatch.setattr(steps_mod, "run_process", boom)
        monkeypatch.setattr(host_mod, "run_process", boom)
        ctx = _ctx(tmp_path, dry_run=True)

        result = run_release(Config.from_dict(CONFIG), ctx, _services())

        assert isinstance(result, Ok)
        assert result.value.ok
        assert isinstance(ctx.console, MockConsole)
        assert ctx.console.find("would update Formula/graphstore.rb")
        assert not (tmp_path / ".ro").exists()


class TestSelectChannels:
    def _channels(self):
        return build_channels(Config.from_dict(CONFIG), _services())

    def test_no_filter_keeps_all(self) -> None:
        channels = self._channels()
        assert select_channels(channels, ()) == Ok(channels)

    def test_pattern(self) -> None:
        result = select_channels(self._channels(), ["binary-*"])
        assert isinstance(result, Ok)
        assert [c.name for c in result.value] == [
            "binary-srv-x86_64_linux_gnu",
            "binary-srv-universal_macos",
        ]

    def test_needs_are_included(self) -> None:
        result = select_channels(self._channels(), ["tap"])
        assert isinstance(result, Ok)
        assert [c.name for c in result.value] == ["archive", "tap"]


class TestPreflight:
    def test_hostless_channels_skip_gh(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(host_mod, "which", lambda tool: None)
        channels = build_channels(Config.from_dict(CONFIG), _services())
        registry = [c for c in channels if c.name == "registry"]
        assert preflight(_ctx(tmp_path), "o/graphstore", registry) == Ok(None)

    def test_missing_gh(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(host_mod, "which", lambda tool: None)
        channels = build_channels(Config.from_dict(CONFIG), _services())

        result = preflight(_ctx(tmp_path), "o/graphstore", channels)

        assert isinstance(result, Err)
        assert result.error.kind == "gh_missing"

    def test_missing_release(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def fake_gh(cmd: list[str], *, cwd: Path, timeout: float | None = None):
            if cmd[:3] == ["gh", "release", "view"]:
                return Err(ProcessError(tuple(cmd), 1, "", "release not found"))
            return Ok("")

        monkeypatch.setattr(host_mod, "which", lambda tool: "/usr/bin/gh")
        monkeypatch.setattr(host_mod, "run_process", fake_gh)
        channels = build_channels(Config.from_dict(CONFIG), _services())

        result = preflight(_ctx(tmp_path), "o/graphstore", channels)

        assert isinstance(result, Err)
        assert "release not found" in result.error.message


class TestReport:
    def test_exit_code_from_first_failure(self) -> None:
        report = ReleaseReport(
            tag="v1.4.0",
            outcomes={
                "archive": ChannelOutcome("archive", "success"),
                "binary": ChannelOutcome(
                    "binary", "failed", error=CompilationFailed(target="srv", returncode=1)
                ),
                "registry": ChannelOutcome(
                    "registry", "failed", error=NetworkFailure(package="lib")
                ),
            },
        )
        assert report.exit_code == int(ErrorCode.BUILD_ERROR)
        assert [o.channel for o in report.failed] == ["binary", "registry"]

    def test_skips_are_not_failures(self) -> None:
        report = ReleaseReport(
            tag="v1.4.0",
            outcomes={"tap": ChannelOutcome("tap", "skipped", reason="pre-release")},
        )
        assert report.ok
        assert report.exit_code == 0
        assert len(report.skipped) == 1


class TestFactories:
    def test_plan_release(self, tmp_path: Path) -> None:
        plan = plan_release(Config.from_dict(CONFIG), _ctx(tmp_path), _services())
        assert isinstance(plan.tiers, Ok)
        assert [t.names for t in plan.tiers.value] == [("graphstore",), ("graphstore-server",)]
        assert len(plan.channels) == 5

    def test_make_waiter(self, tmp_path: Path) -> None:
        config = Config.from_dict(CONFIG)
        assert isinstance(make_waiter(config, _ctx(tmp_path)), FixedDelayWaiter)

        polling = Config.from_dict(
            {**CONFIG, "registry": {"visibility_poll_attempts": 3}}
        )
        waiter = make_waiter(polling, _ctx(tmp_path), http=MockHttpClient())
        assert isinstance(waiter, VisibilityPollWaiter)
        assert waiter.attempts == 3

    def test_dry_run_waiter_never_sleeps(self, tmp_path: Path) -> None:
        waiter = make_waiter(Config.from_dict(CONFIG), _ctx(tmp_path, dry_run=True))
        assert isinstance(waiter, FixedDelayWaiter)
        waiter.wait(
            PublishTier(0, (Package("a", Path("a")),)), PublishTier(1, (Package("b", Path("b")),))
        )
