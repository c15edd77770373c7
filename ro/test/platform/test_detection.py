"""Tests for ro.platform.detection module."""

import pytest

from ro.platform.detection import Platform, detect_platform, host_arch, runner_matches_host


def test_detect_platform_is_cached() -> None:
    assert detect_platform() is detect_platform()


def test_str_matches_runner_names() -> None:
    assert str(Platform.LINUX) == "linux"
    assert str(Platform.MACOS) == "macos"
    assert str(Platform.WINDOWS) == "windows"


def test_exe_suffix() -> None:
    assert Platform.WINDOWS.exe_suffix == ".exe"
    assert Platform.LINUX.exe_suffix == ""


def test_host_arch_is_normalized() -> None:
    assert host_arch() not in ("amd64", "arm64", "")


@pytest.mark.parametrize(
    ("runner", "host", "expected"),
    [
        ("any", Platform.WINDOWS, True),
        ("linux", Platform.LINUX, True),
        ("macos", Platform.LINUX, False),
        ("windows", Platform.MACOS, False),
        ("windows", Platform.WINDOWS, True),
    ],
)
def test_runner_matches_host(runner: str, host: Platform, expected: bool) -> None:
    assert runner_matches_host(runner, host) is expected
