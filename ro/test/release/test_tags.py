"""Tests for ro.release.tags module."""

import pytest

from ro.core.result import Err, Ok
from ro.release.model import PlatformTarget, ReleaseEvent, version_of
from ro.release.tags import (
    SemVer,
    archive_name,
    binary_name,
    image_tags,
    is_stable_release,
    parse_semver,
    validate_tag,
)


class TestStable:
    @pytest.mark.parametrize("tag", ["1.2.3", "v1.2.3", "v2.0.0+build.5"])
    def test_stable(self, tag: str) -> None:
        assert is_stable_release(tag)

    @pytest.mark.parametrize("tag", ["1.2.3-rc1", "v1.2.3-beta.2", "v0.1.0-alpha"])
    def test_prerelease(self, tag: str) -> None:
        assert not is_stable_release(tag)

    def test_empty_is_not_stable(self) -> None:
        assert not is_stable_release("")


class TestSemver:
    def test_parse(self) -> None:
        assert parse_semver("v1.4.0") == SemVer(1, 4, 0)
        assert parse_semver("1.4.0-rc.1") == SemVer(1, 4, 0, "rc.1")

    def test_not_semver(self) -> None:
        assert parse_semver("nightly") is None
        assert parse_semver("1.04.0") is None

    def test_ordering(self) -> None:
        assert SemVer(1, 4, 0) < SemVer(1, 10, 0)


class TestValidateTag:
    def test_strips(self) -> None:
        assert validate_tag(" v1.4.0 ") == Ok("v1.4.0")

    def test_empty(self) -> None:
        result = validate_tag("   ")
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_tag"

    @pytest.mark.parametrize("tag", ["v1 .0", "feat/x", "a:b", "a\\b"])
    def test_forbidden_chars(self, tag: str) -> None:
        assert isinstance(validate_tag(tag), Err)


class TestNames:
    def test_version_of(self) -> None:
        assert version_of("v1.4.0") == "1.4.0"
        assert version_of("1.4.0") == "1.4.0"
        assert version_of("vnext") == "vnext"
        assert ReleaseEvent("v1.4.0", "abcdef0123456789").short_commit == "abcdef01"

    def test_archive_name(self) -> None:
        assert archive_name("graphstore", "v1.4.0", "tar.gz") == "graphstore_v1.4.0.tar.gz"

    def test_binary_name_windows_suffix(self) -> None:
        linux = PlatformTarget("x86_64", "linux_gnu", "linux")
        windows = PlatformTarget("x86_64", "windows_msvc", "windows")
        assert binary_name("srv", "v1.4.0", linux) == "srv_v1.4.0_x86_64_linux_gnu"
        assert binary_name("srv", "v1.4.0", windows) == "srv_v1.4.0_x86_64_windows_msvc.exe"


class TestImageTags:
    def test_stable_moves_minor_and_latest(self) -> None:
        assert image_tags("ghcr.io/o/srv", "v1.4.0") == [
            "ghcr.io/o/srv:1.4.0",
            "ghcr.io/o/srv:1.4",
            "ghcr.io/o/srv:latest",
        ]

    def test_prerelease_only_exact(self) -> None:
        assert image_tags("o/srv", "v1.4.0-rc1") == ["o/srv:1.4.0-rc1"]

    def test_non_semver_only_exact(self) -> None:
        assert image_tags("o/srv", "nightly") == ["o/srv:nightly"]
