"""Host platform detection.

Per-platform build targets declare the runner they need (``linux``,
``macos``, ``windows`` or ``any``); builders compare it with the host to
decide whether a target can be produced here.
"""

from __future__ import annotations

import platform as _platform
import sys as _sys
from enum import Enum, auto
from functools import lru_cache

__all__ = ["Platform", "detect_platform", "host_arch", "runner_matches_host"]


class Platform(Enum):
    """Operating system platform."""

    LINUX = auto()
    MACOS = auto()
    WINDOWS = auto()
    UNKNOWN = auto()

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self == Platform.WINDOWS else ""


@lru_cache(maxsize=1)
def detect_platform() -> Platform:
    """Detect the current operating system (cached)."""
    # NOTE: avoid platform.system() on Windows, it may query WMI.
    system = _sys.platform.lower()
    if system.startswith("linux"):
        return Platform.LINUX
    if system.startswith("darwin"):
        return Platform.MACOS
    if system.startswith(("win32", "cygwin", "msys")):
        return Platform.WINDOWS
    return Platform.UNKNOWN


@lru_cache(maxsize=1)
def host_arch() -> str:
    machine = _platform.machine().lower()
    if machine in ("x86_64", "amd64"):
        return "x86_64"
    if machine in ("aarch64", "arm64"):
        return "aarch64"
    return machine or "unknown"


def runner_matches_host(runner: str, host: Platform | None = None) -> bool:
    """Return True if a target requiring ``runner`` can build on ``host``."""
    if runner == "any":
        return True
    host = host or detect_platform()
    return runner == str(host)
