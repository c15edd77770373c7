"""Propagation waits between publish tiers.

``FixedDelayWaiter`` sleeps a configured duration, without verification.
``VisibilityPollWaiter`` asks the registry index whether the packages the
next tier depends on are visible, for a bounded number of checks. Running
out of checks only prints a warning: the wait never fails the sequence.
"""

from __future__ import annotations

from collections.abc import Callable
from time import sleep as _sleep
from typing import Protocol

from ro.core.result import Err, Result
from ro.output.console import ConsoleProtocol, Style
from ro.platform.http import HttpError
from ro.release.model import Package, PublishTier

Sleep = Callable[[float], None]


class VisibilityProbe(Protocol):
    def is_visible(self, package: Package) -> Result[bool, HttpError]: ...


class FixedDelayWaiter:
    def __init__(
        self,
        seconds: float,
        *,
        console: ConsoleProtocol,
        sleep: Sleep = _sleep,
    ) -> None:
        self.seconds = seconds
        self._console = console
        self._sleep = sleep

    def wait(self, published: PublishTier, upcoming: PublishTier) -> None:
        if self.seconds <= 0:
            return
        self._console.print(
            f"waiting {self.seconds:g}s for {', '.join(published.names)} to propagate "
            f"before tier {upcoming.index}",
            Style.DIM,
        )
        self._sleep(self.seconds)


def _needed_by(published: PublishTier, upcoming: PublishTier) -> list[Package]:
    wanted = {d for p in upcoming.packages for d in p.depends_on}
    needed = [p for p in published.packages if p.name in wanted]
    return needed or list(published.packages)


class VisibilityPollWaiter:
    def __init__(
        self,
        probe: VisibilityProbe,
        *,
        attempts: int,
        interval: float,
        console: ConsoleProtocol,
        sleep: Sleep = _sleep,
    ) -> None:
        self._probe = probe
        self.attempts = max(1, attempts)
        self.interval = interval
        self._console = console
        self._sleep = sleep

    def _still_pending(self, packages: list[Package]) -> list[Package]:
        pending: list[Package] = []
        for package in packages:
            result = self._probe.is_visible(package)
            if isinstance(result, Err):
                self._console.print(
                    f"{package.name}: index lookup failed: {result.error}", Style.DIM
                )
                pending.append(package)
            elif not result.value:
                pending.append(package)
        return pending

    def wait(self, published: PublishTier, upcoming: PublishTier) -> None:
        needed = _needed_by(published, upcoming)
        # Packages without a configured version cannot be looked up.
        pending = [p for p in needed if p.version is not None]
        if not pending:
            self._console.print(
                f"no versions configured for {', '.join(p.name for p in needed)}; "
                f"waiting {self.interval:g}s",
                Style.DIM,
            )
            self._sleep(self.interval)
            return

        for attempt in range(self.attempts):
            pending = self._still_pending(pending)
            if not pending:
                self._console.print(f"visible: {', '.join(published.names)}", Style.DIM)
                return
            if attempt < self.attempts - 1:
                self._console.print(
                    f"waiting for {', '.join(p.name for p in pending)} "
                    f"(check {attempt + 1}/{self.attempts})",
                    Style.DIM,
                )
                self._sleep(self.interval)

        self._console.warning(
            f"still not visible after {self.attempts} checks: "
            f"{', '.join(p.name for p in pending)}; continuing with tier {upcoming.index}"
        )
