"""Concurrent execution of independent publication channels.

Every channel runs in its own worker and ends with exactly one terminal
outcome. A failing (or crashing) channel never cancels its siblings. A channel
that ``needs`` others starts once they are all terminal and is skipped with
``MissingUpstreamArtifact`` unless all of them succeeded.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Literal

from ro.core.result import Err, Result
from ro.output.console import ChannelConsole
from ro.release.errors import ChannelError, MissingUpstreamArtifact, ReleaseError
from ro.release.model import Artifact
from ro.release.sequencer import SequenceReport
from ro.release.steps import StepContext

OutcomeStatus = Literal["success", "failed", "skipped"]

ChannelRun = Callable[[StepContext], Result[tuple[Artifact, ...], ChannelError]]
# Returns a reason when the channel must not run for this release.
ChannelGate = Callable[[StepContext], str | None]
# Read once the channel has run, whatever its result.
ChannelDetail = Callable[[], SequenceReport | None]


@dataclass(frozen=True, slots=True)
class Channel:
    name: str
    run: ChannelRun
    needs: tuple[str, ...] = ()
    gate: ChannelGate | None = None
    description: str = ""
    detail: ChannelDetail | None = None


@dataclass(frozen=True, slots=True)
class ChannelOutcome:
    channel: str
    status: OutcomeStatus
    artifacts: tuple[Artifact, ...] = ()
    error: ChannelError | None = None
    reason: str | None = None
    duration: float = 0.0
    detail: SequenceReport | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


def _check_graph(channels: Sequence[Channel]) -> None:
    names = [c.name for c in channels]
    if len(set(names)) != len(names):
        raise ValueError(f"duplicate channel names: {names}")
    known = set(names)
    for c in channels:
        for need in c.needs:
            if need not in known:
                raise ValueError(f"channel {c.name} needs unknown channel {need}")

    # Needs must form a DAG or some channel would never become ready.
    done: set[str] = set()
    pending = list(channels)
    while pending:
        ready = [c for c in pending if all(n in done for n in c.needs)]
        if not ready:
            raise ValueError(f"cyclic channel needs: {[c.name for c in pending]}")
        done.update(c.name for c in ready)
        pending = [c for c in pending if c.name not in done]


class ChannelFanOut:
    def __init__(
        self,
        ctx: StepContext,
        *,
        max_workers: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ctx = ctx
        self._max_workers = max_workers
        self._clock = clock

    def _execute(self, channel: Channel) -> ChannelOutcome:
        ctx = self._ctx.with_console(ChannelConsole(self._ctx.console, channel.name))
        started = self._clock()
        name = channel.name

        try:
            reason = channel.gate(ctx) if channel.gate is not None else None
            if reason is not None:
                ctx.console.print(f"skipped: {reason}")
                return ChannelOutcome(name, "skipped", reason=reason)
            result = channel.run(ctx)
        except Exception as e:  # noqa: BLE001
            error = ReleaseError(kind="internal", message=f"{type(e).__name__}: {e}")
            ctx.console.error(f"crashed: {error.message}")
            return ChannelOutcome(name, "failed", error=error, duration=self._clock() - started)

        duration = self._clock() - started
        detail = channel.detail() if channel.detail is not None else None
        if isinstance(result, Err):
            return ChannelOutcome(
                name, "failed", error=result.error, duration=duration, detail=detail
            )
        return ChannelOutcome(
            name, "success", artifacts=result.value, duration=duration, detail=detail
        )

    def _blocked(
        self, channel: Channel, outcomes: dict[str, ChannelOutcome]
    ) -> ChannelOutcome | None:
        missing = tuple(n for n in channel.needs if outcomes[n].status != "success")
        if not missing:
            return None
        reason = f"upstream channel did not succeed: {', '.join(missing)}"
        ChannelConsole(self._ctx.console, channel.name).warning(f"skipped: {reason}")
        return ChannelOutcome(
            channel=channel.name,
            status="skipped",
            error=MissingUpstreamArtifact(channel=channel.name, upstream=missing, reason=reason),
            reason=reason,
        )

    def run(self, channels: Sequence[Channel]) -> dict[str, ChannelOutcome]:
        """Run every channel to a terminal outcome.

        The returned mapping follows the declaration order of ``channels``.

        Raises:
            ValueError: duplicate names, unknown or cyclic ``needs``.
        """
        _check_graph(channels)
        outcomes: dict[str, ChannelOutcome] = {}
        waiting = list(channels)
        running: dict[Future[ChannelOutcome], str] = {}
        workers = self._max_workers or max(1, len(channels))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="channel") as pool:
            while waiting or running:
                still_waiting: list[Channel] = []
                for channel in waiting:
                    if not all(n in outcomes for n in channel.needs):
                        still_waiting.append(channel)
                        continue
                    blocked = self._blocked(channel, outcomes)
                    if blocked is not None:
                        outcomes[channel.name] = blocked
                    else:
                        running[pool.submit(self._execute, channel)] = channel.name

                # A skip can unblock (and skip) more dependents right away.
                if len(still_waiting) != len(waiting) and not running:
                    waiting = still_waiting
                    continue
                waiting = still_waiting

                if not running:
                    break
                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    name = running.pop(future)
                    outcomes[name] = future.result()

        return {c.name: outcomes[c.name] for c in channels}
