"""Release run orchestration.

``run_release`` is the whole flow of one release event: resolve the channels
configured in ``release.toml``, check the host prerequisites once, fan the
channels out, then finalize the release record. Partial completion is a
valid end state; the report says which channels to re-run.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from fnmatch import fnmatchcase

from ro.core.config import Config
from ro.core.errors import ErrorCode
from ro.core.result import Err, Ok, Result
from ro.output.errors import channel_error_exit_code
from ro.platform.detection import Platform
from ro.platform.http import HttpClient, RealHttpClient
from ro.release.aggregator import ReleaseAggregator, ReleaseHost, ReleaseRecord
from ro.release.channels import (
    DOCS_CHANNEL,
    REGISTRY_CHANNEL,
    ReleaseServices,
    build_channels,
    packages_of,
)
from ro.release.errors import GraphError, ReleaseError
from ro.release.fanout import Channel, ChannelFanOut, ChannelOutcome
from ro.release.host import GhReleaseHost, check_release_host
from ro.release.model import Artifact, PublishTier
from ro.release.registry import CommandRegistryPublisher, RegistryIndexProbe
from ro.release.sequencer import PropagationWaiter, RegistryPublisher, sequence
from ro.release.steps import StepContext
from ro.release.waiter import FixedDelayWaiter, VisibilityPollWaiter

# Channels that never attach files to the hosted release.
_HOSTLESS_CHANNELS = frozenset({REGISTRY_CHANNEL, DOCS_CHANNEL})


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    tiers: Result[list[PublishTier], GraphError]
    channels: tuple[Channel, ...]


@dataclass(frozen=True, slots=True)
class ReleaseReport:
    tag: str
    outcomes: dict[str, ChannelOutcome]
    artifacts: tuple[Artifact, ...] = field(default=())

    @property
    def failed(self) -> list[ChannelOutcome]:
        return [o for o in self.outcomes.values() if o.status == "failed"]

    @property
    def skipped(self) -> list[ChannelOutcome]:
        return [o for o in self.outcomes.values() if o.status == "skipped"]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        """Exit code of the first failed channel in declaration order."""
        for outcome in self.failed:
            if outcome.error is not None:
                return channel_error_exit_code(outcome.error)
            return int(ErrorCode.INTERNAL_ERROR)
        return int(ErrorCode.OK)


def select_channels(
    channels: Sequence[Channel], only: Sequence[str]
) -> Result[list[Channel], ReleaseError]:
    """Keep the channels matching ``only`` (names or shell patterns).

    Channels they need are kept too, so ``--only tap`` also rebuilds the
    archive the formula pins.
    """
    if not only:
        return Ok(list(channels))

    by_name = {c.name: c for c in channels}
    wanted: set[str] = set()
    for pattern in only:
        matched = [c.name for c in channels if fnmatchcase(c.name, pattern)]
        if not matched:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"no channel matches --only {pattern}",
                    hint=f"Channels: {', '.join(by_name)}",
                )
            )
        wanted.update(matched)

    pending = list(wanted)
    while pending:
        for need in by_name[pending.pop()].needs:
            if need not in wanted:
                wanted.add(need)
                pending.append(need)

    return Ok([c for c in channels if c.name in wanted])


def preflight(
    ctx: StepContext, repository: str, channels: Sequence[Channel]
) -> Result[None, ReleaseError]:
    """Check ``gh`` once for the whole run, before any channel starts."""
    if ctx.dry_run or all(c.name in _HOSTLESS_CHANNELS for c in channels):
        return Ok(None)

    return check_release_host(cwd=ctx.source_root, repo=repository, tag=ctx.event.tag)


def make_waiter(
    config: Config, ctx: StepContext, *, http: HttpClient | None = None
) -> PropagationWaiter:
    registry = config.registry
    if ctx.dry_run:
        # Dry runs publish nothing, so there is nothing to wait for.
        return FixedDelayWaiter(
            registry.propagation_delay, console=ctx.console, sleep=lambda _: None
        )
    if registry.visibility_poll_attempts > 0:
        return VisibilityPollWaiter(
            RegistryIndexProbe(http or RealHttpClient()),
            attempts=registry.visibility_poll_attempts,
            interval=registry.visibility_poll_interval,
            console=ctx.console,
        )
    return FixedDelayWaiter(registry.propagation_delay, console=ctx.console)


def make_publisher(config: Config, ctx: StepContext) -> RegistryPublisher:
    return CommandRegistryPublisher(
        ctx, config.registry.commands, timeout=config.registry.publish_timeout
    )


def default_services(
    config: Config,
    ctx: StepContext,
    *,
    host: ReleaseHost | None = None,
    platform: Platform | None = None,
    skip_packages: frozenset[str] = frozenset(),
) -> ReleaseServices:
    return ReleaseServices(
        aggregator=ReleaseAggregator(host or GhReleaseHost(config.project.repository)),
        record=ReleaseRecord(ctx.event.tag, ctx.event.commit),
        make_publisher=lambda c: make_publisher(config, c),
        make_waiter=lambda c: make_waiter(config, c),
        host=platform,
        skip_packages=skip_packages,
        tier_workers=config.registry.tier_workers,
    )


def plan_release(config: Config, ctx: StepContext, services: ReleaseServices) -> ReleasePlan:
    return ReleasePlan(
        tiers=sequence(packages_of(config, ctx)),
        channels=tuple(build_channels(config, services)),
    )


def run_release(
    config: Config,
    ctx: StepContext,
    services: ReleaseServices,
    *,
    only: Sequence[str] = (),
    workers: int | None = None,
) -> Result[ReleaseReport, ReleaseError]:
    selected = select_channels(build_channels(config, services), only)
    if isinstance(selected, Err):
        return selected
    if not selected.value:
        return Err(
            ReleaseError(
                kind="invalid_input",
                message="nothing to release",
                hint="Configure [[packages]], [[binaries]], [archive], ... in release.toml.",
            )
        )

    ready = preflight(ctx, config.project.repository, selected.value)
    if isinstance(ready, Err):
        return ready

    mode = " (dry run)" if ctx.dry_run else ""
    ctx.console.header(f"Release {ctx.event.tag} @ {ctx.event.short_commit}{mode}")
    outcomes = ChannelFanOut(ctx, max_workers=workers).run(selected.value)

    record = services.aggregator.finalize(services.record)
    return Ok(ReleaseReport(tag=record.tag, outcomes=outcomes, artifacts=record.artifacts))
