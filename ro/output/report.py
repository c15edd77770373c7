"""Plan and summary printing for release runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ro.core.result import Err
from ro.output.console import Style
from ro.output.errors import describe_error, print_channel_error
from ro.release.errors import MissingUpstreamArtifact

if TYPE_CHECKING:
    from ro.output.console import ConsoleProtocol
    from ro.release.fanout import ChannelOutcome
    from ro.release.sequencer import SequenceReport
    from ro.release.service import ReleasePlan, ReleaseReport

_STATUS_STYLE = {
    "success": Style.SUCCESS,
    "failed": Style.ERROR,
    "skipped": Style.WARNING,
}

_TIER_STYLE = {
    "published": Style.SUCCESS,
    "failed": Style.ERROR,
    "not_attempted": Style.DIM,
}


def print_plan(plan: ReleasePlan, console: ConsoleProtocol) -> None:
    console.header("Publish tiers")
    if isinstance(plan.tiers, Err):
        message, hint = describe_error(plan.tiers.error)
        console.error(message)
        if hint:
            console.print(f"hint: {hint}", Style.DIM)
    elif not plan.tiers.value:
        console.print("no registry packages", Style.DIM)
    else:
        for tier in plan.tiers.value:
            console.print(f"  tier {tier.index}: {', '.join(tier.names)}")

    console.newline()
    console.header("Channels")
    for channel in plan.channels:
        extras: list[str] = []
        if channel.needs:
            extras.append(f"needs {', '.join(channel.needs)}")
        if channel.gate is not None:
            extras.append("gated")
        suffix = f" ({'; '.join(extras)})" if extras else ""
        console.print(f"  {channel.name}{suffix}")
        if channel.description:
            console.print(f"    {channel.description}", Style.DIM)


def _print_tiers(detail: SequenceReport, console: ConsoleProtocol) -> None:
    for tier in detail.tiers:
        line = f"    tier {tier.tier.index} {tier.status}: {', '.join(tier.tier.names)}"
        if tier.status == "failed" and tier.published:
            line += f" (published: {', '.join(tier.published)})"
        console.print(line, _TIER_STYLE[tier.status])


def _needs_rerun(outcome: ChannelOutcome) -> bool:
    if outcome.status == "failed":
        return True
    return outcome.status == "skipped" and isinstance(outcome.error, MissingUpstreamArtifact)


def rerun_command(report: ReleaseReport) -> str | None:
    """The ``ro run`` invocation that completes a partial release.

    Channels skipped because an upstream channel failed are re-run with it.
    Registry packages already live are passed as ``--skip-package``.
    """
    rerun = [o for o in report.outcomes.values() if _needs_rerun(o)]
    if not rerun:
        return None

    args = [f"--only {o.channel}" for o in rerun]
    for outcome in rerun:
        if outcome.detail is None:
            continue
        for tier in outcome.detail.tiers:
            args += [f"--skip-package {name}" for name in (*tier.skipped, *tier.published)]
    return f"ro run --tag {report.tag} {' '.join(args)}"


def print_summary(report: ReleaseReport, console: ConsoleProtocol) -> None:
    console.newline()
    console.header(f"Release {report.tag}")
    for outcome in report.outcomes.values():
        line = f"  {outcome.status:<8} {outcome.channel}"
        if outcome.status == "success":
            line += f" ({outcome.duration:.1f}s)"
        elif outcome.reason:
            line += f": {outcome.reason}"
        console.print(line, _STATUS_STYLE[outcome.status])
        if outcome.detail is not None:
            _print_tiers(outcome.detail, console)

    if report.artifacts:
        console.newline()
        console.print(f"{len(report.artifacts)} artifact(s) attached:", Style.DIM)
        for artifact in report.artifacts:
            console.print(f"  {artifact.url or artifact.location}", Style.DIM)

    failed = report.failed
    if not failed:
        console.success(f"release {report.tag} published")
        return

    console.newline()
    for outcome in failed:
        if outcome.error is not None:
            print_channel_error(outcome.channel, outcome.error, console)
    command = rerun_command(report)
    if command is not None:
        console.print(f"re-run the failed channels with: {command}", Style.DIM)
