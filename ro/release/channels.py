"""Translation of ``release.toml`` into the channels of one release run."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ro.core.config import BinaryConfig, BundleConfig, Config
from ro.core.result import Err, Ok, Result
from ro.output.console import Style
from ro.platform.detection import Platform, detect_platform, runner_matches_host
from ro.release.aggregator import ReleaseAggregator, ReleaseRecord, archive_checksum
from ro.release.builder import BinaryBuilder, BundleBuilder, SourceArchiver
from ro.release.docs import DocsPublisher
from ro.release.errors import ChannelError, ReleaseError
from ro.release.fanout import Channel, ChannelGate
from ro.release.formula import TapFormulaUpdater
from ro.release.host import download_url
from ro.release.images import ImagePublisher
from ro.release.model import Artifact, Package, PlatformTarget
from ro.release.registry import classify_publish_failure
from ro.release.sequencer import (
    PropagationWaiter,
    RegistryPublisher,
    SequenceReport,
    publish_tiers,
    sequence,
)
from ro.release.steps import StepContext, expand, placeholders, run_step, tool_available
from ro.release.tags import is_stable_release

REGISTRY_CHANNEL = "registry"
IMAGES_CHANNEL = "images"
DOCS_CHANNEL = "docs"
ARCHIVE_CHANNEL = "archive"
TAP_CHANNEL = "tap"

ChannelResult = Result[tuple[Artifact, ...], ChannelError]


@dataclass(frozen=True, slots=True)
class ReleaseServices:
    """Collaborators shared by the channels of one run.

    ``record`` is the only mutable object; it is reached exclusively through
    ``aggregator.attach``.
    """

    aggregator: ReleaseAggregator
    record: ReleaseRecord
    make_publisher: Callable[[StepContext], RegistryPublisher]
    make_waiter: Callable[[StepContext], PropagationWaiter]
    host: Platform | None = None
    skip_packages: frozenset[str] = frozenset()
    tier_workers: int = 1


def binary_channel_name(binary: str, target: PlatformTarget) -> str:
    return f"binary-{binary}-{target.label}"


def bundle_channel_name(bundle: str) -> str:
    return f"bundle-{bundle}"


def packages_of(config: Config, ctx: StepContext) -> list[Package]:
    values = placeholders(ctx.event)
    return [
        Package(
            name=p.name,
            path=ctx.resolve(p.path),
            depends_on=p.depends_on,
            registry=p.registry,
            version=expand([p.version], values)[0] if p.version else None,
        )
        for p in config.packages
    ]


def targets_of(binary: BinaryConfig) -> list[PlatformTarget]:
    return [PlatformTarget(arch=t.arch, os=t.os, runner=t.runner) for t in binary.targets]


def _attach_all(
    services: ReleaseServices, ctx: StepContext, artifacts: Iterable[Artifact]
) -> Result[tuple[Artifact, ...], ReleaseError]:
    attached: list[Artifact] = []
    for artifact in artifacts:
        result = services.aggregator.attach(ctx, services.record, artifact)
        if isinstance(result, Err):
            return result
        ctx.console.print(f"attached {artifact.name}")
        attached.append(result.value)
    return Ok(tuple(attached))


def runner_gate(runner: str, host: Platform | None) -> ChannelGate:
    def gate(ctx: StepContext) -> str | None:
        if runner_matches_host(runner, host):
            return None
        return f"runs on {runner} runners (this host is {host or detect_platform()})"

    return gate


def stable_gate(ctx: StepContext) -> str | None:
    if is_stable_release(ctx.event.tag):
        return None
    return f"{ctx.event.tag} is a pre-release"


class _RegistryRun:
    """Registry channel body; keeps the sequence report of its last run."""

    def __init__(self, config: Config, services: ReleaseServices) -> None:
        self._config = config
        self._services = services
        self.report: SequenceReport | None = None

    def __call__(self, ctx: StepContext) -> ChannelResult:
        services = self._services
        tiers = sequence(packages_of(self._config, ctx))
        if isinstance(tiers, Err):
            return tiers
        for tier in tiers.value:
            ctx.console.print(f"tier {tier.index}: {', '.join(tier.names)}")

        self.report = publish_tiers(
            tiers.value,
            publisher=services.make_publisher(ctx),
            waiter=services.make_waiter(ctx),
            console=ctx.console,
            already_published=services.skip_packages,
            workers=services.tier_workers,
        )
        if self.report.error is not None:
            return Err(self.report.error)
        return Ok(())


def _registry_channel(config: Config, services: ReleaseServices) -> Channel:
    run = _RegistryRun(config, services)
    return Channel(
        name=REGISTRY_CHANNEL,
        run=run,
        description=f"{len(config.packages)} package(s) in dependency order",
        detail=lambda: run.report,
    )


def _binary_channel(
    binary: BinaryConfig, target: PlatformTarget, services: ReleaseServices
) -> Channel:
    def run(ctx: StepContext) -> ChannelResult:
        built = BinaryBuilder(ctx, binary, host=services.host).build(target)
        if isinstance(built, Err):
            return built
        return _attach_all(services, ctx, [built.value])

    return Channel(
        name=binary_channel_name(binary.name, target),
        run=run,
        gate=runner_gate(target.runner, services.host),
        description=f"{binary.name} for {target.label}",
    )


def _bundle_channel(bundle: BundleConfig, services: ReleaseServices) -> Channel:
    def run(ctx: StepContext) -> ChannelResult:
        built = BundleBuilder(ctx, bundle, host=services.host).build_all()
        if isinstance(built, Err):
            return built

        if bundle.publish is not None:
            cmd = expand(bundle.publish, placeholders(ctx.event))
            files = [a.location for a in built.value]
            if not tool_available(ctx, cmd[0]):
                return Err(
                    ReleaseError(
                        kind="invalid_input",
                        message=f"{cmd[0]}: not found on PATH",
                        hint=f"Install it to publish {bundle.name}.",
                    )
                )
            published = run_step(ctx, [*cmd, *files], cwd=ctx.resolve(bundle.path))
            if isinstance(published, Err):
                return Err(classify_publish_failure(bundle.name, published.error))
            ctx.console.success(f"published {bundle.name}")

        return _attach_all(services, ctx, built.value)

    return Channel(
        name=bundle_channel_name(bundle.name),
        run=run,
        gate=runner_gate(bundle.runner, services.host),
        description=f"{bundle.kind} bundle {bundle.name}",
    )


def build_channels(config: Config, services: ReleaseServices) -> list[Channel]:
    """All channels configured in ``release.toml``, in declaration order."""
    channels: list[Channel] = []

    if config.packages:
        channels.append(_registry_channel(config, services))

    for binary in config.binaries:
        for target in targets_of(binary):
            channels.append(_binary_channel(binary, target, services))

    for bundle in config.bundles:
        channels.append(_bundle_channel(bundle, services))

    images = config.images
    if images is not None:

        def run_images(ctx: StepContext) -> ChannelResult:
            pushed = ImagePublisher(ctx, images, repository=config.project.repository).publish()
            if isinstance(pushed, Err):
                return pushed
            return _attach_all(services, ctx, pushed.value)

        channels.append(
            Channel(
                name=IMAGES_CHANNEL,
                run=run_images,
                gate=runner_gate("linux", services.host),
                description=", ".join(images.names),
            )
        )

    docs = config.docs
    if docs is not None:

        def run_docs(ctx: StepContext) -> ChannelResult:
            published = DocsPublisher(ctx, docs).publish()
            if isinstance(published, Err):
                return published
            return Ok(())

        channels.append(
            Channel(name=DOCS_CHANNEL, run=run_docs, description=docs.site_repository)
        )

    archive = config.archive
    if archive is not None:

        def run_archive(ctx: StepContext) -> ChannelResult:
            archiver = SourceArchiver(ctx, config.project.name, archive)
            built: list[Artifact] = []
            for target in archiver.targets():
                result = archiver.build(target)
                if isinstance(result, Err):
                    return result
                built.append(result.value)
            return _attach_all(services, ctx, built)

        channels.append(
            Channel(
                name=ARCHIVE_CHANNEL,
                run=run_archive,
                description=", ".join(archive.formats),
            )
        )

    tap = config.tap
    if tap is not None:

        def run_tap(ctx: StepContext) -> ChannelResult:
            source = archive_checksum(services.record)
            if isinstance(source, Err):
                if ctx.dry_run:
                    # Dry-run archives are never written, so they carry no checksum.
                    ctx.console.print(f"would update {tap.formula} in {tap.repository}", Style.DIM)
                    return Ok(())
                return source
            artifact = source.value
            url = artifact.url or download_url(
                config.project.repository, ctx.event.tag, artifact.name
            )
            updater = TapFormulaUpdater(ctx, repository=tap.repository, formula=tap.formula)
            updated = updater.publish(ctx.event.tag, url, artifact.sha256 or "")
            if isinstance(updated, Err):
                return updated
            return Ok(())

        channels.append(
            Channel(
                name=TAP_CHANNEL,
                run=run_tap,
                needs=(ARCHIVE_CHANNEL,),
                gate=stable_gate,
                description=f"{tap.repository}:{tap.formula}",
            )
        )

    return channels
