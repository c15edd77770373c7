"""Dependency-ordered publication to an eventually consistent registry.

Packages are layered into tiers (Kahn's algorithm): a tier holds every
not-yet-placed package whose dependencies all sit in earlier tiers. Tiers are
published strictly in order with a propagation wait between them, so a
package's dependency lookup never races the publish of that dependency.

The first failed publish aborts the sequence: later tiers depend on the
failed package (directly or through their own dependencies) and cannot be
published. Nothing is retried and nothing already published is rolled back.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Literal, Protocol

from ro.core.result import Err, Ok, Result
from ro.output.console import ConsoleProtocol, Style
from ro.release.errors import (
    CyclicDependency,
    DuplicatePackage,
    GraphError,
    RegistryPublishError,
    UnknownDependency,
)
from ro.release.model import Package, PublishTier

TierStatus = Literal["published", "failed", "not_attempted"]


class RegistryPublisher(Protocol):
    """Publishes one package; knows nothing about ordering."""

    def publish(self, package: Package) -> Result[Package, RegistryPublishError]: ...


class PropagationWaiter(Protocol):
    """Blocks until ``published`` can be assumed visible to ``upcoming``."""

    def wait(self, published: PublishTier, upcoming: PublishTier) -> None: ...


@dataclass(frozen=True, slots=True)
class TierReport:
    tier: PublishTier
    status: TierStatus
    published: tuple[str, ...] = ()
    # Packages the operator marked as already published (manual re-run).
    skipped: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SequenceReport:
    tiers: tuple[TierReport, ...]
    error: RegistryPublishError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def succeeded(self) -> tuple[int, ...]:
        return tuple(t.tier.index for t in self.tiers if t.status == "published")

    @property
    def failed_tier(self) -> TierReport | None:
        for t in self.tiers:
            if t.status == "failed":
                return t
        return None


def sequence(packages: Iterable[Package]) -> Result[list[PublishTier], GraphError]:
    """Layer packages into publish tiers.

    Within a tier, packages keep their declaration order.
    """
    ordered = list(packages)
    names: set[str] = set()
    for p in ordered:
        if p.name in names:
            return Err(DuplicatePackage(name=p.name))
        names.add(p.name)

    for p in ordered:
        for dep in p.depends_on:
            if dep not in names:
                return Err(UnknownDependency(package=p.name, dependency=dep))

    placed: set[str] = set()
    remaining = ordered
    tiers: list[PublishTier] = []
    while remaining:
        eligible = tuple(p for p in remaining if all(d in placed for d in p.depends_on))
        if not eligible:
            return Err(CyclicDependency(packages=tuple(p.name for p in remaining)))
        tiers.append(PublishTier(index=len(tiers), packages=eligible))
        placed.update(p.name for p in eligible)
        remaining = [p for p in remaining if p.name not in placed]

    return Ok(tiers)


def _publish_sequential(
    packages: Sequence[Package],
    publisher: RegistryPublisher,
) -> tuple[tuple[str, ...], RegistryPublishError | None]:
    published: list[str] = []
    for package in packages:
        result = publisher.publish(package)
        if isinstance(result, Err):
            return tuple(published), result.error
        published.append(package.name)
    return tuple(published), None


def _publish_concurrent(
    packages: Sequence[Package],
    publisher: RegistryPublisher,
    workers: int,
) -> tuple[tuple[str, ...], RegistryPublishError | None]:
    # Packages of one tier share no edge; all of them are attempted and the
    # first failure in declaration order is reported.
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(publisher.publish, packages))

    published: list[str] = []
    error: RegistryPublishError | None = None
    for package, result in zip(packages, results):
        if isinstance(result, Ok):
            published.append(package.name)
        elif error is None:
            error = result.error
    return tuple(published), error


def publish_tiers(
    tiers: Sequence[PublishTier],
    *,
    publisher: RegistryPublisher,
    waiter: PropagationWaiter,
    console: ConsoleProtocol,
    already_published: frozenset[str] = frozenset(),
    workers: int = 1,
) -> SequenceReport:
    reports: list[TierReport] = []
    error: RegistryPublishError | None = None

    for i, tier in enumerate(tiers):
        if error is not None:
            reports.append(TierReport(tier=tier, status="not_attempted"))
            console.print(f"tier {tier.index} not attempted: {', '.join(tier.names)}", Style.DIM)
            continue

        todo = [p for p in tier.packages if p.name not in already_published]
        skipped = tuple(p.name for p in tier.packages if p.name in already_published)
        for name in skipped:
            console.print(f"{name}: marked as already published, skipping", Style.DIM)

        if workers > 1 and len(todo) > 1:
            published, error = _publish_concurrent(todo, publisher, workers)
        else:
            published, error = _publish_sequential(todo, publisher)

        if error is not None:
            reports.append(
                TierReport(tier=tier, status="failed", published=published, skipped=skipped)
            )
            console.error(f"tier {tier.index} failed; remaining tiers will not be attempted")
            continue

        reports.append(
            TierReport(tier=tier, status="published", published=published, skipped=skipped)
        )
        console.success(f"tier {tier.index} published: {', '.join(tier.names)}")

        # Nothing new to propagate when the whole tier was already published.
        if published and i < len(tiers) - 1:
            waiter.wait(tier, tiers[i + 1])

    return SequenceReport(tiers=tuple(reports), error=error)
