from __future__ import annotations

from ro.core.config import ImagesConfig
from ro.core.result import Err, Ok, Result
from ro.release.errors import ReleaseError
from ro.release.model import Artifact
from ro.release.steps import StepContext, run_step, tool_available
from ro.release.tags import image_tags
from ro.release.timeouts import BUILD_TIMEOUT_SECONDS


def image_labels(ctx: StepContext, source_url: str) -> dict[str, str]:
    return {
        "org.opencontainers.image.version": ctx.event.version,
        "org.opencontainers.image.revision": ctx.event.commit,
        "org.opencontainers.image.source": source_url,
    }


def buildx_command(images: ImagesConfig, refs: list[str], labels: dict[str, str]) -> list[str]:
    cmd = ["docker", "buildx", "build", "--pull", "--file", images.dockerfile]
    for ref in refs:
        cmd += ["--tag", ref]
    for key, value in labels.items():
        cmd += ["--label", f"{key}={value}"]
    cmd.append("--push" if images.push else "--load")
    cmd.append(images.context)
    return cmd


class ImagePublisher:
    """Builds one container image and pushes it under every configured name."""

    def __init__(self, ctx: StepContext, images: ImagesConfig, *, repository: str) -> None:
        self._ctx = ctx
        self._images = images
        self._repository = repository

    def refs(self) -> list[str]:
        return [ref for name in self._images.names for ref in image_tags(name, self._ctx.event.tag)]

    def publish(self) -> Result[tuple[Artifact, ...], ReleaseError]:
        ctx = self._ctx
        if not tool_available(ctx, "docker"):
            return Err(
                ReleaseError(
                    kind="docker_failed",
                    message="docker: missing",
                    hint="Install Docker with the buildx plugin.",
                )
            )

        refs = self.refs()
        labels = image_labels(ctx, f"https://github.com/{self._repository}")
        cmd = buildx_command(self._images, refs, labels)
        result = run_step(ctx, cmd, cwd=ctx.source_root, timeout=BUILD_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            e = result.error
            return Err(
                ReleaseError(
                    kind="docker_failed",
                    message=f"docker buildx build failed ({e.returncode})",
                    hint=e.output[-2000:] or None,
                )
            )

        return Ok(tuple(Artifact(kind="image", name=ref, location=ref) for ref in refs))
