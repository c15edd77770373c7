"""Typed loading of ``release.toml``.

The file describes the release graph (packages and their dependency edges)
and every publication channel. Sections other than ``[project]`` are
optional; a missing section disables the matching channel.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, TypeVar

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_float,
    get_int,
    get_list,
    get_str,
    get_str_list,
    get_table,
    get_table_list,
)

__all__ = [
    "ArchiveConfig",
    "BinaryConfig",
    "BundleConfig",
    "Config",
    "ConfigError",
    "DocsConfig",
    "ImagesConfig",
    "PackageConfig",
    "ProjectConfig",
    "RegistryConfig",
    "TapConfig",
    "TargetConfig",
    "load_config",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_PROPAGATION_DELAY_SECONDS",
    "DEFAULT_PUBLISH_COMMANDS",
]

DEFAULT_CONFIG_NAME = "release.toml"

# Settling time between publish tiers. Registries with eventually consistent
# indices typically expose a new version within a minute.
DEFAULT_PROPAGATION_DELAY_SECONDS = 60.0
DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_PUBLISH_TIMEOUT_SECONDS = 15 * 60.0

RegistryKind = Literal["crates", "npm", "pypi"]
Runner = Literal["linux", "macos", "windows", "any"]
BundleKind = Literal["wheel", "archive"]
ArchiveFormat = Literal["zip", "tar.gz"]

_REGISTRIES: tuple[RegistryKind, ...] = ("crates", "npm", "pypi")
_RUNNERS: tuple[Runner, ...] = ("linux", "macos", "windows", "any")
_BUNDLE_KINDS: tuple[BundleKind, ...] = ("wheel", "archive")
_ARCHIVE_FORMATS: tuple[ArchiveFormat, ...] = ("zip", "tar.gz")

DEFAULT_PUBLISH_COMMANDS: dict[RegistryKind, tuple[str, ...]] = {
    "crates": ("cargo", "publish"),
    "npm": ("npm", "publish"),
    "pypi": ("maturin", "publish", "--no-sdist"),
}


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    name: str
    repository: str  # owner/name on the release host


@dataclass(frozen=True, slots=True)
class RegistryConfig:
    """Settings of the dependency-ordered registry channel."""

    propagation_delay: float = DEFAULT_PROPAGATION_DELAY_SECONDS
    # 0 keeps the fixed delay; >0 polls the registry index instead.
    visibility_poll_attempts: int = 0
    visibility_poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    tier_workers: int = 1
    publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT_SECONDS
    commands: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_PUBLISH_COMMANDS)
    )


@dataclass(frozen=True, slots=True)
class PackageConfig:
    name: str
    path: str
    registry: RegistryKind = "crates"
    version: str | None = None
    depends_on: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TargetConfig:
    arch: str
    os: str
    runner: Runner


@dataclass(frozen=True, slots=True)
class BinaryConfig:
    """A server/CLI binary built once per target."""

    name: str
    path: str
    build: tuple[str, ...]
    output: str
    targets: tuple[TargetConfig, ...]


@dataclass(frozen=True, slots=True)
class BundleConfig:
    """A language bundle (wheels, npm tarball, sdist) with its own registry."""

    name: str
    kind: BundleKind
    path: str
    build: tuple[tuple[str, ...], ...]
    outputs: str
    publish: tuple[str, ...] | None = None
    runner: Runner = "any"


@dataclass(frozen=True, slots=True)
class ImagesConfig:
    dockerfile: str
    context: str = "."
    names: tuple[str, ...] = ()
    push: bool = True


@dataclass(frozen=True, slots=True)
class DocsConfig:
    path: str
    build: tuple[tuple[str, ...], ...]
    html_dir: str
    site_repository: str
    site_subdir: str


@dataclass(frozen=True, slots=True)
class ArchiveConfig:
    formats: tuple[ArchiveFormat, ...] = _ARCHIVE_FORMATS
    exclude: tuple[str, ...] = (".git",)


@dataclass(frozen=True, slots=True)
class TapConfig:
    repository: str
    formula: str


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    project: ProjectConfig
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    packages: tuple[PackageConfig, ...] = ()
    binaries: tuple[BinaryConfig, ...] = ()
    bundles: tuple[BundleConfig, ...] = ()
    images: ImagesConfig | None = None
    docs: DocsConfig | None = None
    archive: ArchiveConfig | None = None
    tap: TapConfig | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from parsed TOML.

        Raises:
            ValueError: on missing required keys or invalid values.
        """
        project = get_table(data, "project")
        if project is None:
            raise ValueError("missing [project] table")

        images = get_table(data, "images")
        docs = get_table(data, "docs")
        archive = get_table(data, "archive")
        tap = get_table(data, "tap")
        if tap is not None and archive is None:
            raise ValueError("[tap] pins the source archive; add an [archive] table")

        return cls(
            project=_project(project),
            registry=_registry(get_table(data, "registry") or {}),
            packages=tuple(_package(t) for t in _tables(data, "packages")),
            binaries=tuple(_binary(t) for t in _tables(data, "binaries")),
            bundles=tuple(_bundle(t) for t in _tables(data, "bundles")),
            images=_images(images) if images is not None else None,
            docs=_docs(docs) if docs is not None else None,
            archive=_archive(archive) if archive is not None else None,
            tap=_tap(tap) if tap is not None else None,
        )


def _required(table: StrDict, key: str, where: str) -> str:
    value = get_str(table, key)
    if value is None:
        raise ValueError(f"{where}: missing '{key}'")
    return value


C = TypeVar("C", bound=str)


def _choice(value: str, choices: tuple[C, ...], where: str) -> C:
    for c in choices:
        if value == c:
            return c
    raise ValueError(f"{where}: '{value}' is not one of {', '.join(choices)}")


def _command(table: StrDict, key: str, where: str) -> tuple[str, ...]:
    cmd = get_str_list(table, key)
    if not cmd:
        raise ValueError(f"{where}: '{key}' must be a non-empty list of strings")
    return cmd


def _commands(table: StrDict, key: str, where: str) -> tuple[tuple[str, ...], ...]:
    """Accept either one argv list or a list of argv lists."""
    raw = get_list(table, key)
    if not raw:
        raise ValueError(f"{where}: '{key}' must not be empty")
    if all(isinstance(item, str) for item in raw):
        return (_command(table, key, where),)
    out: list[tuple[str, ...]] = []
    for i, item in enumerate(raw):
        cmd = get_str_list({"cmd": item}, "cmd")
        if not cmd:
            raise ValueError(f"{where}: '{key}[{i}]' must be a non-empty list of strings")
        out.append(cmd)
    return tuple(out)


def _tables(data: Mapping[str, object], key: str) -> list[StrDict]:
    if key not in data:
        return []
    tables = get_table_list(data, key)
    if tables is None:
        raise ValueError(f"'{key}' must be an array of tables")
    return tables


def _project(t: StrDict) -> ProjectConfig:
    repository = _required(t, "repository", "[project]")
    if repository.count("/") != 1:
        raise ValueError(f"[project]: repository must be owner/name, got '{repository}'")
    return ProjectConfig(name=_required(t, "name", "[project]"), repository=repository)


def _registry(t: StrDict) -> RegistryConfig:
    delay = get_float(t, "propagation_delay")
    attempts = get_int(t, "visibility_poll_attempts")
    interval = get_float(t, "visibility_poll_interval")
    workers = get_int(t, "tier_workers")
    timeout = get_float(t, "publish_timeout")

    if delay is not None and delay < 0:
        raise ValueError("[registry]: propagation_delay must be >= 0")
    if workers is not None and workers < 1:
        raise ValueError("[registry]: tier_workers must be >= 1")

    commands: dict[str, tuple[str, ...]] = dict(DEFAULT_PUBLISH_COMMANDS)
    overrides = get_table(t, "commands") or {}
    for registry in overrides:
        kind = _choice(registry, _REGISTRIES, "[registry.commands]")
        commands[kind] = _command(overrides, registry, "[registry.commands]")

    return RegistryConfig(
        propagation_delay=DEFAULT_PROPAGATION_DELAY_SECONDS if delay is None else delay,
        visibility_poll_attempts=max(0, attempts or 0),
        visibility_poll_interval=interval or DEFAULT_POLL_INTERVAL_SECONDS,
        tier_workers=workers or 1,
        publish_timeout=timeout or DEFAULT_PUBLISH_TIMEOUT_SECONDS,
        commands=commands,
    )


def _package(t: StrDict) -> PackageConfig:
    name = _required(t, "name", "[[packages]]")
    where = f"[[packages]] {name}"
    depends_on = get_str_list(t, "depends_on") if "depends_on" in t else ()
    if depends_on is None:
        raise ValueError(f"{where}: depends_on must be a list of package names")
    return PackageConfig(
        name=name,
        path=get_str(t, "path") or ".",
        registry=_choice(get_str(t, "registry") or "crates", _REGISTRIES, where),
        version=get_str(t, "version"),
        depends_on=depends_on,
    )


def _target(t: StrDict, where: str) -> TargetConfig:
    return TargetConfig(
        arch=_required(t, "arch", where),
        os=_required(t, "os", where),
        runner=_choice(_required(t, "runner", where), _RUNNERS, where),
    )


def _binary(t: StrDict) -> BinaryConfig:
    name = _required(t, "name", "[[binaries]]")
    where = f"[[binaries]] {name}"
    targets = get_table_list(t, "targets")
    if not targets:
        raise ValueError(f"{where}: at least one target is required")
    return BinaryConfig(
        name=name,
        path=get_str(t, "path") or ".",
        build=_command(t, "build", where),
        output=_required(t, "output", where),
        targets=tuple(_target(x, where) for x in targets),
    )


def _bundle(t: StrDict) -> BundleConfig:
    name = _required(t, "name", "[[bundles]]")
    where = f"[[bundles]] {name}"
    return BundleConfig(
        name=name,
        kind=_choice(get_str(t, "kind") or "wheel", _BUNDLE_KINDS, where),
        path=get_str(t, "path") or ".",
        build=_commands(t, "build", where),
        outputs=_required(t, "outputs", where),
        publish=_command(t, "publish", where) if "publish" in t else None,
        runner=_choice(get_str(t, "runner") or "any", _RUNNERS, where),
    )


def _images(t: StrDict) -> ImagesConfig:
    names = get_str_list(t, "names")
    if not names:
        raise ValueError("[images]: names must list at least one image")
    push = get_bool(t, "push")
    return ImagesConfig(
        dockerfile=_required(t, "dockerfile", "[images]"),
        context=get_str(t, "context") or ".",
        names=names,
        push=True if push is None else push,
    )


def _docs(t: StrDict) -> DocsConfig:
    return DocsConfig(
        path=get_str(t, "path") or ".",
        build=_commands(t, "build", "[docs]"),
        html_dir=_required(t, "html_dir", "[docs]"),
        site_repository=_required(t, "site_repository", "[docs]"),
        site_subdir=_required(t, "site_subdir", "[docs]"),
    )


def _archive(t: StrDict) -> ArchiveConfig:
    formats = get_str_list(t, "formats") if "formats" in t else _ARCHIVE_FORMATS
    if not formats:
        raise ValueError("[archive]: formats must not be empty")
    exclude = get_str_list(t, "exclude") if "exclude" in t else (".git",)
    if exclude is None:
        raise ValueError("[archive]: exclude must be a list of names")
    return ArchiveConfig(
        formats=tuple(_choice(f, _ARCHIVE_FORMATS, "[archive]") for f in formats),
        exclude=exclude,
    )


def _tap(t: StrDict) -> TapConfig:
    return TapConfig(
        repository=_required(t, "repository", "[tap]"),
        formula=_required(t, "formula", "[tap]"),
    )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling I/O and syntax errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and validate ``release.toml``.

    Args:
        path: Path to the config file

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))
