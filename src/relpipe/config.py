"""Pipeline configuration and context resolution."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from relpipe.errors import ValidationError
from relpipe.models import (
    ArchiverMode,
    PipelineContext,
    TargetOS,
    ToolchainRequirement,
    validate_name_component,
)
from relpipe.platforms import detect_host_os, normalize_os_name

DEFAULT_PROJECT = "project"
DEFAULT_OS_ENV_VAR = "TRAVIS_OS_NAME"
DEFAULT_TAG_ENV_VAR = "TRAVIS_TAG"
OS_OVERRIDE_ENV_VAR = "RELPIPE_OS"
TAG_OVERRIDE_ENV_VAR = "RELPIPE_TAG"

# Installed through the Windows package managers, tried in order.
WINDOWS_MANAGERS = ("scoop", "choco")

DEFAULT_WINDOWS_REQUIREMENTS: tuple[ToolchainRequirement, ...] = (
    ToolchainRequirement(
        name="llvm",
        probe=("clang", "--version"),
        managers=WINDOWS_MANAGERS,
        search_dirs=("C:\\Program Files\\LLVM\\bin",),
    ),
    ToolchainRequirement(
        name="msys2",
        executable="msys2",
        managers=WINDOWS_MANAGERS,
        search_dirs=("C:\\tools\\msys64",),
    ),
    ToolchainRequirement(
        name="yasm",
        probe=("yasm", "--version"),
        managers=WINDOWS_MANAGERS,
    ),
    ToolchainRequirement(name="rustc", probe=("rustc", "--version")),
    ToolchainRequirement(name="cargo", probe=("cargo", "--version")),
)

DEFAULT_POSIX_REQUIREMENTS: tuple[ToolchainRequirement, ...] = (
    ToolchainRequirement(name="rustc", probe=("rustc", "--version")),
    ToolchainRequirement(name="cargo", probe=("cargo", "--version")),
)


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    project: str = DEFAULT_PROJECT
    config_dir: str = "config"
    staging_dir: str = "package"
    build_command: tuple[str, ...] = ("cargo", "build", "--release")
    binary_dir: str = "target/release"
    command_timeout: float | None = None
    archiver: ArchiverMode = "inprocess"
    source_date_epoch: int = 0
    os_env_var: str = DEFAULT_OS_ENV_VAR
    tag_env_var: str = DEFAULT_TAG_ENV_VAR
    windows_requirements: tuple[ToolchainRequirement, ...] = DEFAULT_WINDOWS_REQUIREMENTS
    posix_requirements: tuple[ToolchainRequirement, ...] = DEFAULT_POSIX_REQUIREMENTS

    def __post_init__(self) -> None:
        validate_name_component(self.project, field_name="project")
        validate_name_component(self.staging_dir, field_name="staging directory")
        # The staging directory is wiped on every run.
        for field_name, path in (("config_dir", self.config_dir), ("binary_dir", self.binary_dir)):
            if Path(path).parts[:1] == (self.staging_dir,):
                raise ValidationError(
                    f"Staging directory {self.staging_dir!r} overlaps {field_name} {path!r}.",
                    hint="Choose a staging directory name not used by the project.",
                    context={"staging_dir": self.staging_dir, field_name: path},
                )
        if self.source_date_epoch < 0:
            raise ValidationError(
                "source_date_epoch must not be negative.",
                context={"source_date_epoch": str(self.source_date_epoch)},
            )

    def requirements_for(self, target_os: TargetOS) -> tuple[ToolchainRequirement, ...]:
        if target_os == TargetOS.WINDOWS:
            return self.windows_requirements
        return self.posix_requirements


def resolve_context(
    config: PipelineConfig,
    *,
    environ: Mapping[str, str] | None = None,
    target_os: str | None = None,
    version_tag: str | None = None,
    working_directory: str | Path | None = None,
) -> PipelineContext:
    """Build the run context from explicit values, then environment, then host.

    ``RELPIPE_OS``/``RELPIPE_TAG`` win over the CI variables named in *config*.
    """
    env = os.environ if environ is None else environ

    os_name = target_os or env.get(OS_OVERRIDE_ENV_VAR) or env.get(config.os_env_var)
    resolved_os = normalize_os_name(os_name) if os_name else detect_host_os()

    if version_tag is None:
        version_tag = env.get(TAG_OVERRIDE_ENV_VAR) or env.get(config.tag_env_var) or ""

    return PipelineContext.create(
        target_os=resolved_os,
        version_tag=version_tag,
        working_directory=working_directory if working_directory is not None else Path.cwd(),
    )


def project_from_cargo_manifest(working_directory: str | Path) -> str | None:
    """Return ``[package].name`` from ``Cargo.toml`` if it can be read."""
    manifest_path = Path(working_directory) / "Cargo.toml"
    if not manifest_path.is_file():
        return None
    try:
        manifest = tomllib.loads(manifest_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValidationError(
            "Cargo.toml is not valid TOML.",
            hint="Fix the manifest or pass --project explicitly.",
            context={"path": str(manifest_path), "error": str(exc)},
        ) from exc
    package = manifest.get("package")
    if not isinstance(package, dict):
        return None
    name = package.get("name")
    return name if isinstance(name, str) and name else None


__all__ = [
    "DEFAULT_POSIX_REQUIREMENTS",
    "DEFAULT_WINDOWS_REQUIREMENTS",
    "PipelineConfig",
    "project_from_cargo_manifest",
    "resolve_context",
]
