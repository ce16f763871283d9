"""Core typed dataclasses for pipeline context, stage results and archives."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Literal

from relpipe.errors import RelpipeError, ValidationError


class TargetOS(StrEnum):
    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "macos"


class Stage(StrEnum):
    """Pipeline states. ``DONE`` and ``FAILED`` are terminal."""

    START = "start"
    PROVISIONING = "provisioning"
    BUILDING = "building"
    PACKAGING = "packaging"
    DONE = "done"
    FAILED = "failed"


PackageManagerName = Literal["scoop", "choco"]
ArchiverMode = Literal["auto", "external", "inprocess"]

_FORBIDDEN_NAME_CHARS = frozenset("/\\:*?\"<>| \t\n")


def validate_name_component(value: str, *, field_name: str, allow_empty: bool = False) -> str:
    """Reject values that cannot appear in a single archive filename component."""
    if not value:
        if allow_empty:
            return value
        raise ValidationError(f"{field_name} must be non-empty.")
    if value in {".", ".."} or any(char in _FORBIDDEN_NAME_CHARS for char in value):
        raise ValidationError(
            f"{field_name} {value!r} cannot be used in an archive filename.",
            hint="Use letters, digits, dots, dashes and underscores only.",
            context={"field": field_name, "value": value},
        )
    return value


@dataclass(frozen=True, slots=True)
class PipelineContext:
    target_os: TargetOS
    version_tag: str
    working_directory: Path

    @classmethod
    def create(
        cls,
        *,
        target_os: TargetOS | str,
        version_tag: str | None = None,
        working_directory: str | Path,
    ) -> PipelineContext:
        try:
            resolved_os = TargetOS(target_os)
        except ValueError as exc:
            raise ValidationError(
                f"Unsupported target OS {target_os!r}.",
                hint=f"Use one of: {', '.join(item.value for item in TargetOS)}.",
            ) from exc
        tag = (version_tag or "").strip()
        validate_name_component(tag, field_name="version tag", allow_empty=True)
        return cls(
            target_os=resolved_os,
            version_tag=tag,
            working_directory=Path(working_directory).resolve(),
        )

    @property
    def is_windows(self) -> bool:
        return self.target_os == TargetOS.WINDOWS


@dataclass(frozen=True, slots=True)
class ToolchainRequirement:
    """A tool the build needs, how to install it and how to verify it.

    ``probe`` is the version command. Install-only components leave it unset
    and are verified by resolving ``executable`` on the search path instead.
    """

    name: str
    probe: tuple[str, ...] | None = None
    package: str | None = None
    executable: str | None = None
    managers: tuple[PackageManagerName, ...] = ()
    search_dirs: tuple[str, ...] = ()

    @property
    def installable(self) -> bool:
        return bool(self.managers)

    @property
    def package_id(self) -> str:
        return self.package or self.name

    @property
    def executable_name(self) -> str:
        if self.executable:
            return self.executable
        if self.probe:
            return self.probe[0]
        return self.name


@dataclass(frozen=True, slots=True)
class BuildResult:
    exit_code: int
    binary_path: Path
    toolchain_versions: Mapping[str, str] = field(default_factory=dict)
    command: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    source: Path
    destination: str


@dataclass(frozen=True, slots=True)
class PackageManifest:
    staging_dir: str
    entries: tuple[ManifestEntry, ...]

    def destinations(self) -> tuple[str, ...]:
        return tuple(entry.destination for entry in self.entries)


def archive_extension(target_os: TargetOS) -> str:
    return "zip" if target_os == TargetOS.WINDOWS else "tar.gz"


@dataclass(frozen=True, slots=True)
class ArchiveSpec:
    project: str
    target_os: TargetOS
    version_tag: str = ""

    @property
    def ext(self) -> str:
        return archive_extension(self.target_os)

    @property
    def stem(self) -> str:
        parts = [self.project, str(self.target_os)]
        if self.version_tag:
            parts.append(self.version_tag)
        return "-".join(parts)

    @property
    def filename(self) -> str:
        return f"{self.stem}.{self.ext}"


@dataclass(slots=True)
class PipelineResult:
    context: PipelineContext
    state: Stage = Stage.START
    transitions: list[Stage] = field(default_factory=lambda: [Stage.START])
    failed_stage: Stage | None = None
    error: RelpipeError | None = None
    toolchain_versions: dict[str, str] = field(default_factory=dict)
    build: BuildResult | None = None
    archive_path: Path | None = None

    @property
    def ok(self) -> bool:
        return self.state is Stage.DONE

    def advance(self, stage: Stage) -> None:
        if self.state in (Stage.DONE, Stage.FAILED):
            raise RuntimeError(f"Pipeline already finished in state {self.state}.")
        self.state = stage
        self.transitions.append(stage)

    def fail(self, stage: Stage, error: RelpipeError) -> None:
        self.failed_stage = stage
        self.error = error
        self.advance(Stage.FAILED)

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error
