"""Staging directory lifecycle and manifest copying."""

from __future__ import annotations

import shutil
from collections.abc import Collection
from pathlib import Path

from relpipe.errors import PackagingError, StagingError
from relpipe.models import BuildResult, ManifestEntry, PackageManifest, PipelineContext
from relpipe.observability import StructuredLogger


def prepare_staging(
    working_directory: Path,
    name: str,
    *,
    reserved: Collection[str] = (),
    logger: StructuredLogger | None = None,
) -> Path:
    """Remove any previous staging content and return a fresh, empty directory.

    *reserved* names top-level project directories (configuration, build
    output) that must never be cleared as staging.
    """
    root = working_directory.resolve()
    staging_root = root / name
    if name in {"", ".", ".."} or Path(name).name != name:
        raise StagingError(
            "Staging directory must be a direct child of the working directory.",
            context={"staging_dir": name, "working_directory": str(root)},
        )
    if name in reserved:
        raise StagingError(
            f"Staging directory {name!r} would replace project files.",
            hint="Choose a staging directory name not used by the configuration or build output.",
            context={"staging_dir": name, "reserved": ", ".join(sorted(reserved))},
        )

    try:
        if staging_root.is_symlink() or staging_root.is_file():
            staging_root.unlink()
        elif staging_root.exists():
            shutil.rmtree(staging_root)
            if logger is not None:
                logger.log(
                    operation="staging_cleared",
                    stage="packaging",
                    message=f"Removed stale staging directory {staging_root}.",
                )
        staging_root.mkdir()
    except OSError as exc:
        raise StagingError(
            "Could not recreate the staging directory.",
            hint="Make sure no other process holds files in it and it is writable.",
            context={"path": str(staging_root), "error": str(exc)},
        ) from exc
    return staging_root


def build_manifest(
    context: PipelineContext,
    build_result: BuildResult,
    *,
    config_dir: str,
    staging_dir: str,
) -> PackageManifest:
    entries = (
        ManifestEntry(
            source=context.working_directory / config_dir,
            destination=Path(config_dir).name,
        ),
        ManifestEntry(
            source=build_result.binary_path,
            destination=build_result.binary_path.name,
        ),
    )
    return PackageManifest(staging_dir=staging_dir, entries=entries)


def stage_manifest(
    manifest: PackageManifest,
    staging_root: Path,
    *,
    logger: StructuredLogger | None = None,
) -> None:
    for entry in manifest.entries:
        destination = staging_root / entry.destination
        if not entry.source.exists():
            raise PackagingError(
                f"Cannot stage missing path {entry.source}.",
                hint="Check the build output and configuration directory locations.",
                context={"source": str(entry.source), "destination": entry.destination},
            )
        try:
            if entry.source.is_dir():
                shutil.copytree(entry.source, destination)
            else:
                shutil.copy2(entry.source, destination)
        except OSError as exc:
            raise PackagingError(
                f"Failed to copy {entry.source} into the staging directory.",
                context={"source": str(entry.source), "error": str(exc)},
            ) from exc
        if logger is not None:
            logger.log(
                operation="stage",
                stage="packaging",
                message=f"{entry.source} -> {manifest.staging_dir}/{entry.destination}",
            )
