"""Artifact packaging: stage the release tree and archive it."""

from __future__ import annotations

import os
import struct
import tarfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from relpipe.errors import PackagingError
from relpipe.models import ArchiverMode, BuildResult, PipelineContext
from relpipe.observability import StructuredLogger
from relpipe.packaging.archivers import Archiver, select_archiver
from relpipe.packaging.naming import archive_spec
from relpipe.packaging.staging import build_manifest, prepare_staging, stage_manifest
from relpipe.process import ExecutionScope

# zipfile and tarfile report bad field values (e.g. timestamps past 2107) with
# ValueError or struct.error rather than OSError.
ARCHIVE_WRITE_ERRORS = (OSError, ValueError, struct.error, tarfile.TarError, zipfile.BadZipFile)


@dataclass(slots=True)
class ArtifactPackager:
    project: str
    config_dir: str = "config"
    staging_dir: str = "package"
    archiver: ArchiverMode = "inprocess"
    source_date_epoch: int = 0
    timeout: float | None = None
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def package(
        self,
        context: PipelineContext,
        build_result: BuildResult,
        *,
        scope: ExecutionScope | None = None,
    ) -> Path:
        spec = archive_spec(self.project, context.target_os, context.version_tag)
        manifest = build_manifest(
            context,
            build_result,
            config_dir=self.config_dir,
            staging_dir=self.staging_dir,
        )
        staging_root = prepare_staging(
            context.working_directory,
            self.staging_dir,
            reserved=_reserved_names(context, self.config_dir, build_result),
            logger=self.logger,
        )
        stage_manifest(manifest, staging_root, logger=self.logger)

        staged_binary = staging_root / build_result.binary_path.name
        if not staged_binary.is_file():
            raise PackagingError(
                "Staged binary is missing; refusing to archive.",
                context={"binary": str(staged_binary)},
            )

        archiver = select_archiver(
            context.target_os,
            mode=self.archiver,
            scope=scope,
            source_date_epoch=self.source_date_epoch,
            timeout=self.timeout,
            logger=self.logger,
        )
        output = context.working_directory / spec.filename
        self.logger.log(
            operation="archive",
            stage="packaging",
            tool=archiver.name,
            message=f"Writing {spec.filename} ({archiver.fmt}).",
        )
        write_archive(archiver, staging_root, output)
        return output


def write_archive(archiver: Archiver, staging_root: Path, output: Path) -> Path:
    """Write through a ``.partial`` file so a failure never leaves a truncated archive."""
    partial = output.with_name(f"{output.name}.partial")
    partial.unlink(missing_ok=True)
    try:
        archiver.write(staging_root, partial)
        if not partial.is_file():
            raise PackagingError(
                f"{archiver.name} reported success but produced no archive.",
                context={"archiver": archiver.name, "output": str(partial)},
            )
        os.replace(partial, output)
    except ARCHIVE_WRITE_ERRORS as exc:
        raise PackagingError(
            "Failed to write the archive.",
            context={"archiver": archiver.name, "output": str(output), "error": str(exc)},
        ) from exc
    finally:
        partial.unlink(missing_ok=True)
    return output


def _reserved_names(context: PipelineContext, config_dir: str, build_result: BuildResult) -> set[str]:
    reserved = {Path(config_dir).parts[0]}
    if build_result.binary_path.is_relative_to(context.working_directory):
        reserved.add(build_result.binary_path.relative_to(context.working_directory).parts[0])
    return reserved
