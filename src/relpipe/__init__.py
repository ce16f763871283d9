"""Public package entrypoint for the relpipe release pipeline."""

from .config import PipelineConfig, resolve_context
from .errors import (
    BuildError,
    ErrorCode,
    PackagingError,
    PipelineCancelled,
    ProvisioningError,
    RelpipeError,
    StagingError,
    ValidationError,
)
from .models import (
    ArchiveSpec,
    BuildResult,
    PackageManifest,
    PipelineContext,
    PipelineResult,
    Stage,
    TargetOS,
    ToolchainRequirement,
)
from .pipeline import CancellationToken, Pipeline, run_pipeline
from .report import PipelineReport

__all__ = [
    "ArchiveSpec",
    "BuildError",
    "BuildResult",
    "CancellationToken",
    "ErrorCode",
    "PackageManifest",
    "PackagingError",
    "Pipeline",
    "PipelineCancelled",
    "PipelineConfig",
    "PipelineContext",
    "PipelineReport",
    "PipelineResult",
    "ProvisioningError",
    "RelpipeError",
    "Stage",
    "StagingError",
    "TargetOS",
    "ToolchainRequirement",
    "ValidationError",
    "resolve_context",
    "run_pipeline",
]
