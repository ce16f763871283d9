"""POSIX provisioning: the toolchain comes from the host, only verify it."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from relpipe.models import PipelineContext, ToolchainRequirement
from relpipe.observability import StructuredLogger
from relpipe.process import ExecutionScope
from relpipe.provision.base import ProvisioningResult
from relpipe.provision.verify import probe_versions


@dataclass(slots=True)
class PosixProvisioner:
    name: str = "posix"
    timeout: float | None = None
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def provision(
        self,
        requirements: Sequence[ToolchainRequirement],
        context: PipelineContext,
        scope: ExecutionScope,
    ) -> ProvisioningResult:
        self.logger.log(
            operation="provision",
            stage="provisioning",
            message=f"Using host toolchain for {context.target_os}; nothing to install.",
        )
        for requirement in requirements:
            scope = scope.with_path(*requirement.search_dirs)
        versions = probe_versions(
            requirements,
            scope=scope,
            timeout=self.timeout,
            logger=self.logger,
        )
        return ProvisioningResult(versions=versions, scope=scope)
