"""Typed interfaces for toolchain provisioners."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from relpipe.models import PipelineContext, ToolchainRequirement
from relpipe.process import ExecutionScope


@dataclass(frozen=True, slots=True)
class ProvisioningResult:
    versions: dict[str, str]
    scope: ExecutionScope
    installed_with: dict[str, str] = field(default_factory=dict)


class Provisioner(Protocol):
    name: str

    def provision(
        self,
        requirements: Sequence[ToolchainRequirement],
        context: PipelineContext,
        scope: ExecutionScope,
    ) -> ProvisioningResult:
        """Make every requirement resolvable and return detected versions."""
