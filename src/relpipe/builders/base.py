"""Typed interface for release-build invokers."""

from __future__ import annotations

from typing import Protocol

from relpipe.models import BuildResult, PipelineContext
from relpipe.provision.base import ProvisioningResult


class BuildInvoker(Protocol):
    name: str

    def build(self, context: PipelineContext, provisioning: ProvisioningResult) -> BuildResult:
        """Run the release build once and return the produced binary."""
