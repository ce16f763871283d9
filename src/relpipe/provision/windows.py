"""Windows toolchain provisioning through scoop, with chocolatey as fallback.

Scoop is bootstrapped when its command does not resolve: the PowerShell
execution policy is set to ``RemoteSigned`` for the current user (never a
machine-wide bypass) and the upstream installer script is run. Each
requirement is then installed with the first package manager that succeeds.
Package managers report "already installed" for packages from a previous run,
which is treated as success so repeated runs stay idempotent.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from relpipe.errors import ProvisioningError
from relpipe.models import PipelineContext, ToolchainRequirement
from relpipe.observability import StructuredLogger
from relpipe.process import ExecutionScope, run_command
from relpipe.provision.base import ProvisioningResult
from relpipe.provision.managers import (
    PACKAGE_MANAGERS,
    SCOOP,
    chocolatey_bin_dir,
    execution_policy_command,
    scoop_bootstrap_command,
    scoop_shims_dir,
)
from relpipe.provision.verify import probe_versions


@dataclass(slots=True)
class WindowsProvisioner:
    name: str = "windows"
    execution_policy: str = "RemoteSigned"
    run_as_admin: bool = True
    timeout: float | None = None
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def provision(
        self,
        requirements: Sequence[ToolchainRequirement],
        context: PipelineContext,
        scope: ExecutionScope,
    ) -> ProvisioningResult:
        scope = scope.with_path(
            scoop_shims_dir(scope.base_env),
            chocolatey_bin_dir(scope.base_env),
        )
        if any(requirement.installable for requirement in requirements):
            self._ensure_scoop(scope, context)

        installed_with: dict[str, str] = {}
        for requirement in requirements:
            if requirement.installable:
                installed_with[requirement.name] = self._install(requirement, scope, context)
            scope = scope.with_path(*requirement.search_dirs)

        versions = probe_versions(
            requirements,
            scope=scope,
            timeout=self.timeout,
            logger=self.logger,
        )
        return ProvisioningResult(versions=versions, scope=scope, installed_with=installed_with)

    def _ensure_scoop(self, scope: ExecutionScope, context: PipelineContext) -> None:
        if scope.which(SCOOP.command) is not None:
            self.logger.log(
                operation="bootstrap_skipped",
                stage="provisioning",
                tool=SCOOP.name,
                message="scoop already available.",
            )
            return

        self.logger.log(
            operation="bootstrap",
            stage="provisioning",
            tool=SCOOP.name,
            message=f"scoop not found; setting {self.execution_policy} for CurrentUser and installing.",
        )
        for command in (
            execution_policy_command(policy=self.execution_policy),
            scoop_bootstrap_command(run_as_admin=self.run_as_admin),
        ):
            result = run_command(
                command,
                scope=scope,
                cwd=context.working_directory,
                timeout=self.timeout,
                logger=self.logger,
                stage="provisioning",
            )
            if not result.ok:
                raise ProvisioningError(
                    "Failed to bootstrap the scoop package manager.",
                    hint="Run the command manually to inspect the PowerShell error.",
                    context={
                        "tool": SCOOP.name,
                        "command": result.command_line,
                        "returncode": result.exit_status(),
                        "stderr": result.stderr_tail(),
                    },
                )

        if scope.which(SCOOP.command) is None:
            raise ProvisioningError(
                "scoop was installed but is still not resolvable.",
                hint="Check that the scoop shims directory exists.",
                context={"tool": SCOOP.name, "search_path": scope.search_path()},
            )

    def _install(
        self,
        requirement: ToolchainRequirement,
        scope: ExecutionScope,
        context: PipelineContext,
    ) -> str:
        attempts: list[str] = []
        for manager_name in requirement.managers:
            manager = PACKAGE_MANAGERS[manager_name]
            if scope.which(manager.command) is None:
                self.logger.log(
                    operation="manager_unavailable",
                    stage="provisioning",
                    tool=requirement.name,
                    message=f"{manager.name} is not available; trying the next package manager.",
                    level="warning",
                )
                attempts.append(f"{manager.name}: not available")
                continue

            result = run_command(
                manager.install_command(requirement.package_id),
                scope=scope,
                cwd=context.working_directory,
                timeout=self.timeout,
                logger=self.logger,
                stage="provisioning",
            )
            if manager.install_succeeded(result):
                self.logger.log(
                    operation="install",
                    stage="provisioning",
                    tool=requirement.name,
                    message=f"{requirement.name} installed with {manager.name}.",
                    extra={"returncode": result.exit_status()},
                )
                return manager.name
            attempts.append(f"{result.command_line}: exit {result.exit_status()}")

        raise ProvisioningError(
            f"Could not install `{requirement.name}` with any package manager.",
            hint="Install it manually or check the package manager output.",
            context={
                "tool": requirement.name,
                "package": requirement.package_id,
                "attempts": "; ".join(attempts),
            },
        )
