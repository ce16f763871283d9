"""Post-install toolchain verification."""

from __future__ import annotations

from collections.abc import Sequence

from relpipe.errors import ProvisioningError
from relpipe.models import ToolchainRequirement
from relpipe.observability import StructuredLogger
from relpipe.process import ExecutionScope, run_command


def probe_versions(
    requirements: Sequence[ToolchainRequirement],
    *,
    scope: ExecutionScope,
    timeout: float | None = None,
    logger: StructuredLogger | None = None,
) -> dict[str, str]:
    """Return ``{tool: version}`` or raise on the first tool without one."""
    versions: dict[str, str] = {}
    for requirement in requirements:
        if requirement.probe is None:
            versions[requirement.name] = _resolve_install_only(requirement, scope=scope)
        else:
            versions[requirement.name] = _probe(
                requirement,
                requirement.probe,
                scope=scope,
                timeout=timeout,
                logger=logger,
            )
        if logger is not None:
            logger.log(
                operation="toolchain_version",
                stage="provisioning",
                tool=requirement.name,
                message=versions[requirement.name],
            )
    return versions


def _probe(
    requirement: ToolchainRequirement,
    probe: tuple[str, ...],
    *,
    scope: ExecutionScope,
    timeout: float | None,
    logger: StructuredLogger | None,
) -> str:
    result = run_command(
        probe,
        scope=scope,
        timeout=timeout,
        logger=logger,
        stage="provisioning",
    )
    version = result.first_output_line() if result.ok else ""
    if not version:
        raise ProvisioningError(
            f"Could not determine a version for `{requirement.name}`.",
            hint=f"Ensure `{requirement.executable_name}` is installed and on the search path.",
            context={
                "tool": requirement.name,
                "command": result.command_line,
                "returncode": result.exit_status(),
                "stderr": result.stderr_tail(),
            },
        )
    return version


def _resolve_install_only(requirement: ToolchainRequirement, *, scope: ExecutionScope) -> str:
    resolved = scope.which(requirement.executable_name)
    if resolved is None:
        raise ProvisioningError(
            f"`{requirement.name}` is not resolvable on the search path.",
            hint=f"Install {requirement.name} or add its directory to PATH.",
            context={"tool": requirement.name, "executable": requirement.executable_name},
        )
    return resolved
