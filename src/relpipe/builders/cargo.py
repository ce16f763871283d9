"""Cargo release build."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from relpipe.errors import BuildError
from relpipe.models import BuildResult, PipelineContext
from relpipe.observability import StructuredLogger
from relpipe.process import run_command
from relpipe.provision.base import ProvisioningResult


@dataclass(slots=True)
class CargoBuildInvoker:
    project: str
    command: tuple[str, ...] = ("cargo", "build", "--release")
    binary_dir: str = "target/release"
    locked: bool = False
    timeout: float | None = None
    name: str = "cargo"
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def build(self, context: PipelineContext, provisioning: ProvisioningResult) -> BuildResult:
        command = list(self.command)
        if self.locked and "--locked" not in command:
            command.append("--locked")

        # Record the toolchain snapshot right before the build it applies to.
        for tool, version in sorted(provisioning.versions.items()):
            self.logger.log(
                operation="toolchain_snapshot",
                stage="building",
                tool=tool,
                message=version,
            )

        result = run_command(
            command,
            scope=provisioning.scope,
            cwd=context.working_directory,
            timeout=self.timeout,
            logger=self.logger,
            stage="building",
        )
        if not result.ok:
            raise BuildError(
                f"{self.name} build failed.",
                hint=f"Check {self.name} output and build configuration.",
                context={
                    "builder": self.name,
                    "command": result.command_line,
                    "returncode": result.exit_status(),
                    "stderr": result.stderr_tail(),
                },
            )

        binary_path = self.binary_path(context)
        self.logger.log(
            operation="build_complete",
            stage="building",
            tool=self.name,
            message=f"Release build finished; expecting {binary_path.name}.",
            extra={"binary": str(binary_path)},
        )
        return BuildResult(
            exit_code=result.returncode or 0,
            binary_path=binary_path,
            toolchain_versions=dict(provisioning.versions),
            command=tuple(command),
        )

    def binary_path(self, context: PipelineContext) -> Path:
        filename = f"{self.project}.exe" if context.is_windows else self.project
        return context.working_directory / Path(self.binary_dir) / filename
