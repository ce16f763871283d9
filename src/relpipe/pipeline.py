"""Pipeline orchestrator: provisioning -> building -> packaging.

The run is a small state machine (``start``, ``provisioning``, ``building``,
``packaging``, ``done``, with ``failed`` reachable from any stage). The first
stage error ends the run; it is recorded verbatim on the result together with
the stage it came from, unless the run was interrupted, in which case the
stage error is reported as a cancellation. There are no retries and no resume:
a failed run is started again from ``start``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from relpipe.builders import BuildInvoker, CargoBuildInvoker
from relpipe.config import PipelineConfig
from relpipe.errors import PipelineCancelled, RelpipeError
from relpipe.models import PipelineContext, PipelineResult, Stage
from relpipe.observability import StructuredLogger
from relpipe.packaging import ArtifactPackager
from relpipe.process import ExecutionScope
from relpipe.provision import PosixProvisioner, Provisioner, provisioner_for


@dataclass(slots=True)
class CancellationToken:
    """Set from a signal handler; honoured at the next stage boundary."""

    reason: str | None = None

    def cancel(self, reason: str = "Cancelled by operator.") -> None:
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self.reason is not None


@dataclass(slots=True)
class Pipeline:
    config: PipelineConfig = field(default_factory=PipelineConfig)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    install_toolchain: bool = True
    provisioner: Provisioner | None = None
    builder: BuildInvoker | None = None
    packager: ArtifactPackager | None = None

    def run(
        self,
        context: PipelineContext,
        *,
        cancel: CancellationToken | None = None,
        scope: ExecutionScope | None = None,
    ) -> PipelineResult:
        result = PipelineResult(context=context)
        scope = scope if scope is not None else ExecutionScope.from_environ()
        self.logger.log(
            operation="pipeline_start",
            stage=Stage.START,
            message=f"Working directory {context.working_directory}",
            extra={"target_os": str(context.target_os), "version_tag": context.version_tag},
        )

        try:
            self._enter(result, Stage.PROVISIONING, cancel)
            provisioning = self._provisioner(context).provision(
                self.config.requirements_for(context.target_os),
                context,
                scope,
            )
            result.toolchain_versions = dict(provisioning.versions)

            self._enter(result, Stage.BUILDING, cancel)
            result.build = self._builder().build(context, provisioning)

            self._enter(result, Stage.PACKAGING, cancel)
            result.archive_path = self._packager().package(
                context,
                result.build,
                scope=provisioning.scope,
            )
        except RelpipeError as exc:
            failed_stage = result.state
            error = exc
            if cancel is not None and cancel.cancelled and not isinstance(exc, PipelineCancelled):
                # An interrupt also reaches child processes; their failure is the cancellation.
                error = _interrupted(cancel, failed_stage, exc)
            result.fail(failed_stage, error)
            self.logger.log(
                operation="pipeline_failed",
                stage=failed_stage,
                message=error.message,
                level="error",
                extra=error.to_dict(),
            )
            return result

        result.advance(Stage.DONE)
        self.logger.log(
            operation="pipeline_complete",
            stage=Stage.DONE,
            message=f"Produced {result.archive_path}",
        )
        return result

    def _enter(
        self,
        result: PipelineResult,
        stage: Stage,
        cancel: CancellationToken | None,
    ) -> None:
        if cancel is not None and cancel.cancelled:
            raise PipelineCancelled(
                cancel.reason or "Pipeline cancelled.",
                hint="Restart the pipeline from the beginning.",
                context={"stage": str(result.state), "next_stage": str(stage)},
            )
        result.advance(stage)
        self.logger.log(operation="stage_start", stage=stage, message=f"Entering {stage}.")

    def _provisioner(self, context: PipelineContext) -> Provisioner:
        if self.provisioner is not None:
            return self.provisioner
        if not self.install_toolchain:
            return PosixProvisioner(timeout=self.config.command_timeout, logger=self.logger)
        return provisioner_for(
            context.target_os,
            timeout=self.config.command_timeout,
            logger=self.logger,
        )

    def _builder(self) -> BuildInvoker:
        if self.builder is not None:
            return self.builder
        return CargoBuildInvoker(
            project=self.config.project,
            command=self.config.build_command,
            binary_dir=self.config.binary_dir,
            timeout=self.config.command_timeout,
            logger=self.logger,
        )

    def _packager(self) -> ArtifactPackager:
        if self.packager is not None:
            return self.packager
        return ArtifactPackager(
            project=self.config.project,
            config_dir=self.config.config_dir,
            staging_dir=self.config.staging_dir,
            archiver=self.config.archiver,
            source_date_epoch=self.config.source_date_epoch,
            timeout=self.config.command_timeout,
            logger=self.logger,
        )


def _interrupted(cancel: CancellationToken, stage: Stage, cause: RelpipeError) -> PipelineCancelled:
    context = {
        key: value for key, value in cause.context.items() if key in ("command", "returncode")
    }
    error = PipelineCancelled(
        cancel.reason or "Pipeline cancelled.",
        hint="Restart the pipeline from the beginning.",
        context={"stage": str(stage), "interrupted_error": str(cause.code), **context},
    )
    error.__cause__ = cause
    return error


def run_pipeline(
    context: PipelineContext,
    *,
    config: PipelineConfig | None = None,
    logger: StructuredLogger | None = None,
    cancel: CancellationToken | None = None,
) -> PipelineResult:
    pipeline = Pipeline(
        config=config if config is not None else PipelineConfig(),
        logger=logger if logger is not None else StructuredLogger(),
    )
    return pipeline.run(context, cancel=cancel)


__all__ = ["CancellationToken", "Pipeline", "run_pipeline"]
