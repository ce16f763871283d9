"""Run report model and stable JSON/CBOR export."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import cbor2

from relpipe.models import PipelineResult
from relpipe.observability import StructuredLogger

ReportFormat = Literal["json", "cbor"]


@dataclass(frozen=True, slots=True)
class PipelineReport:
    context: dict[str, str]
    state: str
    transitions: tuple[str, ...]
    failed_stage: str | None = None
    error: dict[str, object] | None = None
    toolchain_versions: dict[str, str] = field(default_factory=dict)
    build: dict[str, object] | None = None
    archive: str | None = None
    logs: tuple[dict[str, Any], ...] = ()
    schema_version: int = 1

    @classmethod
    def from_result(
        cls,
        result: PipelineResult,
        logger: StructuredLogger | None = None,
    ) -> PipelineReport:
        build: dict[str, object] | None = None
        if result.build is not None:
            build = {
                "command": list(result.build.command),
                "exit_code": result.build.exit_code,
                "binary": str(result.build.binary_path),
            }
        return cls(
            context={
                "target_os": str(result.context.target_os),
                "version_tag": result.context.version_tag,
                "working_directory": str(result.context.working_directory),
            },
            state=str(result.state),
            transitions=tuple(str(stage) for stage in result.transitions),
            failed_stage=str(result.failed_stage) if result.failed_stage is not None else None,
            error=result.error.to_dict() if result.error is not None else None,
            toolchain_versions=dict(result.toolchain_versions),
            build=build,
            archive=str(result.archive_path) if result.archive_path is not None else None,
            logs=tuple(logger.records) if logger is not None else (),
        )

    def to_json(self, path: str | Path | None = None) -> str:
        encoded = json.dumps(self._payload(), indent=2, sort_keys=True) + "\n"
        if path is not None:
            Path(path).write_text(encoded, encoding="utf-8")
        return encoded

    def to_cbor(self, path: str | Path | None = None) -> bytes:
        encoded = cbor2.dumps(self._payload(), canonical=True)
        if path is not None:
            Path(path).write_bytes(encoded)
        return encoded

    def write(self, path: str | Path, *, fmt: ReportFormat = "json") -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if fmt == "cbor":
            self.to_cbor(output_path)
        else:
            self.to_json(output_path)
        return output_path

    def _payload(self) -> dict[str, object]:
        return {
            "schema_version": self.schema_version,
            "context": dict(sorted(self.context.items())),
            "state": self.state,
            "transitions": list(self.transitions),
            "failed_stage": self.failed_stage,
            "error": self.error,
            "toolchain_versions": dict(sorted(self.toolchain_versions.items())),
            "build": self.build,
            "archive": self.archive,
            "logs": [dict(record) for record in self.logs],
        }
