"""Scoped external-process execution.

Every external command (package managers, compilers, archivers) runs through
:func:`run_command` with an explicit :class:`ExecutionScope`. The scope carries
the environment and search path for the call, so provisioning can extend
``PATH`` for later stages without touching ``os.environ``.
"""

from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from relpipe.observability import StructuredLogger

OUTPUT_TAIL_LIMIT = 2000
MISSING_EXECUTABLE_RETURNCODE = 127


@dataclass(frozen=True, slots=True)
class ExecutionScope:
    base_env: Mapping[str, str] = field(default_factory=dict)
    path_prepend: tuple[str, ...] = ()
    overrides: Mapping[str, str] = field(default_factory=dict)
    path_separator: str = os.pathsep

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> ExecutionScope:
        return cls(base_env=dict(os.environ if environ is None else environ))

    def with_path(self, *directories: str) -> ExecutionScope:
        merged = list(self.path_prepend)
        for directory in directories:
            if directory and directory not in merged:
                merged.append(directory)
        return ExecutionScope(
            base_env=self.base_env,
            path_prepend=tuple(merged),
            overrides=self.overrides,
            path_separator=self.path_separator,
        )

    def with_env(self, **values: str) -> ExecutionScope:
        return ExecutionScope(
            base_env=self.base_env,
            path_prepend=self.path_prepend,
            overrides={**self.overrides, **values},
            path_separator=self.path_separator,
        )

    def search_path(self) -> str:
        inherited = self.overrides.get("PATH", self.base_env.get("PATH", ""))
        parts = [*self.path_prepend]
        if inherited:
            parts.append(inherited)
        return self.path_separator.join(parts)

    def environ(self) -> dict[str, str]:
        env = dict(self.base_env)
        env.update(self.overrides)
        env["PATH"] = self.search_path()
        return env

    def which(self, name: str) -> str | None:
        return shutil.which(name, path=self.search_path())


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)

    def exit_status(self) -> str:
        if self.timed_out:
            return "timeout"
        return str(self.returncode)

    def stderr_tail(self) -> str:
        return self.stderr[-OUTPUT_TAIL_LIMIT:] if self.stderr else ""

    def first_output_line(self) -> str:
        for stream in (self.stdout, self.stderr):
            for line in (stream or "").splitlines():
                if line.strip():
                    return line.strip()
        return ""


def run_command(
    argv: Sequence[str],
    *,
    scope: ExecutionScope,
    cwd: str | Path | None = None,
    timeout: float | None = None,
    logger: StructuredLogger | None = None,
    stage: str | None = None,
) -> CommandResult:
    """Run *argv* to completion inside *scope*; never raises on command failure.

    A timeout or a missing executable is reported as a failed result so each
    stage can raise its own error type.
    """
    command = tuple(argv)
    if logger is not None:
        logger.log(
            operation="command",
            stage=stage,
            tool=command[0],
            message=shlex.join(command),
            extra={"cwd": str(cwd)} if cwd is not None else None,
        )

    # subprocess resolves argv[0] against the parent PATH, not the child env.
    executable = scope.which(command[0]) or command[0]
    try:
        completed = subprocess.run(
            [executable, *command[1:]],
            cwd=str(cwd) if cwd is not None else None,
            env=scope.environ(),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        result = CommandResult(
            argv=command,
            returncode=None,
            stdout=_as_text(exc.stdout),
            stderr=_as_text(exc.stderr),
            timed_out=True,
        )
    except FileNotFoundError as exc:
        result = CommandResult(
            argv=command,
            returncode=MISSING_EXECUTABLE_RETURNCODE,
            stderr=str(exc),
        )
    else:
        result = CommandResult(
            argv=command,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    if logger is not None and not result.ok:
        logger.log(
            operation="command_failed",
            stage=stage,
            tool=command[0],
            message=f"{result.command_line} exited with {result.exit_status()}",
            level="error",
            extra={"stderr": result.stderr_tail()},
        )
    return result


def _as_text(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


__all__ = ["CommandResult", "ExecutionScope", "run_command"]
