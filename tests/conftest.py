"""Shared test fixtures."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from relpipe.models import PipelineContext, TargetOS

Handler = Callable[[list[str], dict[str, Any]], "subprocess.CompletedProcess[str]"]

FAKE_BIN = "/fake/bin"


@dataclass
class FakeHost:
    """Stands in for PATH lookups and external processes.

    ``commands`` records every invocation with the executable reduced to its
    bare name, e.g. ``["cargo", "build", "--release"]``.
    """

    available: set[str] = field(default_factory=set)
    handlers: dict[str, Handler] = field(default_factory=dict)
    commands: list[list[str]] = field(default_factory=list)
    calls: list[dict[str, Any]] = field(default_factory=list)

    def which(self, name: str, path: str | None = None) -> str | None:
        return f"{FAKE_BIN}/{name}" if name in self.available else None

    def on(
        self,
        tool: str,
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        effect: Callable[[list[str], dict[str, Any]], None] | None = None,
    ) -> None:
        self.available.add(tool)

        def handler(command: list[str], kwargs: dict[str, Any]) -> subprocess.CompletedProcess[str]:
            if effect is not None:
                effect(command, kwargs)
            return subprocess.CompletedProcess(command, returncode, stdout, stderr)

        self.handlers[tool] = handler

    def run(self, command: list[str], **kwargs: Any) -> subprocess.CompletedProcess[str]:
        name = command[0].rsplit("/", 1)[-1]
        logical = [name, *command[1:]]
        self.commands.append(logical)
        self.calls.append(kwargs)
        handler = self.handlers.get(name)
        if handler is None:
            raise FileNotFoundError(2, "No such file or directory", name)
        return handler(logical, kwargs)

    def commands_for(self, tool: str) -> list[list[str]]:
        return [command for command in self.commands if command[0] == tool]


@pytest.fixture
def fake_host(monkeypatch: pytest.MonkeyPatch) -> FakeHost:
    host = FakeHost()
    monkeypatch.setattr("relpipe.process.shutil.which", host.which)
    monkeypatch.setattr("relpipe.process.subprocess.run", host.run)
    return host


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A working directory with a config tree, as a cargo project checkout would have."""
    root = tmp_path / "checkout"
    config = root / "config"
    (config / "nested").mkdir(parents=True)
    (config / "chain.toml").write_text("chain_id = 1\n", encoding="utf-8")
    (config / "nested" / "genesis.json").write_text('{"height": 0}\n', encoding="utf-8")
    return root


def _write_binary(project_dir: Path, name: str) -> Path:
    binary = project_dir / "target" / "release" / name
    binary.parent.mkdir(parents=True, exist_ok=True)
    binary.write_bytes(b"\x7fELF fake binary\n")
    binary.chmod(0o755)
    return binary


def _install_toolchain(host: FakeHost, project_dir: Path, binary_name: str) -> None:
    """Register rustc/cargo fakes; ``cargo build`` drops *binary_name* into target/release."""
    host.on("rustc", stdout="rustc 1.70.0 (90c541806 2023-05-31)\n")

    def cargo(command: list[str], kwargs: dict[str, Any]) -> subprocess.CompletedProcess[str]:
        if command[1:2] == ["--version"]:
            return subprocess.CompletedProcess(command, 0, "cargo 1.70.0 (ec8a8a0ca 2023-04-25)\n", "")
        _write_binary(project_dir, binary_name)
        return subprocess.CompletedProcess(command, 0, "Finished release\n", "")

    host.available.add("cargo")
    host.handlers["cargo"] = cargo


@pytest.fixture
def make_binary(project_dir: Path) -> Callable[[str], Path]:
    return lambda name: _write_binary(project_dir, name)


@pytest.fixture
def cargo_toolchain(fake_host: FakeHost, project_dir: Path) -> Callable[[str], None]:
    return lambda binary_name: _install_toolchain(fake_host, project_dir, binary_name)


@pytest.fixture
def linux_context(project_dir: Path) -> PipelineContext:
    return PipelineContext.create(
        target_os=TargetOS.LINUX,
        version_tag="",
        working_directory=project_dir,
    )


@pytest.fixture
def windows_context(project_dir: Path) -> PipelineContext:
    return PipelineContext.create(
        target_os=TargetOS.WINDOWS,
        version_tag="v1.2.0",
        working_directory=project_dir,
    )
