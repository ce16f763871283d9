from __future__ import annotations

import subprocess
from typing import TYPE_CHECKING, Any

import pytest

from relpipe.config import DEFAULT_POSIX_REQUIREMENTS, DEFAULT_WINDOWS_REQUIREMENTS
from relpipe.errors import ProvisioningError
from relpipe.models import PipelineContext, TargetOS, ToolchainRequirement
from relpipe.observability import StructuredLogger
from relpipe.process import ExecutionScope
from relpipe.provision import (
    CHOCOLATEY,
    SCOOP,
    PosixProvisioner,
    WindowsProvisioner,
    provisioner_for,
)

if TYPE_CHECKING:
    from conftest import FakeHost


def _windows_scope() -> ExecutionScope:
    return ExecutionScope(
        base_env={"PATH": "C:\\Windows\\System32", "USERPROFILE": "C:\\Users\\ci"},
        path_separator=";",
    )


def _windows_tools(host: FakeHost) -> None:
    host.on("clang", stdout="clang version 16.0.6\nTarget: x86_64-pc-windows-msvc\n")
    host.on("yasm", stdout="yasm 1.3.0\n")
    host.on("rustc", stdout="rustc 1.70.0\n")
    host.on("cargo", stdout="cargo 1.70.0\n")
    host.available.add("msys2")


def _scoop_bootstrap(host: FakeHost, *, install_output: str = "") -> None:
    def powershell(command: list[str], kwargs: dict[str, Any]) -> subprocess.CompletedProcess[str]:
        if "get.scoop.sh" in command[-1]:
            host.on("scoop", stdout=install_output)
        return subprocess.CompletedProcess(command, 0, "", "")

    host.available.add("powershell")
    host.handlers["powershell"] = powershell


def test_windows_provisioner_bootstraps_scoop_with_scoped_policy(
    fake_host: FakeHost,
    windows_context: PipelineContext,
) -> None:
    _windows_tools(fake_host)
    _scoop_bootstrap(fake_host)

    result = WindowsProvisioner().provision(
        DEFAULT_WINDOWS_REQUIREMENTS,
        windows_context,
        _windows_scope(),
    )

    policy_command, bootstrap_command = fake_host.commands_for("powershell")
    assert "RemoteSigned" in policy_command[-1]
    assert "-Scope CurrentUser" in policy_command[-1]
    assert "Unrestricted" not in policy_command[-1]
    assert "Bypass" not in policy_command[-1]
    assert "get.scoop.sh" in bootstrap_command[-1]
    assert fake_host.commands_for("scoop") == [
        ["scoop", "install", "llvm"],
        ["scoop", "install", "msys2"],
        ["scoop", "install", "yasm"],
    ]
    assert result.versions["llvm"] == "clang version 16.0.6"
    assert result.versions["yasm"] == "yasm 1.3.0"
    assert result.versions["msys2"].endswith("msys2")
    assert result.versions["rustc"] == "rustc 1.70.0"
    assert result.installed_with == {"llvm": "scoop", "msys2": "scoop", "yasm": "scoop"}
    assert "C:\\Users\\ci\\scoop\\shims" in result.scope.search_path().split(";")


def test_windows_provisioning_is_idempotent(
    fake_host: FakeHost,
    windows_context: PipelineContext,
) -> None:
    _windows_tools(fake_host)
    _scoop_bootstrap(fake_host)
    provisioner = WindowsProvisioner()

    first = provisioner.provision(DEFAULT_WINDOWS_REQUIREMENTS, windows_context, _windows_scope())
    fake_host.on(
        "scoop",
        returncode=1,
        stderr="WARN  'llvm' (16.0.6) is already installed.\n",
    )
    second = provisioner.provision(DEFAULT_WINDOWS_REQUIREMENTS, windows_context, _windows_scope())

    assert first.versions == second.versions
    # scoop now resolves, so the bootstrap is not repeated.
    assert len(fake_host.commands_for("powershell")) == 2


def test_windows_provisioner_falls_back_to_chocolatey(
    fake_host: FakeHost,
    windows_context: PipelineContext,
) -> None:
    _windows_tools(fake_host)
    fake_host.on("choco", stdout="Chocolatey installed 1/1 packages.\n")

    def scoop(command: list[str], kwargs: dict[str, Any]) -> subprocess.CompletedProcess[str]:
        if command[-1] == "yasm":
            return subprocess.CompletedProcess(command, 1, "", "Couldn't find manifest for 'yasm'.")
        return subprocess.CompletedProcess(command, 0, "", "")

    fake_host.available.add("scoop")
    fake_host.handlers["scoop"] = scoop

    result = WindowsProvisioner().provision(
        DEFAULT_WINDOWS_REQUIREMENTS,
        windows_context,
        _windows_scope(),
    )

    assert fake_host.commands_for("choco") == [list(CHOCOLATEY.install_command("yasm"))]
    assert result.installed_with["yasm"] == "choco"
    assert result.installed_with["llvm"] == "scoop"


def test_windows_provisioner_fails_when_every_manager_fails(
    fake_host: FakeHost,
    windows_context: PipelineContext,
) -> None:
    _windows_tools(fake_host)
    fake_host.on("scoop", returncode=1, stderr="network unreachable")
    fake_host.on("choco", returncode=1, stderr="network unreachable")

    with pytest.raises(ProvisioningError) as excinfo:
        WindowsProvisioner().provision(
            DEFAULT_WINDOWS_REQUIREMENTS,
            windows_context,
            _windows_scope(),
        )

    assert excinfo.value.context["tool"] == "llvm"
    assert "scoop install llvm" in excinfo.value.context["attempts"]
    assert "choco install" in excinfo.value.context["attempts"]
    assert excinfo.value.stage == "provisioning"


def test_windows_provisioner_fails_when_bootstrap_fails(
    fake_host: FakeHost,
    windows_context: PipelineContext,
) -> None:
    _windows_tools(fake_host)
    fake_host.on("powershell", returncode=1, stderr="blocked by policy")

    with pytest.raises(ProvisioningError) as excinfo:
        WindowsProvisioner().provision(
            DEFAULT_WINDOWS_REQUIREMENTS,
            windows_context,
            _windows_scope(),
        )

    assert "scoop" in str(excinfo.value)
    assert excinfo.value.context["returncode"] == "1"


def test_missing_version_string_is_a_hard_failure(
    fake_host: FakeHost,
    windows_context: PipelineContext,
) -> None:
    _windows_tools(fake_host)
    fake_host.on("scoop")
    fake_host.on("clang", returncode=0, stdout="")

    with pytest.raises(ProvisioningError) as excinfo:
        WindowsProvisioner().provision(
            DEFAULT_WINDOWS_REQUIREMENTS,
            windows_context,
            _windows_scope(),
        )

    assert excinfo.value.context["tool"] == "llvm"
    assert excinfo.value.context["command"] == "clang --version"


def test_install_only_component_must_resolve(
    fake_host: FakeHost,
    windows_context: PipelineContext,
) -> None:
    _windows_tools(fake_host)
    fake_host.available.discard("msys2")
    fake_host.on("scoop")

    with pytest.raises(ProvisioningError) as excinfo:
        WindowsProvisioner().provision(
            DEFAULT_WINDOWS_REQUIREMENTS,
            windows_context,
            _windows_scope(),
        )

    assert excinfo.value.context["tool"] == "msys2"


def test_posix_provisioner_only_verifies(
    fake_host: FakeHost,
    linux_context: PipelineContext,
) -> None:
    fake_host.on("rustc", stdout="rustc 1.70.0\n")
    fake_host.on("cargo", stdout="cargo 1.70.0\n")
    logger = StructuredLogger()

    result = PosixProvisioner(logger=logger).provision(
        DEFAULT_POSIX_REQUIREMENTS,
        linux_context,
        ExecutionScope(),
    )
    again = PosixProvisioner(logger=logger).provision(
        DEFAULT_POSIX_REQUIREMENTS,
        linux_context,
        ExecutionScope(),
    )

    assert result.versions == {"rustc": "rustc 1.70.0", "cargo": "cargo 1.70.0"}
    assert again.versions == result.versions
    assert fake_host.commands == [
        ["rustc", "--version"],
        ["cargo", "--version"],
        ["rustc", "--version"],
        ["cargo", "--version"],
    ]
    assert [r["tool"] for r in logger.records_for_operation("toolchain_version")] == [
        "rustc",
        "cargo",
        "rustc",
        "cargo",
    ]


def test_posix_provisioner_reports_missing_tool(
    fake_host: FakeHost,
    linux_context: PipelineContext,
) -> None:
    fake_host.on("rustc", stdout="rustc 1.70.0\n")

    with pytest.raises(ProvisioningError) as excinfo:
        PosixProvisioner().provision(DEFAULT_POSIX_REQUIREMENTS, linux_context, ExecutionScope())

    assert excinfo.value.context["tool"] == "cargo"
    assert excinfo.value.context["returncode"] == "127"


def test_already_installed_marker_counts_as_success() -> None:
    from relpipe.process import CommandResult

    result = CommandResult(
        argv=("scoop", "install", "yasm"),
        returncode=1,
        stdout="WARN  'yasm' (1.3.0) is already installed.",
    )
    timed_out = CommandResult(argv=("scoop", "install", "yasm"), returncode=None, timed_out=True)

    assert SCOOP.install_succeeded(result)
    assert not SCOOP.install_succeeded(timed_out)


def test_provisioner_for_selects_by_target_os() -> None:
    assert isinstance(provisioner_for(TargetOS.WINDOWS), WindowsProvisioner)
    assert isinstance(provisioner_for(TargetOS.LINUX), PosixProvisioner)
    assert isinstance(provisioner_for(TargetOS.MACOS), PosixProvisioner)


def test_requirements_without_managers_are_not_installed(
    fake_host: FakeHost,
    windows_context: PipelineContext,
) -> None:
    fake_host.on("rustc", stdout="rustc 1.70.0\n")

    result = WindowsProvisioner().provision(
        (ToolchainRequirement(name="rustc", probe=("rustc", "--version")),),
        windows_context,
        _windows_scope(),
    )

    assert result.installed_with == {}
    assert fake_host.commands == [["rustc", "--version"]]
