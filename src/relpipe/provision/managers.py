"""Windows package-manager adapters (scoop, chocolatey)."""

from __future__ import annotations

import ntpath
from collections.abc import Mapping
from dataclasses import dataclass

from relpipe.process import CommandResult

SCOOP_INSTALLER_URL = "https://get.scoop.sh"


@dataclass(frozen=True, slots=True)
class PackageManager:
    """How to drive one package manager CLI.

    ``already_installed_markers`` are matched case-insensitively against the
    install output; a match counts as success even on a non-zero exit.
    """

    name: str
    command: str
    install_args: tuple[str, ...]
    already_installed_markers: tuple[str, ...] = ()

    def install_command(self, package: str) -> tuple[str, ...]:
        return (self.command, *self.install_args, package)

    def install_succeeded(self, result: CommandResult) -> bool:
        if result.ok:
            return True
        if result.timed_out:
            return False
        output = f"{result.stdout}\n{result.stderr}".lower()
        return any(marker.lower() in output for marker in self.already_installed_markers)


SCOOP = PackageManager(
    name="scoop",
    command="scoop",
    install_args=("install",),
    already_installed_markers=("is already installed",),
)

CHOCOLATEY = PackageManager(
    name="choco",
    command="choco",
    install_args=("install", "--yes", "--no-progress"),
    already_installed_markers=("already installed",),
)

PACKAGE_MANAGERS: dict[str, PackageManager] = {
    SCOOP.name: SCOOP,
    CHOCOLATEY.name: CHOCOLATEY,
}


def execution_policy_command(*, policy: str = "RemoteSigned") -> tuple[str, ...]:
    """Allow signed remote scripts for the current user only."""
    return (
        "powershell",
        "-NoProfile",
        "-NonInteractive",
        "-Command",
        f"Set-ExecutionPolicy -ExecutionPolicy {policy} -Scope CurrentUser -Force",
    )


def scoop_bootstrap_command(*, run_as_admin: bool = True) -> tuple[str, ...]:
    script = f"Invoke-RestMethod -Uri {SCOOP_INSTALLER_URL}"
    if run_as_admin:
        # The installer refuses elevated shells unless told otherwise; CI runners are elevated.
        script = f"iex \"& {{$({script})}} -RunAsAdmin\""
    else:
        script = f"{script} | Invoke-Expression"
    return ("powershell", "-NoProfile", "-NonInteractive", "-Command", script)


def scoop_shims_dir(environ: Mapping[str, str]) -> str:
    root = environ.get("SCOOP")
    if not root:
        root = ntpath.join(environ.get("USERPROFILE", "C:\\Users\\Default"), "scoop")
    return ntpath.join(root, "shims")


def chocolatey_bin_dir(environ: Mapping[str, str]) -> str:
    root = environ.get("ChocolateyInstall") or "C:\\ProgramData\\chocolatey"
    return ntpath.join(root, "bin")


__all__ = [
    "CHOCOLATEY",
    "PACKAGE_MANAGERS",
    "PackageManager",
    "SCOOP",
    "chocolatey_bin_dir",
    "execution_policy_command",
    "scoop_bootstrap_command",
    "scoop_shims_dir",
]
