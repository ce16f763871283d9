"""Toolchain provisioning for the build stage."""

from __future__ import annotations

from relpipe.models import TargetOS
from relpipe.observability import StructuredLogger

from .base import Provisioner, ProvisioningResult
from .managers import CHOCOLATEY, PACKAGE_MANAGERS, SCOOP, PackageManager
from .posix import PosixProvisioner
from .verify import probe_versions
from .windows import WindowsProvisioner


def provisioner_for(
    target_os: TargetOS,
    *,
    timeout: float | None = None,
    logger: StructuredLogger | None = None,
) -> Provisioner:
    logger = logger if logger is not None else StructuredLogger()
    if target_os == TargetOS.WINDOWS:
        return WindowsProvisioner(timeout=timeout, logger=logger)
    return PosixProvisioner(timeout=timeout, logger=logger)


__all__ = [
    "CHOCOLATEY",
    "PACKAGE_MANAGERS",
    "PackageManager",
    "PosixProvisioner",
    "Provisioner",
    "ProvisioningResult",
    "SCOOP",
    "WindowsProvisioner",
    "probe_versions",
    "provisioner_for",
]
