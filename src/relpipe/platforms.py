"""Host platform detection and OS-name normalisation."""

from __future__ import annotations

import sys

from relpipe.errors import ValidationError
from relpipe.models import TargetOS

# CI providers and Python spell the same platforms differently.
_OS_ALIASES: dict[str, TargetOS] = {
    "windows": TargetOS.WINDOWS,
    "win32": TargetOS.WINDOWS,
    "win": TargetOS.WINDOWS,
    "linux": TargetOS.LINUX,
    "macos": TargetOS.MACOS,
    "osx": TargetOS.MACOS,
    "darwin": TargetOS.MACOS,
    "mac": TargetOS.MACOS,
}


def normalize_os_name(value: str) -> TargetOS:
    key = value.strip().lower()
    if key in _OS_ALIASES:
        return _OS_ALIASES[key]
    raise ValidationError(
        f"Unknown OS name {value!r}.",
        hint=f"Use one of: {', '.join(sorted(_OS_ALIASES))}.",
        context={"value": value},
    )


def detect_host_os(platform: str | None = None) -> TargetOS:
    """Map ``sys.platform`` (or *platform*) onto a target OS."""
    name = platform if platform is not None else sys.platform
    if name.startswith("win") or name.startswith("cygwin") or name.startswith("msys"):
        return TargetOS.WINDOWS
    if name.startswith("darwin"):
        return TargetOS.MACOS
    if name.startswith("linux"):
        return TargetOS.LINUX
    raise ValidationError(
        f"Cannot derive a target OS from host platform {name!r}.",
        hint="Pass --target-os explicitly.",
        context={"platform": name},
    )


__all__ = ["detect_host_os", "normalize_os_name"]
