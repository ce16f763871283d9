"""Archive writers for the staged release tree.

In-process writers produce byte-identical archives for identical inputs:
entries are sorted, timestamps are pinned to ``SOURCE_DATE_EPOCH`` and
ownership is normalised. External writers shell out to ``7z`` / ``tar``
the way the release CI scripts do.
"""

from __future__ import annotations

import gzip
import stat
import tarfile
import time
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from relpipe.errors import PackagingError, ValidationError
from relpipe.models import ArchiverMode, TargetOS
from relpipe.observability import StructuredLogger
from relpipe.process import ExecutionScope, run_command

# zip timestamps cannot predate 1980-01-01.
ZIP_EPOCH_FLOOR = 315532800
# ...nor follow 2107-12-31T23:59:59.
ZIP_EPOCH_CEILING = 4354819199


class Archiver(Protocol):
    name: str
    fmt: str

    def write(self, staging_root: Path, output: Path) -> None:
        """Write *staging_root* (as the single top-level entry) to *output*."""


def iter_tree(staging_root: Path) -> Iterator[tuple[Path, str]]:
    """Yield ``(path, arcname)`` for the staging root and everything below it, sorted."""
    base = staging_root.parent
    yield staging_root, staging_root.name
    children = sorted(staging_root.rglob("*"), key=lambda path: path.relative_to(base).parts)
    for path in children:
        yield path, path.relative_to(base).as_posix()


@dataclass(slots=True)
class ZipArchiver:
    source_date_epoch: int = 0
    name: str = "zipfile"
    fmt: str = "zip"

    def write(self, staging_root: Path, output: Path) -> None:
        if self.source_date_epoch > ZIP_EPOCH_CEILING:
            raise PackagingError(
                "SOURCE_DATE_EPOCH is past the last timestamp zip can store (2107-12-31).",
                context={"source_date_epoch": str(self.source_date_epoch)},
            )
        date_time = time.gmtime(max(self.source_date_epoch, ZIP_EPOCH_FLOOR))[:6]
        with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path, arcname in iter_tree(staging_root):
                mode = stat.S_IMODE(path.stat().st_mode)
                if path.is_dir():
                    info = zipfile.ZipInfo(f"{arcname}/", date_time=date_time)
                    info.external_attr = ((stat.S_IFDIR | mode) << 16) | 0x10
                    archive.writestr(info, b"")
                    continue
                info = zipfile.ZipInfo(arcname, date_time=date_time)
                info.external_attr = (stat.S_IFREG | mode) << 16
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(info, path.read_bytes())


@dataclass(slots=True)
class TarGzArchiver:
    source_date_epoch: int = 0
    name: str = "tarfile"
    fmt: str = "tar.gz"

    def write(self, staging_root: Path, output: Path) -> None:
        with (
            output.open("wb") as raw,
            gzip.GzipFile(filename="", mode="wb", fileobj=raw, mtime=self.source_date_epoch) as gz,
            tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as archive,
        ):
            for path, arcname in iter_tree(staging_root):
                archive.add(path, arcname=arcname, recursive=False, filter=self._normalize)

    def _normalize(self, info: tarfile.TarInfo) -> tarfile.TarInfo:
        info.uid = 0
        info.gid = 0
        info.uname = ""
        info.gname = ""
        info.mtime = self.source_date_epoch
        info.pax_headers = {}
        return info


@dataclass(slots=True)
class SevenZipArchiver:
    scope: ExecutionScope
    timeout: float | None = None
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    name: str = "7z"
    fmt: str = "zip"

    def write(self, staging_root: Path, output: Path) -> None:
        command = ("7z", "a", "-tzip", str(output), f"{staging_root.name}/")
        run_archive_command(
            archiver_name=self.name,
            command=command,
            staging_root=staging_root,
            scope=self.scope,
            timeout=self.timeout,
            logger=self.logger,
        )


@dataclass(slots=True)
class TarCommandArchiver:
    scope: ExecutionScope
    timeout: float | None = None
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    name: str = "tar"
    fmt: str = "tar.gz"

    def write(self, staging_root: Path, output: Path) -> None:
        command = ("tar", "zcvf", str(output), f"{staging_root.name}/")
        run_archive_command(
            archiver_name=self.name,
            command=command,
            staging_root=staging_root,
            scope=self.scope,
            timeout=self.timeout,
            logger=self.logger,
        )


def run_archive_command(
    *,
    archiver_name: str,
    command: tuple[str, ...],
    staging_root: Path,
    scope: ExecutionScope,
    timeout: float | None,
    logger: StructuredLogger,
) -> None:
    result = run_command(
        command,
        scope=scope,
        cwd=staging_root.parent,
        timeout=timeout,
        logger=logger,
        stage="packaging",
    )
    if not result.ok:
        raise PackagingError(
            f"{archiver_name} failed to create the archive.",
            hint=f"Check that `{archiver_name}` is installed and the staging directory is readable.",
            context={
                "archiver": archiver_name,
                "command": result.command_line,
                "returncode": result.exit_status(),
                "stderr": result.stderr_tail(),
            },
        )


def select_archiver(
    target_os: TargetOS,
    *,
    mode: ArchiverMode = "inprocess",
    scope: ExecutionScope | None = None,
    source_date_epoch: int = 0,
    timeout: float | None = None,
    logger: StructuredLogger | None = None,
) -> Archiver:
    """Pick the archive writer: zip for Windows, gzip tar everywhere else."""
    if mode not in ("auto", "external", "inprocess"):
        raise ValidationError(
            f"Unknown archiver mode {mode!r}.",
            hint="Use one of: auto, external, inprocess.",
        )
    scope = scope if scope is not None else ExecutionScope.from_environ()
    logger = logger if logger is not None else StructuredLogger()
    windows = target_os == TargetOS.WINDOWS
    external_tool = "7z" if windows else "tar"

    use_external = mode == "external" or (
        mode == "auto" and scope.which(external_tool) is not None
    )
    if use_external:
        external_cls = SevenZipArchiver if windows else TarCommandArchiver
        return external_cls(scope=scope, timeout=timeout, logger=logger)
    if windows:
        return ZipArchiver(source_date_epoch=source_date_epoch)
    return TarGzArchiver(source_date_epoch=source_date_epoch)
