"""Release artifact staging, naming and archiving."""

from .archivers import (
    Archiver,
    SevenZipArchiver,
    TarCommandArchiver,
    TarGzArchiver,
    ZipArchiver,
    select_archiver,
)
from .naming import archive_extension, archive_filename, archive_spec
from .packager import ArtifactPackager, write_archive
from .staging import build_manifest, prepare_staging, stage_manifest

__all__ = [
    "Archiver",
    "ArtifactPackager",
    "SevenZipArchiver",
    "TarCommandArchiver",
    "TarGzArchiver",
    "ZipArchiver",
    "archive_extension",
    "archive_filename",
    "archive_spec",
    "build_manifest",
    "prepare_staging",
    "select_archiver",
    "stage_manifest",
    "write_archive",
]
