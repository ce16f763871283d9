"""Deterministic archive naming."""

from __future__ import annotations

from relpipe.models import ArchiveSpec, TargetOS, archive_extension, validate_name_component


def archive_spec(project: str, target_os: TargetOS, version_tag: str = "") -> ArchiveSpec:
    """Describe the archive ``<project>-<os>[-<tag>].<ext>``.

    An empty tag yields the unqualified name, so untagged builds overwrite
    each other while tagged releases never collide.
    """
    validate_name_component(project, field_name="project")
    validate_name_component(version_tag, field_name="version tag", allow_empty=True)
    return ArchiveSpec(project=project, target_os=TargetOS(target_os), version_tag=version_tag)


def archive_filename(project: str, target_os: TargetOS, version_tag: str = "") -> str:
    return archive_spec(project, target_os, version_tag).filename


__all__ = ["archive_extension", "archive_filename", "archive_spec"]
