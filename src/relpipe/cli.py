"""Command-line entry point.

Usage:
    relpipe run [--target-os OS] [--version-tag TAG] [--working-dir DIR] ...
    relpipe archive-name --target-os OS [--version-tag TAG] [--project NAME]
"""

from __future__ import annotations

import argparse
import signal
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from types import FrameType

from relpipe.config import PipelineConfig, project_from_cargo_manifest, resolve_context
from relpipe.errors import PipelineCancelled, RelpipeError, exit_code_for
from relpipe.models import PipelineResult
from relpipe.observability import StructuredLogger
from relpipe.packaging import archive_filename
from relpipe.pipeline import CancellationToken, Pipeline
from relpipe.report import PipelineReport


def cmd_run(args: argparse.Namespace) -> int:
    working_dir = Path(args.working_dir).resolve()
    config = _config_from_args(args, working_dir)
    context = resolve_context(
        config,
        target_os=args.target_os,
        version_tag=args.version_tag,
        working_directory=working_dir,
    )
    logger = StructuredLogger(stream=None if args.quiet else sys.stderr)
    pipeline = Pipeline(config=config, logger=logger, install_toolchain=not args.skip_provision)

    cancel = CancellationToken()
    previous = signal.signal(signal.SIGINT, _cancel_handler(cancel))
    try:
        result = pipeline.run(context, cancel=cancel)
    finally:
        signal.signal(signal.SIGINT, previous)

    if args.report:
        PipelineReport.from_result(result, logger).write(args.report, fmt=args.report_format)
    if args.log_file:
        logger.to_json_lines(args.log_file)

    if result.error is not None:
        print(f"relpipe: {_failure_headline(result)} [{result.error.code}]", file=sys.stderr)
        print(str(result.error), file=sys.stderr)
        return exit_code_for(result.error)
    print(result.archive_path)
    return 0


def cmd_archive_name(args: argparse.Namespace) -> int:
    working_dir = Path(args.working_dir).resolve()
    config = _config_from_args(args, working_dir)
    context = resolve_context(
        config,
        target_os=args.target_os,
        version_tag=args.version_tag,
        working_directory=working_dir,
    )
    print(archive_filename(config.project, context.target_os, context.version_tag))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="relpipe",
        description="Provision, build and package a native release archive.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Run the full provision/build/package pipeline")
    _add_context_arguments(run_p)
    run_p.add_argument("--config-dir", default="config", help="Configuration directory to ship")
    run_p.add_argument("--staging-dir", default="package", help="Staging directory name")
    run_p.add_argument("--binary-dir", default="target/release", help="Build output directory")
    run_p.add_argument(
        "--archiver",
        choices=("auto", "external", "inprocess"),
        default="inprocess",
        help="Archive writer: in-process (deterministic), external 7z/tar, or auto",
    )
    run_p.add_argument("--timeout", type=float, default=None, help="Per-command timeout in seconds")
    run_p.add_argument(
        "--source-date-epoch",
        type=int,
        default=0,
        help="Timestamp pinned into archive entries",
    )
    run_p.add_argument(
        "--skip-provision",
        action="store_true",
        help="Do not install tools; only verify the existing toolchain",
    )
    run_p.add_argument("--report", default=None, help="Write a run report to this path")
    run_p.add_argument("--report-format", choices=("json", "cbor"), default="json")
    run_p.add_argument("--log-file", default=None, help="Write the audit log as JSON lines")
    run_p.add_argument("--quiet", action="store_true", help="Do not echo log records to stderr")
    run_p.set_defaults(handler=cmd_run)

    name_p = sub.add_parser("archive-name", help="Print the archive filename for the inputs")
    _add_context_arguments(name_p)
    name_p.set_defaults(handler=cmd_archive_name)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return args.handler(args)
    except RelpipeError as exc:
        print(f"relpipe: {exc}", file=sys.stderr)
        return exit_code_for(exc)


def _add_context_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--target-os", default=None, help="windows, linux or macos (osx accepted)")
    parser.add_argument("--version-tag", default=None, help="Release tag to embed in the name")
    parser.add_argument("--working-dir", default=".", help="Project root")
    parser.add_argument("--project", default=None, help="Binary/project name (default: Cargo.toml)")


def _config_from_args(args: argparse.Namespace, working_dir: Path) -> PipelineConfig:
    project = args.project or project_from_cargo_manifest(working_dir)
    values: dict[str, object] = {}
    if project:
        values["project"] = project
    for option, key in (
        ("config_dir", "config_dir"),
        ("staging_dir", "staging_dir"),
        ("binary_dir", "binary_dir"),
        ("archiver", "archiver"),
        ("timeout", "command_timeout"),
        ("source_date_epoch", "source_date_epoch"),
    ):
        if getattr(args, option, None) is not None:
            values[key] = getattr(args, option)
    return PipelineConfig(**values)  # type: ignore[arg-type]


def _failure_headline(result: PipelineResult) -> str:
    if isinstance(result.error, PipelineCancelled):
        next_stage = result.error.context.get("next_stage")
        if next_stage:
            return f"cancelled before {next_stage}"
        return f"cancelled during {result.failed_stage}"
    return f"{result.failed_stage} failed"


def _cancel_handler(cancel: CancellationToken) -> Callable[[int, FrameType | None], None]:
    def handler(signum: int, frame: FrameType | None) -> None:
        cancel.cancel(f"Interrupted by signal {signum}; stopping at the next stage boundary.")

    return handler


if __name__ == "__main__":
    raise SystemExit(main())
