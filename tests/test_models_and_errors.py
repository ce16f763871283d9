import dataclasses
from pathlib import Path

import pytest

from relpipe.errors import (
    EXIT_CODES,
    BuildError,
    ErrorCode,
    PackagingError,
    PipelineCancelled,
    ProvisioningError,
    StagingError,
    ValidationError,
    exit_code_for,
)
from relpipe.models import PipelineContext, PipelineResult, Stage, TargetOS, ToolchainRequirement


def test_error_codes_are_stable_and_machine_readable() -> None:
    errors = [
        ValidationError("bad input"),
        ProvisioningError("scoop missing"),
        BuildError("cargo failed"),
        StagingError("locked"),
        PackagingError("no binary"),
        PipelineCancelled("interrupted"),
    ]
    assert [error.code for error in errors] == [
        ErrorCode.VALIDATION.value,
        ErrorCode.PROVISIONING.value,
        ErrorCode.BUILD.value,
        ErrorCode.STAGING.value,
        ErrorCode.PACKAGING.value,
        ErrorCode.CANCELLED.value,
    ]


def test_stage_errors_identify_their_stage() -> None:
    assert ProvisioningError("x").stage == "provisioning"
    assert BuildError("x").stage == "building"
    assert StagingError("x").stage == "packaging"
    assert PackagingError("x").stage == "packaging"
    assert ValidationError("x").stage is None


def test_exit_codes_are_distinct_per_failing_stage() -> None:
    codes = [exit_code_for(error) for error in (
        ValidationError("x"),
        ProvisioningError("x"),
        BuildError("x"),
        StagingError("x"),
        PackagingError("x"),
        PipelineCancelled("x"),
    )]
    assert len(set(codes)) == len(codes)
    assert 0 not in codes
    assert set(EXIT_CODES) == {code.value for code in ErrorCode}


def test_error_to_dict_carries_command_context() -> None:
    error = BuildError(
        "cargo build failed.",
        hint="Check cargo output.",
        context={"command": "cargo build --release", "returncode": "101"},
    )
    payload = error.to_dict()

    assert payload["code"] == "E_BUILD"
    assert payload["message"] == "cargo build failed."
    assert payload["hint"] == "Check cargo output."
    assert payload["context"] == {
        "stage": "building",
        "command": "cargo build --release",
        "returncode": "101",
    }
    assert "returncode: 101" in str(error)


def test_pipeline_context_is_immutable_and_absolute(tmp_path: Path) -> None:
    context = PipelineContext.create(
        target_os="linux",
        version_tag=" v0.3.0 ",
        working_directory=tmp_path,
    )

    assert context.target_os is TargetOS.LINUX
    assert context.version_tag == "v0.3.0"
    assert context.working_directory.is_absolute()
    with pytest.raises(dataclasses.FrozenInstanceError):
        context.target_os = TargetOS.WINDOWS  # type: ignore[misc]


def test_pipeline_context_rejects_unknown_os_and_unsafe_tags(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        PipelineContext.create(target_os="beos", working_directory=tmp_path)
    with pytest.raises(ValidationError):
        PipelineContext.create(target_os="linux", version_tag="../evil", working_directory=tmp_path)


def test_toolchain_requirement_defaults() -> None:
    probed = ToolchainRequirement(name="llvm", probe=("clang", "--version"), managers=("scoop",))
    install_only = ToolchainRequirement(name="msys2", managers=("scoop",))

    assert probed.installable
    assert probed.package_id == "llvm"
    assert probed.executable_name == "clang"
    assert install_only.executable_name == "msys2"
    assert not ToolchainRequirement(name="rustc", probe=("rustc", "--version")).installable


def test_pipeline_result_refuses_transitions_after_terminal_state(tmp_path: Path) -> None:
    context = PipelineContext.create(target_os="linux", working_directory=tmp_path)
    result = PipelineResult(context=context)
    result.advance(Stage.PROVISIONING)
    result.fail(Stage.PROVISIONING, ProvisioningError("boom"))

    assert result.state is Stage.FAILED
    assert result.transitions == [Stage.START, Stage.PROVISIONING, Stage.FAILED]
    with pytest.raises(RuntimeError):
        result.advance(Stage.BUILDING)
    with pytest.raises(ProvisioningError):
        result.raise_for_failure()
