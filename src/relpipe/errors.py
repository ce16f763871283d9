"""Typed pipeline error model with stable, machine-readable error codes."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across API and CLI surfaces."""

    VALIDATION = "E_VALIDATION"
    PROVISIONING = "E_PROVISIONING"
    BUILD = "E_BUILD"
    STAGING = "E_STAGING"
    PACKAGING = "E_PACKAGING"
    CANCELLED = "E_CANCELLED"


EXIT_CODES: dict[str, int] = {
    ErrorCode.VALIDATION.value: 2,
    ErrorCode.PROVISIONING.value: 10,
    ErrorCode.BUILD.value: 20,
    ErrorCode.STAGING.value: 30,
    ErrorCode.PACKAGING.value: 40,
    ErrorCode.CANCELLED.value: 130,
}


class RelpipeError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    @property
    def stage(self) -> str | None:
        return self.context.get("stage")

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ValidationError(RelpipeError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, hint=hint, context=context)


class ProvisioningError(RelpipeError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.PROVISIONING,
            hint=hint,
            context={"stage": "provisioning", **(context or {})},
        )


class BuildError(RelpipeError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.BUILD,
            hint=hint,
            context={"stage": "building", **(context or {})},
        )


class StagingError(RelpipeError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.STAGING,
            hint=hint,
            context={"stage": "packaging", **(context or {})},
        )


class PackagingError(RelpipeError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.PACKAGING,
            hint=hint,
            context={"stage": "packaging", **(context or {})},
        )


class PipelineCancelled(RelpipeError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CANCELLED, hint=hint, context=context)


def exit_code_for(error: RelpipeError) -> int:
    """Return the CLI exit status for *error*; unknown codes map to 1."""
    return EXIT_CODES.get(error.code, 1)


__all__ = [
    "BuildError",
    "EXIT_CODES",
    "ErrorCode",
    "PackagingError",
    "PipelineCancelled",
    "ProvisioningError",
    "RelpipeError",
    "StagingError",
    "ValidationError",
    "exit_code_for",
]
