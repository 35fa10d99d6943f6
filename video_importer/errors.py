"""Error taxonomy shared by every importer stage."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes surfaced to callers and logs."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    TIMEOUT = "TIMEOUT"
    OPERATION_FAILED = "OPERATION_FAILED"
    PIPELINE_STATE = "PIPELINE_STATE"
    DEPENDENCY_ERROR = "DEPENDENCY_ERROR"


class ImporterError(Exception):
    """Base exception for fatal importer failures."""

    __slots__ = ("message", "code", "meta")

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.meta = dict(meta) if meta else {}

    def __str__(self) -> str:
        if not self.meta:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in sorted(self.meta.items()))
        return f"{self.message} ({details})"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "meta": dict(self.meta)}


class AssetValidationError(ImporterError):
    """Raised when an asset or downloaded payload is unusable; never retried."""

    def __init__(self, message: str, *, meta: Mapping[str, Any] | None = None) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION_ERROR, meta=meta)


class BatchTimeoutError(ImporterError):
    """Raised when a batch did not reach the awaited state within its budget."""

    def __init__(
        self,
        message: str,
        *,
        batch_reference: str | None = None,
        batch_id: str | None = None,
        waited_seconds: float | None = None,
    ) -> None:
        meta: dict[str, Any] = {}
        if batch_reference is not None:
            meta["batch_reference"] = batch_reference
        if batch_id is not None:
            meta["batch_id"] = batch_id
        if waited_seconds is not None:
            meta["waited_seconds"] = round(waited_seconds, 3)
        super().__init__(message, code=ErrorCode.TIMEOUT, meta=meta)
        self.batch_reference = batch_reference
        self.batch_id = batch_id


class OperationFailedError(ImporterError):
    """Raised when a retried operation exhausted its attempts."""

    def __init__(
        self,
        operation: str,
        *,
        attempts: int,
        last_error: BaseException | None = None,
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"operation": operation, "attempts": attempts}
        if meta:
            payload.update(meta)
        if last_error is not None:
            payload["last_error"] = f"{type(last_error).__name__}: {last_error}"
        super().__init__(
            f"Some error during {operation}",
            code=ErrorCode.OPERATION_FAILED,
            meta=payload,
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class PipelineStateError(ImporterError):
    """Raised when a publication stage runs before its precondition holds."""

    def __init__(self, message: str, *, stage: str, required: str) -> None:
        super().__init__(
            message,
            code=ErrorCode.PIPELINE_STATE,
            meta={"stage": stage, "required": required},
        )


class DependencyError(ImporterError):
    """Raised when a non-retried remote call (pricing, reservation, index) fails."""

    def __init__(self, message: str, *, meta: Mapping[str, Any] | None = None) -> None:
        super().__init__(message, code=ErrorCode.DEPENDENCY_ERROR, meta=meta)


__all__ = [
    "AssetValidationError",
    "BatchTimeoutError",
    "DependencyError",
    "ErrorCode",
    "ImporterError",
    "OperationFailedError",
    "PipelineStateError",
]
