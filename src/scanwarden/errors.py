"""Structured error taxonomy shared by the scan pipeline and the HTTP layer."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from scanwarden.models import ProcessOutput, ScanResult


class ScanError(Exception):
    """Base class for every error a scan can surface to its caller."""

    kind = "ScanError"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Return the ``{"kind", "message"}`` payload used on the wire."""
        return {"kind": self.kind, "message": self.message}


class InvalidRequestError(ScanError):
    """Request is malformed or names an unknown scan kind."""

    kind = "InvalidRequestError"
    status_code = 400


class InvalidTargetError(ScanError):
    """Target string failed validation."""

    kind = "InvalidTargetError"
    status_code = 400

    def __init__(self, reason: str, target: str | None = None):
        message = f"Invalid target {target!r}: {reason}" if target else f"Invalid target: {reason}"
        super().__init__(message)
        self.reason = reason
        self.target = target

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["reason"] = self.reason
        return payload


class RejectReason(StrEnum):
    """Why the admission controller turned a scan away."""

    DUPLICATE_TARGET = "DuplicateTarget"
    OVERLOADED = "Overloaded"


class AdmissionRejectedError(ScanError):
    """No admission slot could be granted."""

    kind = "AdmissionRejectedError"

    def __init__(self, reason: RejectReason, target: str | None = None):
        if reason is RejectReason.DUPLICATE_TARGET:
            message = f"A scan of {target} is already running"
        else:
            message = "Scan queue is full, try again later"
        super().__init__(message)
        self.reason = reason
        self.target = target

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 409 if self.reason is RejectReason.DUPLICATE_TARGET else 429

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["reason"] = self.reason.value
        return payload


class SpawnError(ScanError):
    """The tool binary is missing or could not be started."""

    kind = "SpawnError"
    status_code = 503


class ParseError(ScanError):
    """Tool output could not be recognized at all."""

    kind = "ParseError"
    status_code = 502


class ToolExecutionError(ScanError):
    """The tool ran but reported a fatal failure."""

    kind = "ToolExecutionError"
    status_code = 502

    def __init__(self, message: str, exit_code: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["exit_code"] = self.exit_code
        return payload


class _InterruptedScanError(ScanError):
    """A scan stopped before the tool exited on its own.

    ``output`` holds whatever the process wrote before it was killed and
    ``result`` the findings parsed from it, once the coordinator has done so.
    """

    def __init__(
        self,
        message: str,
        output: ProcessOutput | None = None,
        result: ScanResult | None = None,
    ):
        super().__init__(message)
        self.output = output
        self.result = result


class ScanTimeoutError(_InterruptedScanError):
    """The tool exceeded its wall-clock budget and was killed."""

    kind = "TimeoutError"
    status_code = 504


class ScanCancelledError(_InterruptedScanError):
    """The scan was cancelled by job id and the tool was killed."""

    kind = "CancelledError"
    status_code = 409
