"""Data models for scan requests, jobs and normalized findings."""

import asyncio
import uuid
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import Any, ClassVar

from scanwarden.errors import InvalidRequestError


class ScanKind(StrEnum):
    """Closed set of scan kinds, keyed by the tool name used on the wire."""

    PORT_SCAN = "nmap"
    WEB_VULN_SCAN = "nuclei"
    MISCONFIG_SCAN = "nikto"

    @classmethod
    def parse(cls, value: object) -> "ScanKind":
        """Map a wire value to a scan kind or raise ``InvalidRequestError``."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        allowed = ", ".join(member.value for member in cls)
        raise InvalidRequestError(f"Unknown scan type {value!r}. Expected one of: {allowed}")


class TargetKind(StrEnum):
    HOSTNAME = "hostname"
    IPV4 = "ipv4"
    IPV6 = "ipv6"


class PortState(StrEnum):
    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"
    UNKNOWN = "unknown"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ScanState(StrEnum):
    """Lifecycle of one scan inside the coordinator."""

    RECEIVED = "received"
    VALIDATING = "validating"
    ADMITTED = "admitted"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {ScanState.COMPLETED, ScanState.FAILED, ScanState.TIMED_OUT, ScanState.CANCELLED}
)


@dataclass(frozen=True)
class ScanRequest:
    """One incoming scan call."""

    target: str
    scan_kind: ScanKind

    @classmethod
    def create(cls, target: object, kind: object) -> "ScanRequest":
        """Build a request from wire values; the kind is checked before the target."""
        scan_kind = ScanKind.parse(kind)
        if not isinstance(target, str):
            raise InvalidRequestError("Field 'target' must be a string")
        return cls(target=target, scan_kind=scan_kind)


@dataclass(frozen=True)
class ValidatedTarget:
    """Normalized host or address that is safe to pass as a single argv element."""

    value: str
    kind: TargetKind

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CommandSpec:
    """Argument vector for one tool invocation (never a shell string)."""

    argv: tuple[str, ...]
    env: dict[str, str] | None = None
    cwd: str | None = None

    @property
    def binary(self) -> str:
        return self.argv[0]


@dataclass
class ScanJob:
    """A running scan as seen by the executor."""

    target: ValidatedTarget
    scan_kind: ScanKind
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    _cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def cancel(self) -> None:
        """Request termination of the job's subprocess."""
        self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    async def wait_cancelled(self) -> None:
        await self._cancel_event.wait()


@dataclass(frozen=True)
class ProcessOutput:
    """Raw bytes captured from a finished or killed subprocess."""

    stdout: bytes
    stderr: bytes
    exit_code: int | None
    duration: float = 0.0
    truncated: bool = False

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)

    def stderr_text(self, limit: int = 4096) -> str:
        """Decoded tail of stderr, kept for diagnostics."""
        text = self.stderr.decode(errors="replace")
        return text[-limit:] if len(text) > limit else text


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class _Finding:
    scan_kind: ClassVar[ScanKind]

    def to_dict(self) -> dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class PortFinding(_Finding):
    """One port reported by a port scan."""

    scan_kind: ClassVar[ScanKind] = ScanKind.PORT_SCAN

    port: int
    state: PortState
    service: str = ""

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")


@dataclass(frozen=True)
class WebVulnFinding(_Finding):
    """One issue reported by a web vulnerability scan."""

    scan_kind: ClassVar[ScanKind] = ScanKind.WEB_VULN_SCAN

    title: str
    severity: Severity
    url: str
    description: str = ""


@dataclass(frozen=True)
class MisconfigFinding(_Finding):
    """One advisory reported by a server misconfiguration scan."""

    scan_kind: ClassVar[ScanKind] = ScanKind.MISCONFIG_SCAN

    endpoint: str
    description: str


ScanFinding = PortFinding | WebVulnFinding | MisconfigFinding


@dataclass(frozen=True)
class ScanResult:
    """Normalized findings for one scan, in tool emission order."""

    scan_kind: ScanKind
    target: ValidatedTarget
    findings: tuple[ScanFinding, ...]
    job_id: str
    started_at: datetime
    duration_ms: int
    tool_exit_code: int | None
    partial: bool = False
    diagnostics: str = ""

    def __post_init__(self) -> None:
        for finding in self.findings:
            if finding.scan_kind is not self.scan_kind:
                raise ValueError(
                    f"{type(finding).__name__} does not belong to a {self.scan_kind.value} scan"
                )

    def metadata(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "scan_kind": self.scan_kind.value,
            "target": self.target.value,
            "target_kind": self.target.kind.value,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "tool_exit_code": self.tool_exit_code,
            "partial": self.partial,
            "finding_count": len(self.findings),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": [finding.to_dict() for finding in self.findings],
            "metadata": self.metadata(),
        }
