"""Scan coordinator: validate, admit, run, parse."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from scanwarden.adapters import ToolAdapter, create_default_adapters
from scanwarden.admission import AdmissionController
from scanwarden.config import Settings
from scanwarden.errors import (
    InvalidRequestError,
    ScanCancelledError,
    ScanError,
    ScanTimeoutError,
)
from scanwarden.executor import ScanExecutor
from scanwarden.models import (
    ScanJob,
    ScanKind,
    ScanRequest,
    ScanResult,
    ScanState,
    ValidatedTarget,
)
from scanwarden.targets import TargetPolicy

logger = logging.getLogger(__name__)


@dataclass
class ActiveScan:
    """A scan that has been admitted and not yet finished."""

    job_id: str
    target: ValidatedTarget
    scan_kind: ScanKind
    started_at: datetime
    state: ScanState

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "target": self.target.value,
            "type": self.scan_kind.value,
            "started_at": self.started_at.isoformat(),
            "state": self.state.value,
        }


class ScanCoordinator:
    """Run one scan request end to end and return normalized results."""

    def __init__(
        self,
        adapters: Mapping[ScanKind, ToolAdapter],
        executor: ScanExecutor,
        admission: AdmissionController,
        policy: TargetPolicy | None = None,
        timeouts: Mapping[ScanKind, float] | None = None,
    ):
        self._adapters = dict(adapters)
        self._executor = executor
        self._admission = admission
        self._policy = policy or TargetPolicy()
        self._timeouts = dict(timeouts or {})
        self._active: dict[str, ActiveScan] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScanCoordinator":
        return cls(
            adapters=create_default_adapters(settings),
            executor=ScanExecutor(
                default_timeout=settings.scan_timeout,
                kill_grace=settings.kill_grace,
                max_output_bytes=settings.max_output_bytes,
            ),
            admission=AdmissionController(
                max_concurrent=settings.max_concurrent,
                per_target_limit=settings.per_target_limit,
                max_queue_depth=settings.max_queue_depth,
                duplicate_policy=settings.duplicate_policy,
            ),
            policy=TargetPolicy.from_cidrs(settings.deny_networks),
            timeouts={kind: settings.timeout_for(kind) for kind in ScanKind},
        )

    @property
    def adapters(self) -> dict[ScanKind, ToolAdapter]:
        return dict(self._adapters)

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    def active_scans(self) -> list[ActiveScan]:
        return list(self._active.values())

    def cancel(self, job_id: str) -> bool:
        """Cancel a running scan by job id."""
        if job_id not in self._active:
            return False
        return self._executor.cancel(job_id)

    async def execute(self, request: ScanRequest) -> ScanResult:
        """Run ``request`` and return its result.

        Validation and admission failures are raised before any subprocess
        is spawned. Timeouts and cancellations raise with the partial result
        attached as ``exc.result``.
        """
        logger.debug(
            "Scan %s of %r: %s -> %s",
            request.scan_kind.value,
            request.target,
            ScanState.RECEIVED.value,
            ScanState.VALIDATING.value,
        )
        target = self._policy.validate(request.target)
        adapter = self._adapters.get(request.scan_kind)
        if adapter is None:
            raise InvalidRequestError(f"No adapter configured for {request.scan_kind.value}")

        async with self._admission.slot(target):
            job = ScanJob(target=target, scan_kind=request.scan_kind)
            active = ActiveScan(
                job_id=job.job_id,
                target=target,
                scan_kind=job.scan_kind,
                started_at=job.started_at,
                state=ScanState.ADMITTED,
            )
            self._active[job.job_id] = active
            try:
                return await self._run(adapter, job, active)
            finally:
                del self._active[job.job_id]
                logger.info(
                    "Scan %s (%s %s) ended: %s",
                    job.job_id,
                    job.scan_kind.value,
                    target.value,
                    active.state.value,
                )

    async def _run(self, adapter: ToolAdapter, job: ScanJob, active: ActiveScan) -> ScanResult:
        spec = adapter.build_invocation(job.target)
        timeout = self._timeouts.get(job.scan_kind)
        self._transition(active, ScanState.RUNNING)
        try:
            output = await self._executor.run(job, spec, timeout=timeout)
        except (ScanTimeoutError, ScanCancelledError) as exc:
            self._transition(
                active,
                ScanState.TIMED_OUT if isinstance(exc, ScanTimeoutError) else ScanState.CANCELLED,
            )
            if exc.output is not None:
                exc.result = adapter.parse(
                    exc.output.stdout,
                    exc.output.exit_code,
                    job,
                    duration_ms=exc.output.duration_ms,
                    diagnostics=exc.output.stderr_text(),
                    partial=True,
                )
            raise
        except BaseException:
            self._transition(active, ScanState.FAILED)
            raise

        try:
            result = adapter.parse(
                output.stdout,
                output.exit_code,
                job,
                duration_ms=output.duration_ms,
                diagnostics=output.stderr_text(),
                partial=output.truncated,
            )
        except ScanError:
            self._transition(active, ScanState.FAILED)
            raise
        except Exception:
            self._transition(active, ScanState.FAILED)
            logger.exception("Unexpected error parsing %s output", adapter.name)
            raise

        self._transition(active, ScanState.COMPLETED)
        return result

    def _transition(self, active: ActiveScan, state: ScanState) -> None:
        logger.debug("Scan %s: %s -> %s", active.job_id, active.state.value, state.value)
        active.state = state
