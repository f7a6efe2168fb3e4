"""Subprocess lifecycle for external scanning tools."""

import asyncio
import logging
import os
import shlex
import shutil
import signal
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field

from scanwarden.errors import ScanCancelledError, ScanTimeoutError, SpawnError
from scanwarden.models import CommandSpec, ProcessOutput, ScanJob

logger = logging.getLogger(__name__)

_POSIX = os.name == "posix"
_READ_CHUNK = 64 * 1024

EXITED = "exited"
TIMED_OUT = "timed_out"
CANCELLED = "cancelled"


def resolve_binary(name: str) -> str | None:
    """Return absolute path for a binary name when available."""
    return shutil.which(name)


@dataclass
class _Capture:
    """Bytes read from one pipe, capped at ``limit``."""

    limit: int
    data: bytearray = field(default_factory=bytearray)
    truncated: bool = False

    async def drain(self, stream: asyncio.StreamReader) -> None:
        while chunk := await stream.read(_READ_CHUNK):
            room = self.limit - len(self.data)
            if room > 0:
                self.data.extend(chunk[:room])
            if len(chunk) > room:
                self.truncated = True


def _signal_process(process: asyncio.subprocess.Process, force: bool) -> None:
    """Signal the process group on POSIX, the process elsewhere."""
    if process.returncode is not None:
        return
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)
        elif force:
            process.kill()
        else:
            process.terminate()
    except ProcessLookupError:
        pass


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """SIGKILL whatever is left of the tool's process group after the tool is reaped."""
    if not _POSIX:
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        return
    logger.debug("Killed leftover processes in group %s", process.pid)


class ScanExecutor:
    """Run tool invocations with timeout, cancellation and guaranteed cleanup."""

    def __init__(
        self,
        default_timeout: float = 600.0,
        kill_grace: float = 5.0,
        max_output_bytes: int = 16 * 1024 * 1024,
    ):
        self.default_timeout = default_timeout
        self.kill_grace = kill_grace
        self.max_output_bytes = max_output_bytes
        self._jobs: dict[str, ScanJob] = {}

    def active_jobs(self) -> list[str]:
        """Return ids of jobs whose subprocess is currently running."""
        return list(self._jobs)

    def cancel(self, job_id: str) -> bool:
        """Cancel an in-flight job. Returns False for unknown ids."""
        job = self._jobs.get(job_id)
        if job is None:
            return False
        logger.info("Cancelling scan job %s", job_id)
        job.cancel()
        return True

    async def run(
        self,
        job: ScanJob,
        spec: CommandSpec,
        timeout: float | None = None,
    ) -> ProcessOutput:
        """Run one tool invocation and return its captured output.

        Raises:
            SpawnError: the binary is missing or could not be started.
            ScanTimeoutError: the wall-clock budget ran out; ``output`` holds
                what was captured before the kill.
            ScanCancelledError: ``cancel(job.job_id)`` was called.
        """
        budget = self.default_timeout if timeout is None else timeout
        argv = self._resolve(spec)
        stdout = _Capture(self.max_output_bytes)
        stderr = _Capture(self.max_output_bytes)

        self._jobs[job.job_id] = job
        started = time.perf_counter()
        try:
            async with self._spawned(argv, spec, stdout, stderr) as process:
                outcome = await self._wait(process, job, budget)
                if outcome != EXITED:
                    await self._terminate(process)
        finally:
            self._jobs.pop(job.job_id, None)

        output = ProcessOutput(
            stdout=bytes(stdout.data),
            stderr=bytes(stderr.data),
            exit_code=process.returncode,
            duration=time.perf_counter() - started,
            truncated=stdout.truncated or stderr.truncated,
        )
        if output.truncated:
            logger.warning(
                "Output of job %s exceeded %d bytes and was truncated",
                job.job_id,
                self.max_output_bytes,
            )
        if outcome == TIMED_OUT:
            raise ScanTimeoutError(
                f"{spec.binary} exceeded {budget:g}s and was terminated", output=output
            )
        if outcome == CANCELLED:
            raise ScanCancelledError(f"Scan job {job.job_id} was cancelled", output=output)

        logger.info(
            "Job %s finished: exit=%s (%.2fs)", job.job_id, output.exit_code, output.duration
        )
        return output

    def _resolve(self, spec: CommandSpec) -> list[str]:
        if not spec.argv:
            raise SpawnError("Empty command")
        binary = resolve_binary(spec.binary)
        if not binary:
            raise SpawnError(f"{spec.binary} binary not found in PATH")
        return [binary, *spec.argv[1:]]

    @asynccontextmanager
    async def _spawned(
        self,
        argv: list[str],
        spec: CommandSpec,
        stdout: _Capture,
        stderr: _Capture,
    ) -> AsyncIterator[asyncio.subprocess.Process]:
        """Spawn the tool and guarantee it is killed, reaped and drained on exit."""
        env = None
        if spec.env:
            env = {**os.environ, **spec.env}
        logger.debug("Spawning: %s", " ".join(shlex.quote(part) for part in argv))
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=spec.cwd,
                start_new_session=_POSIX,
            )
        except OSError as exc:
            raise SpawnError(f"Could not start {spec.binary}: {exc}") from exc

        readers = [
            asyncio.create_task(stdout.drain(process.stdout)),
            asyncio.create_task(stderr.drain(process.stderr)),
        ]
        try:
            yield process
        finally:
            if process.returncode is None:
                try:
                    await self._terminate(process)
                except asyncio.CancelledError:
                    _signal_process(process, force=True)
                    _kill_group(process)
                    raise
            # The group outlives its leader while any child is still in it.
            _kill_group(process)
            try:
                await asyncio.wait_for(asyncio.gather(*readers), timeout=self.kill_grace)
            except TimeoutError:
                # A grandchild outside the process group can hold the pipe open.
                logger.warning("Pipes of pid %s still open after exit", process.pid)
                for reader in readers:
                    reader.cancel()
                with suppress(asyncio.CancelledError):
                    await asyncio.gather(*readers, return_exceptions=True)
                for pipe in (process.stdout, process.stderr):
                    transport = getattr(pipe, "_transport", None)
                    if transport is not None:
                        transport.close()

    async def _wait(self, process: asyncio.subprocess.Process, job: ScanJob, budget: float) -> str:
        exited = asyncio.create_task(process.wait())
        cancelled = asyncio.create_task(job.wait_cancelled())
        try:
            done, _ = await asyncio.wait(
                {exited, cancelled},
                timeout=budget,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (exited, cancelled):
                if not task.done():
                    task.cancel()
        if exited in done:
            return EXITED
        if cancelled in done:
            return CANCELLED
        logger.warning("Job %s timed out after %gs", job.job_id, budget)
        return TIMED_OUT

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM, wait ``kill_grace`` seconds, then SIGKILL and reap."""
        _signal_process(process, force=False)
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace)
        except TimeoutError:
            logger.warning("pid %s ignored SIGTERM, sending SIGKILL", process.pid)
            _signal_process(process, force=True)
            await process.wait()
