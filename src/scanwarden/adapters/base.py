"""Base contract for tool adapters."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from scanwarden.errors import ParseError, ToolExecutionError
from scanwarden.models import (
    CommandSpec,
    ScanFinding,
    ScanJob,
    ScanKind,
    ScanResult,
    ValidatedTarget,
)

logger = logging.getLogger(__name__)


class ToolAdapter(ABC):
    """Translate between one external tool's CLI/output and normalized findings.

    Subclasses provide the argument vector and a record parser. Exit-code
    interpretation and the "wholesale unparseable" check live here so every
    adapter applies them the same way.
    """

    name: str
    scan_kind: ScanKind
    fatal_exit_codes: frozenset[int] = frozenset()

    def __init__(self, binary: str | None = None, extra_args: Sequence[str] = ()):
        self.binary = binary or self.name
        self.extra_args = tuple(extra_args)

    @abstractmethod
    def build_invocation(self, target: ValidatedTarget) -> CommandSpec:
        """Return the argv for scanning ``target``; the target is one element."""

    @abstractmethod
    def parse_records(self, text: str, target: ValidatedTarget) -> tuple[list[ScanFinding], int]:
        """Parse tool output into findings, returning ``(findings, rejected)``.

        ``rejected`` counts records that looked like data but could not be
        parsed. Such records are skipped, never fatal.
        """

    def parse(
        self,
        raw_output: bytes,
        exit_code: int | None,
        job: ScanJob,
        *,
        duration_ms: int = 0,
        diagnostics: str = "",
        partial: bool = False,
    ) -> ScanResult:
        """Turn captured output into a ``ScanResult``.

        With ``partial`` set (tool killed by timeout or cancellation) the exit
        code is not judged and whatever parsed cleanly is returned.
        """
        text = raw_output.decode(errors="replace")
        if not partial:
            self.check_exit_code(exit_code, text, diagnostics)

        findings, rejected = self.parse_records(text, job.target)
        if rejected:
            logger.debug("%s: skipped %d malformed record(s)", self.name, rejected)
        if not partial and not findings and rejected and text.strip():
            raise ParseError(f"{self.name} output could not be parsed ({rejected} bad records)")

        return ScanResult(
            scan_kind=self.scan_kind,
            target=job.target,
            findings=tuple(findings),
            job_id=job.job_id,
            started_at=job.started_at,
            duration_ms=duration_ms,
            tool_exit_code=exit_code,
            partial=partial,
            diagnostics=diagnostics,
        )

    def check_exit_code(self, exit_code: int | None, stdout: str, stderr: str) -> None:
        """Raise ``ToolExecutionError`` when the tool failed to run."""
        if exit_code == 0:
            return
        fatal = exit_code is None or exit_code < 0 or exit_code in self.fatal_exit_codes
        if not fatal and stdout.strip():
            # Non-zero by convention, e.g. "issues found".
            return
        snippet = stderr.strip().splitlines()
        detail = snippet[0] if snippet else "no output"
        logger.debug("%s stderr:\n%s", self.name, stderr)
        raise ToolExecutionError(
            f"{self.name} failed with exit code {exit_code}: {detail}",
            exit_code=exit_code,
            stderr=stderr,
        )
