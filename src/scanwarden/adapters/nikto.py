"""Nikto server-misconfiguration adapter."""

import re

from scanwarden.models import CommandSpec, MisconfigFinding, ScanKind, ValidatedTarget

from .base import ToolAdapter

DEFAULT_ENDPOINT = "/"

_IGNORED_PREFIXES = (
    "target ip",
    "target hostname",
    "target port",
    "start time",
    "end time",
    "server:",
    "ssl info",
    "platform:",
    "error:",
    "no cgi directories found",
)
_SUMMARY = re.compile(r"^\d+\s+(?:host\(s\) tested|requests?:)", re.IGNORECASE)
_TEST_ID = re.compile(r"^\[\d+\]\s*")
_OSVDB = re.compile(r"^OSVDB-\d+:\s*")
_METHOD = re.compile(r"^(?:GET|POST|HEAD|OPTIONS|PUT|DELETE|TRACE|PATCH|PROPFIND)\s+(?=/)")


def parse_advisory(content: str) -> MisconfigFinding | None:
    """Split one advisory into endpoint and description."""
    content = _TEST_ID.sub("", content, count=1)
    content = _OSVDB.sub("", content, count=1)
    content = _METHOD.sub("", content, count=1).strip()
    if not content:
        return None
    if content.startswith("/"):
        endpoint, sep, description = content.partition(": ")
        if sep and description.strip():
            return MisconfigFinding(endpoint=endpoint.strip(), description=description.strip())
    return MisconfigFinding(endpoint=DEFAULT_ENDPOINT, description=content)


class NiktoAdapter(ToolAdapter):
    """Run nikto and parse ``+`` advisory lines."""

    name = "nikto"
    scan_kind = ScanKind.MISCONFIG_SCAN
    # Exit 1 means "issues reported".
    fatal_exit_codes = frozenset({2, 255})

    def build_invocation(self, target: ValidatedTarget) -> CommandSpec:
        return CommandSpec(
            argv=(
                self.binary,
                "-h",
                target.value,
                "-ask",
                "no",
                "-nointeractive",
                "-Display",
                "1",
                *self.extra_args,
            )
        )

    def parse_records(
        self, text: str, target: ValidatedTarget
    ) -> tuple[list[MisconfigFinding], int]:
        findings: list[MisconfigFinding] = []
        rejected = 0
        for raw_line in text.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("-"):
                # Banner ("- Nikto v2.5.0") and separator lines.
                continue
            if not line.startswith("+"):
                rejected += 1
                continue

            content = line[1:].strip()
            lowered = content.lower()
            if any(lowered.startswith(prefix) for prefix in _IGNORED_PREFIXES):
                continue
            if _SUMMARY.match(content):
                continue

            finding = parse_advisory(content)
            if finding is None:
                rejected += 1
            else:
                findings.append(finding)
        return findings, rejected
