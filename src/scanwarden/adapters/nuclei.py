"""Nuclei web-vulnerability adapter."""

import json

from scanwarden.models import (
    CommandSpec,
    ScanKind,
    Severity,
    TargetKind,
    ValidatedTarget,
    WebVulnFinding,
)

from .base import ToolAdapter


def _normalize_severity(value: object) -> Severity:
    normalized = str(value or "").strip().lower()
    mapping = {
        "critical": Severity.CRITICAL,
        "high": Severity.HIGH,
        "medium": Severity.MEDIUM,
        "low": Severity.LOW,
    }
    # info, unknown and missing severities are reported as low
    return mapping.get(normalized, Severity.LOW)


class NucleiAdapter(ToolAdapter):
    """Run nuclei templates and parse JSONL findings."""

    name = "nuclei"
    scan_kind = ScanKind.WEB_VULN_SCAN
    fatal_exit_codes = frozenset({1, 2})

    def build_invocation(self, target: ValidatedTarget) -> CommandSpec:
        host = f"[{target.value}]" if target.kind is TargetKind.IPV6 else target.value
        return CommandSpec(
            argv=(self.binary, "-u", host, "-jsonl", "-silent", "-nc", *self.extra_args)
        )

    def parse_records(
        self, text: str, target: ValidatedTarget
    ) -> tuple[list[WebVulnFinding], int]:
        findings: list[WebVulnFinding] = []
        rejected = 0
        for line in text.splitlines():
            entry = line.strip()
            if not entry:
                continue
            try:
                obj = json.loads(entry)
            except json.JSONDecodeError:
                rejected += 1
                continue
            if not isinstance(obj, dict):
                rejected += 1
                continue

            info = obj.get("info")
            if not isinstance(info, dict):
                info = {}
            template_id = str(obj.get("template-id") or "").strip()
            title = str(info.get("name") or template_id or "Nuclei finding").strip()
            description = str(info.get("description") or "").strip()
            if not description:
                description = f"Nuclei template {template_id or 'unknown'} matched."
            url = str(obj.get("matched-at") or obj.get("host") or target.value).strip()

            findings.append(
                WebVulnFinding(
                    title=title,
                    severity=_normalize_severity(info.get("severity")),
                    url=url,
                    description=description,
                )
            )
        return findings, rejected
