"""Nmap port-scan adapter."""

import logging
import re
import xml.etree.ElementTree as ET

from scanwarden.models import (
    CommandSpec,
    PortFinding,
    PortState,
    ScanKind,
    TargetKind,
    ValidatedTarget,
)

from .base import ToolAdapter

logger = logging.getLogger(__name__)

# Entries are comma separated, but version strings can contain commas too.
_PORT_ENTRY_SEPARATOR = re.compile(r",\s*(?=\d+/)")

_STATES = {
    "open": PortState.OPEN,
    "closed": PortState.CLOSED,
    "filtered": PortState.FILTERED,
    "open|filtered": PortState.FILTERED,
    "closed|filtered": PortState.FILTERED,
}


def normalize_state(value: str) -> PortState:
    return _STATES.get(value.strip().lower(), PortState.UNKNOWN)


def parse_port_entry(entry: str) -> PortFinding | None:
    """Parse ``port/state/service`` or a greppable ``port/state/proto//service//...`` entry."""
    parts = entry.strip().split("/")
    if len(parts) < 3:
        return None
    try:
        port = int(parts[0].strip())
    except ValueError:
        return None
    if not 1 <= port <= 65535:
        return None
    state = parts[1].strip()
    if not state:
        return None
    service = parts[4] if len(parts) >= 5 else parts[-1]
    return PortFinding(port=port, state=normalize_state(state), service=service.strip())


def parse_greppable(text: str) -> tuple[list[PortFinding], int]:
    """Parse ``-oG`` output (and bare ``port/state/service`` lines)."""
    findings: list[PortFinding] = []
    rejected = 0
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("Host:"):
            for column in raw_line.split("\t"):
                column = column.strip()
                if not column.startswith("Ports:"):
                    continue
                for entry in _PORT_ENTRY_SEPARATOR.split(column[len("Ports:") :]):
                    if not entry.strip():
                        continue
                    finding = parse_port_entry(entry)
                    if finding is None:
                        rejected += 1
                    else:
                        findings.append(finding)
            continue

        finding = parse_port_entry(line)
        if finding is None:
            rejected += 1
        else:
            findings.append(finding)
    return findings, rejected


def parse_xml(text: str) -> tuple[list[PortFinding], int]:
    """Parse ``-oX`` output incrementally.

    Every ``<port>`` element that closed before a truncation point or syntax
    error is kept.
    """
    parser = ET.XMLPullParser(events=("end",))
    findings: list[PortFinding] = []
    rejected = 0
    seen_element = False
    try:
        parser.feed(text)
        for _, elem in parser.read_events():
            seen_element = True
            if elem.tag != "port":
                continue
            finding = _parse_port_element(elem)
            if finding is None:
                rejected += 1
            else:
                findings.append(finding)
            elem.clear()
    except ET.ParseError as exc:
        logger.debug("nmap XML stopped parsing: %s", exc)
        if not seen_element:
            rejected += 1
    return findings, rejected


def _parse_port_element(port_elem) -> PortFinding | None:
    try:
        port = int(port_elem.get("portid", ""))
    except ValueError:
        return None
    if not 1 <= port <= 65535:
        return None

    state_elem = port_elem.find("state")
    state = state_elem.get("state", "") if state_elem is not None else ""
    service_elem = port_elem.find("service")
    service = service_elem.get("name", "") if service_elem is not None else ""
    return PortFinding(port=port, state=normalize_state(state), service=service)


class NmapAdapter(ToolAdapter):
    """Run nmap with greppable output and parse port triples."""

    name = "nmap"
    scan_kind = ScanKind.PORT_SCAN
    # 1: bad arguments or unresolvable target, 2/255: runtime failure.
    fatal_exit_codes = frozenset({1, 2, 255})

    def build_invocation(self, target: ValidatedTarget) -> CommandSpec:
        argv = [self.binary, "-oG", "-", "-Pn", "-sT", "-sV", "-T4"]
        if target.kind is TargetKind.IPV6:
            argv.append("-6")
        argv.extend(self.extra_args)
        argv.append(target.value)
        return CommandSpec(argv=tuple(argv))

    def parse_records(self, text: str, target: ValidatedTarget) -> tuple[list[PortFinding], int]:
        if text.lstrip().startswith("<"):
            return parse_xml(text)
        return parse_greppable(text)
