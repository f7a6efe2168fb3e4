"""Individual health-check functions for ``scanwarden doctor``."""

from __future__ import annotations

import sys
from dataclasses import dataclass

from scanwarden.config import Settings, get_config_path
from scanwarden.executor import resolve_binary


@dataclass
class CheckResult:
    """Outcome of a single diagnostic check."""

    name: str
    status: str  # "pass", "fail", "warn"
    message: str
    fix: str = ""


INSTALL_HINTS = {
    "nmap": "Install nmap: apt install nmap / brew install nmap",
    "nuclei": "Install nuclei: go install github.com/projectdiscovery/nuclei/v3/cmd/nuclei@latest",
    "nikto": "Install nikto: apt install nikto / brew install nikto",
}


def check_python_version() -> CheckResult:
    """The package targets 3.12 (PEP 695 generics, datetime.UTC)."""
    current = sys.version_info[:3]
    label = ".".join(str(part) for part in current)
    if current >= (3, 12):
        return CheckResult("Python", "pass", f"Python {label}")
    return CheckResult("Python", "fail", f"Python {label} is too old", fix="Install Python 3.12+")


def check_config_file() -> CheckResult:
    path = get_config_path()
    if path.exists():
        return CheckResult("Config", "pass", f"Using {path}")
    return CheckResult("Config", "pass", f"No config file at {path}, using defaults")


def check_tools(settings: Settings) -> list[CheckResult]:
    """One result per scan tool; a missing tool disables only its scan type."""
    results = []
    for name, binary in (
        ("nmap", settings.nmap_path),
        ("nuclei", settings.nuclei_path),
        ("nikto", settings.nikto_path),
    ):
        path = resolve_binary(binary)
        if path:
            results.append(CheckResult(name, "pass", path))
            continue
        results.append(
            CheckResult(
                name,
                "warn",
                f"{binary} not found, '{name}' scans will fail with SpawnError",
                fix=INSTALL_HINTS[name],
            )
        )
    return results


def check_target_policy(settings: Settings) -> CheckResult:
    if settings.deny_networks:
        return CheckResult(
            "Target policy",
            "pass",
            f"{len(settings.deny_networks)} denied network(s): {', '.join(settings.deny_networks)}",
        )
    return CheckResult(
        "Target policy",
        "warn",
        "No denied networks; any valid address can be scanned",
        fix="Set deny_networks (e.g. 127.0.0.0/8, 169.254.0.0/16) in the config file",
    )


def check_limits(settings: Settings) -> CheckResult:
    """Report the effective admission and timeout limits."""
    return CheckResult(
        "Limits",
        "pass",
        f"{settings.max_concurrent} concurrent, {settings.per_target_limit} per target, "
        f"queue {settings.max_queue_depth}, timeout {settings.scan_timeout:g}s",
    )
