"""Test configuration and fixtures for ScanWarden."""

import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from scanwarden.models import ProcessOutput, ScanJob, ScanKind, ValidatedTarget
from scanwarden.targets import validate_target


def _shebang() -> str:
    # Kernels cap shebang length; fall back to env lookup for long venv paths.
    if len(sys.executable) < 120 and " " not in sys.executable:
        return f"#!{sys.executable}"
    return "#!/usr/bin/env python3"


@pytest.fixture
def stub_tool(tmp_path: Path) -> Callable[..., Path]:
    """Write an executable Python script standing in for an external tool."""

    def _make(body: str, name: str = "stubtool") -> Path:
        path = tmp_path / name
        path.write_text(_shebang() + "\n" + textwrap.dedent(body).lstrip())
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def example_target() -> ValidatedTarget:
    return validate_target("example.com")


@pytest.fixture
def make_job(example_target: ValidatedTarget) -> Callable[..., ScanJob]:
    def _make(
        kind: ScanKind = ScanKind.PORT_SCAN, target: ValidatedTarget | None = None
    ) -> ScanJob:
        return ScanJob(target=target or example_target, scan_kind=kind)

    return _make


@pytest.fixture
def make_output() -> Callable[..., ProcessOutput]:
    def _make(stdout: str = "", exit_code: int | None = 0, stderr: str = "") -> ProcessOutput:
        return ProcessOutput(
            stdout=stdout.encode(), stderr=stderr.encode(), exit_code=exit_code, duration=0.25
        )

    return _make
