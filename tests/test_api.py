"""Tests for the HTTP service."""

import os
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from scanwarden.adapters import NiktoAdapter, NmapAdapter, NucleiAdapter
from scanwarden.admission import AdmissionController
from scanwarden.api import create_app
from scanwarden.config import Settings
from scanwarden.coordinator import ScanCoordinator
from scanwarden.errors import (
    AdmissionRejectedError,
    RejectReason,
    ScanTimeoutError,
    SpawnError,
    ToolExecutionError,
)
from scanwarden.models import PortFinding, PortState, ProcessOutput, ScanKind, ScanResult
from scanwarden.targets import validate_target


class StaticExecutor:
    def __init__(self, stdout: bytes = b"", exit_code: int = 0):
        self.output = ProcessOutput(stdout=stdout, stderr=b"", exit_code=exit_code, duration=0.1)
        self.calls = 0

    async def run(self, job, spec, timeout=None):
        self.calls += 1
        return self.output

    def cancel(self, job_id):
        return False


class RaisingCoordinator(ScanCoordinator):
    """Coordinator whose execute always fails with a preset error."""

    def __init__(self, error: Exception, **kwargs):
        super().__init__(**kwargs)
        self.error = error

    async def execute(self, request):
        raise self.error


def _adapters(binary: str = "scanwarden-missing-tool"):
    return {
        ScanKind.PORT_SCAN: NmapAdapter(binary=binary),
        ScanKind.WEB_VULN_SCAN: NucleiAdapter(binary=binary),
        ScanKind.MISCONFIG_SCAN: NiktoAdapter(binary=binary),
    }


def _client(coordinator: ScanCoordinator) -> TestClient:
    return TestClient(create_app(settings=Settings(), coordinator=coordinator))


@pytest.fixture
def executor() -> StaticExecutor:
    return StaticExecutor(stdout=b"22/open/ssh\n80/open/http\n")


@pytest.fixture
def client(executor):
    coordinator = ScanCoordinator(
        adapters=_adapters(), executor=executor, admission=AdmissionController()
    )
    with _client(coordinator) as test_client:
        yield test_client


def _raising_client(error: Exception) -> TestClient:
    coordinator = RaisingCoordinator(
        error,
        adapters=_adapters(),
        executor=StaticExecutor(),
        admission=AdmissionController(),
    )
    return _client(coordinator)


class TestScanEndpoint:
    def test_successful_scan(self, client, executor) -> None:
        response = client.post("/scan", json={"target": "example.com", "type": "nmap"})
        assert response.status_code == 200
        body = response.json()
        assert body["result"] == [
            {"port": 22, "state": "open", "service": "ssh"},
            {"port": 80, "state": "open", "service": "http"},
        ]
        assert body["metadata"]["scan_kind"] == "nmap"
        assert body["metadata"]["target"] == "example.com"
        assert executor.calls == 1

    def test_unknown_type_is_400(self, client, executor) -> None:
        response = client.post("/scan", json={"target": "example.com", "type": "masscan"})
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "InvalidRequestError"
        assert executor.calls == 0

    def test_bad_target_is_400(self, client, executor) -> None:
        response = client.post("/scan", json={"target": "example.com;id", "type": "nmap"})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["kind"] == "InvalidTargetError"
        assert "not allowed" in error["reason"]
        assert executor.calls == 0

    @pytest.mark.parametrize(
        "payload",
        [{"target": "example.com"}, {"type": "nmap"}, {"target": 5, "type": "nmap"}, ["nmap"]],
    )
    def test_malformed_body_is_400(self, client, payload) -> None:
        response = client.post("/scan", json=payload)
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["kind"] == "InvalidRequestError"
        assert error["message"].startswith("Malformed request body")

    def test_non_json_body_is_400(self, client) -> None:
        response = client.post(
            "/scan", content=b"not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("error", "status", "kind"),
        [
            (
                AdmissionRejectedError(RejectReason.DUPLICATE_TARGET, "example.com"),
                409,
                "AdmissionRejectedError",
            ),
            (AdmissionRejectedError(RejectReason.OVERLOADED), 429, "AdmissionRejectedError"),
            (ToolExecutionError("nmap failed", exit_code=1), 502, "ToolExecutionError"),
            (SpawnError("nmap binary not found in PATH"), 503, "SpawnError"),
        ],
    )
    def test_error_status(self, error, status, kind) -> None:
        with _raising_client(error) as client:
            response = client.post("/scan", json={"target": "example.com", "type": "nmap"})
        assert response.status_code == status
        assert response.json()["error"]["kind"] == kind
        assert "result" not in response.json()

    def test_admission_reason_in_payload(self) -> None:
        error = AdmissionRejectedError(RejectReason.OVERLOADED)
        with _raising_client(error) as client:
            response = client.post("/scan", json={"target": "example.com", "type": "nmap"})
        assert response.json()["error"]["reason"] == "Overloaded"

    def test_timeout_returns_partial_result(self) -> None:
        partial = ScanResult(
            scan_kind=ScanKind.PORT_SCAN,
            target=validate_target("example.com"),
            findings=(PortFinding(22, PortState.OPEN, "ssh"),),
            job_id="job-1",
            started_at=datetime(2026, 1, 1, tzinfo=UTC),
            duration_ms=1500,
            tool_exit_code=-15,
            partial=True,
        )
        error = ScanTimeoutError("nmap exceeded 1.5s and was terminated", result=partial)
        with _raising_client(error) as client:
            response = client.post("/scan", json={"target": "example.com", "type": "nmap"})

        assert response.status_code == 504
        body = response.json()
        assert body["error"]["kind"] == "TimeoutError"
        assert body["result"] == [{"port": 22, "state": "open", "service": "ssh"}]
        assert body["metadata"]["partial"] is True


class TestJobEndpoints:
    def test_list_scans_empty(self, client) -> None:
        response = client.get("/scans")
        assert response.status_code == 200
        assert response.json() == {"scans": []}

    def test_cancel_unknown_job_is_404(self, client) -> None:
        response = client.delete("/scans/nope")
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "NotFound"

    def test_health_reports_missing_tools(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "degraded"
        assert body["tools"] == {"nmap": False, "nuclei": False, "nikto": False}
        assert body["admission"]["running"] == 0
        assert body["admission"]["max_concurrent"] == 4


@pytest.mark.skipif(os.name != "posix", reason="stub tools need POSIX shebangs")
def test_end_to_end_scan_over_http(stub_tool) -> None:
    tool = stub_tool(
        """
        print("22/open/ssh")
        print("80/open/http")
        """,
        name="nmap",
    )
    settings = Settings(nmap_path=str(tool), scan_timeout=10)
    with TestClient(create_app(settings=settings)) as client:
        response = client.post("/scan", json={"target": "example.com", "type": "nmap"})

    assert response.status_code == 200
    body = response.json()
    assert body["result"] == [
        {"port": 22, "state": "open", "service": "ssh"},
        {"port": 80, "state": "open", "service": "http"},
    ]
    assert body["metadata"]["tool_exit_code"] == 0
