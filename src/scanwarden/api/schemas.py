"""Request and response bodies for the HTTP service."""

from typing import Any

from pydantic import BaseModel, Field


class ScanRequestBody(BaseModel):
    target: str = Field(..., description="Hostname, IPv4 or IPv6 address")
    type: str = Field(..., description="Scan type: nmap, nuclei or nikto")


class ErrorDetail(BaseModel):
    kind: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail
    result: list[dict[str, Any]] | None = None
    metadata: dict[str, Any] | None = None


class ScanResponse(BaseModel):
    result: list[dict[str, Any]]
    metadata: dict[str, Any]


class ActiveScansResponse(BaseModel):
    scans: list[dict[str, Any]]


class HealthResponse(BaseModel):
    status: str
    tools: dict[str, bool]
    admission: dict[str, int]
