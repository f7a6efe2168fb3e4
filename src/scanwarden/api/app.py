"""FastAPI application exposing the ``/scan`` contract."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scanwarden import package_version
from scanwarden.config import Settings, load_settings
from scanwarden.coordinator import ScanCoordinator
from scanwarden.errors import InvalidRequestError, ScanError
from scanwarden.executor import resolve_binary
from scanwarden.models import ScanRequest

from .schemas import (
    ActiveScansResponse,
    ErrorResponse,
    HealthResponse,
    ScanRequestBody,
    ScanResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 409, 429, 500, 502, 503, 504)
}


def get_coordinator(request: Request) -> ScanCoordinator:
    return request.app.state.coordinator


@router.post("/scan", response_model=ScanResponse, responses=_ERROR_RESPONSES)
async def run_scan(
    body: ScanRequestBody,
    coordinator: ScanCoordinator = Depends(get_coordinator),
) -> dict:
    """Run one scan and return its normalized findings."""
    request = ScanRequest.create(body.target, body.type)
    result = await coordinator.execute(request)
    return result.to_dict()


@router.get("/scans", response_model=ActiveScansResponse)
async def list_scans(coordinator: ScanCoordinator = Depends(get_coordinator)) -> dict:
    return {"scans": [scan.to_dict() for scan in coordinator.active_scans()]}


@router.delete("/scans/{job_id}", status_code=status.HTTP_202_ACCEPTED, response_model=None)
async def cancel_scan(
    job_id: str, coordinator: ScanCoordinator = Depends(get_coordinator)
) -> dict | JSONResponse:
    if not coordinator.cancel(job_id):
        return JSONResponse(
            status_code=404,
            content={"error": {"kind": "NotFound", "message": f"No running scan with id {job_id}"}},
        )
    return {"cancelled": job_id}


@router.get("/health", response_model=HealthResponse)
async def health(coordinator: ScanCoordinator = Depends(get_coordinator)) -> dict:
    tools = {
        kind.value: resolve_binary(adapter.binary) is not None
        for kind, adapter in coordinator.adapters.items()
    }
    return {
        "status": "ok" if all(tools.values()) else "degraded",
        "tools": tools,
        "admission": coordinator.admission.stats(),
    }


async def _scan_error_handler(request: Request, exc: ScanError) -> JSONResponse:
    body: dict = {"error": exc.to_dict()}
    partial = getattr(exc, "result", None)
    if partial is not None:
        body.update(partial.to_dict())
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s: %s", request.method, request.url.path, exc.kind, exc)
    return JSONResponse(status_code=exc.status_code, content=body)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    )
    error = InvalidRequestError(f"Malformed request body: {problems}")
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": {"kind": "InternalError", "message": "Internal server error"}},
    )


def create_app(
    settings: Settings | None = None,
    coordinator: ScanCoordinator | None = None,
) -> FastAPI:
    """Build the application; the coordinator is created at startup unless injected."""
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.coordinator = coordinator or ScanCoordinator.from_settings(settings)
        logger.info(
            "ScanWarden ready: %d concurrent scans, queue depth %d",
            settings.max_concurrent,
            settings.max_queue_depth,
        )
        yield

    app = FastAPI(title="ScanWarden", version=package_version(), lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )
    app.include_router(router)
    app.add_exception_handler(ScanError, _scan_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    return app
