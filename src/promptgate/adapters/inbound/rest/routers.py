"""Balancer, Worker, Health — REST routers."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import ORJSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from promptgate.application.dtos import (
    BackendStatsOut,
    BalancerStatusResponse,
    CompareImagesRequest,
    CompareImagesResponse,
    CredentialPoolOut,
    ErrorResponse,
    GenerateImageRequest,
    GenerateImageResponse,
    HealthResponse,
    KeyLeaseOut,
    KeyLeaseResponse,
    KeyReleaseResponse,
    KeyStatusResponse,
    PoolStatusOut,
    ProbeResultOut,
    ReleaseKeyRequest,
    WorkerStatusResponse,
)
from promptgate.application.services import ImageService, RoutingService
from promptgate.config import Settings
from promptgate.dependencies import (
    get_cached_settings,
    get_credential_rotators,
    get_gateway,
    get_image_service,
    get_key_lease_pool,
    get_routing_service,
)
from promptgate.domain.exceptions import ValidationRejectedError
from promptgate.shared.providers import (
    CredentialRotator,
    FailoverGateway,
    KeyLeasePool,
    RoutedResult,
)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ═══════════════════════════════════════════════════════════════
#  Health
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/api/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    settings: Settings = request.app.state.settings
    return HealthResponse(
        service=settings.app_name,
        role=request.app.state.role,
        environment=settings.app_env.value,
    )


@health_router.get("/metrics")
async def prometheus_metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# ═══════════════════════════════════════════════════════════════
#  Balancer
# ═══════════════════════════════════════════════════════════════
balancer_router = APIRouter(tags=["Balancer"])


def _routed_response(result: RoutedResult, settings: Settings) -> ORJSONResponse:
    """Relay the worker (or fallback) body, tagging how it was served."""
    return ORJSONResponse(
        content=result.payload,
        headers={
            "X-Served-By": result.source,
            "X-Attempt": str(result.attempt),
            "X-Response-Time-Ms": f"{result.duration_ms:.1f}",
            "X-Load-Balancer": settings.app_name,
        },
    )


@balancer_router.post("/api/generate-image", responses=_ERROR_RESPONSES)
async def route_generate_image(
    body: GenerateImageRequest,
    service: RoutingService = Depends(get_routing_service),
    settings: Settings = Depends(get_cached_settings),
) -> ORJSONResponse:
    """Generate an image on the next healthy worker, falling back if all fail."""
    result = await service.generate(body.snapshot())
    return _routed_response(result, settings)


@balancer_router.post("/api/compare-images", responses=_ERROR_RESPONSES)
async def route_compare_images(
    body: CompareImagesRequest,
    service: RoutingService = Depends(get_routing_service),
    settings: Settings = Depends(get_cached_settings),
) -> ORJSONResponse:
    result = await service.compare(body.snapshot())
    return _routed_response(result, settings)


@balancer_router.get("/status", response_model=BalancerStatusResponse, response_model_by_alias=True)
async def balancer_status(
    gateway: FailoverGateway = Depends(get_gateway),
) -> BalancerStatusResponse:
    """Pool health and per-backend counters.  Never alters routing state."""
    status = gateway.selector.get_status()
    stats = gateway.selector.backend_stats()
    return BalancerStatusResponse(
        load_balancer=PoolStatusOut(
            pool_size=status.pool_size,
            unhealthy_count=status.unhealthy_count,
            healthy_count=status.healthy_count,
            cursor_position=status.cursor_position,
            health_percent=status.health_percent,
            unhealthy=list(status.unhealthy),
        ),
        backends=[
            BackendStatsOut(
                backend=s.backend,
                requests=s.requests,
                failures=s.failures,
                avg_response_time_ms=s.avg_response_time_ms,
                success_rate=s.success_rate,
                last_error=s.last_error,
                last_used=s.last_used,
                healthy=s.healthy,
            )
            for s in stats
        ],
        timestamp=_utcnow(),
    )


@balancer_router.get("/api/backends/health", response_model=list[ProbeResultOut])
async def backends_health(
    gateway: FailoverGateway = Depends(get_gateway),
) -> list[ProbeResultOut]:
    results = await gateway.probe_all()
    return [
        ProbeResultOut(
            backend=r.backend,
            status=r.status.value,
            response_time_ms=r.response_time_ms,
            status_code=r.status_code,
            error=r.error,
        )
        for r in results
    ]


# ═══════════════════════════════════════════════════════════════
#  Worker
# ═══════════════════════════════════════════════════════════════
worker_router = APIRouter(tags=["Worker"])


@worker_router.post(
    "/api/generate-image",
    response_model=GenerateImageResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
)
async def generate_image(
    body: GenerateImageRequest,
    service: ImageService = Depends(get_image_service),
) -> GenerateImageResponse:
    result = await service.generate(body.prompt)
    return GenerateImageResponse(**result)


@worker_router.post(
    "/api/compare-images",
    response_model=CompareImagesResponse,
    responses=_ERROR_RESPONSES,
)
async def compare_images(
    body: CompareImagesRequest,
    service: ImageService = Depends(get_image_service),
) -> CompareImagesResponse:
    result = await service.compare(
        body.target_image, body.generated_image, body.original_prompt
    )
    return CompareImagesResponse(**result)


@worker_router.get("/api/status", response_model=WorkerStatusResponse)
async def worker_status(
    rotators: list[CredentialRotator] = Depends(get_credential_rotators),
    settings: Settings = Depends(get_cached_settings),
) -> WorkerStatusResponse:
    """Key-pool sizes and cursors; key values are never returned."""
    return WorkerStatusResponse(
        credentials=[CredentialPoolOut(**r.status()) for r in rotators],
        max_prompt_length=settings.max_prompt_length,
        timestamp=_utcnow(),
    )


# ── Key leasing ──────────────────────────────────────────────
@worker_router.post(
    "/api/acquire-key",
    response_model=KeyLeaseResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
)
async def acquire_key(
    pool: KeyLeasePool = Depends(get_key_lease_pool),
    settings: Settings = Depends(get_cached_settings),
) -> KeyLeaseResponse:
    """Lease a comparison key, waiting while every key is checked out."""
    grant = await pool.acquire(
        max_wait_s=settings.key_acquire_max_wait_seconds,
        poll_interval_s=settings.key_acquire_poll_seconds,
    )
    return KeyLeaseResponse(
        key_id=grant.key_id,
        api_key=grant.api_key,
        wait_time=grant.wait_ms,
        expires_in=grant.expires_in_ms,
    )


@worker_router.post(
    "/api/release-key",
    response_model=KeyReleaseResponse,
    response_model_by_alias=True,
    responses=_ERROR_RESPONSES,
)
async def release_key(
    body: ReleaseKeyRequest,
    pool: KeyLeasePool = Depends(get_key_lease_pool),
) -> KeyReleaseResponse:
    key_id = body.key_id
    if key_id is None or key_id == "":
        raise ValidationRejectedError("keyId is required")
    if isinstance(key_id, bool) or not isinstance(key_id, int):
        raise ValidationRejectedError("keyId must be an integer")
    duration = pool.release(key_id)
    return KeyReleaseResponse(key_id=key_id, duration=duration)


@worker_router.get(
    "/api/key-status",
    response_model=KeyStatusResponse,
    response_model_by_alias=True,
)
async def key_status(
    pool: KeyLeasePool = Depends(get_key_lease_pool),
) -> KeyStatusResponse:
    """Lease state per key id; key values are never returned."""
    status = pool.status()
    return KeyStatusResponse(
        pool=status["pool"],
        total=status["total"],
        available=status["available"],
        active=status["active"],
        keys=[KeyLeaseOut(**k) for k in status["keys"]],
    )
