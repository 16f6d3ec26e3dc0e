"""Dependency injection container — wires adapters to ports.

FastAPI's ``Depends()`` system uses these factories to inject the
correct adapter implementations into route handlers.  Tests swap any of
them out through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from promptgate.adapters.outbound.imaging import ImageRouterAdapter, SiliconFlowAdapter
from promptgate.adapters.outbound.workers import HttpWorkerAdapter
from promptgate.application.services import ImageService, RoutingService
from promptgate.config import Settings, get_settings
from promptgate.domain.enums import OperationKind
from promptgate.domain.services.fallback import FallbackImageBuilder
from promptgate.domain.services.validation import PromptRules
from promptgate.shared.providers import (
    BackendSelector,
    CredentialRotator,
    FailoverGateway,
    KeyLeasePool,
)


# ── Settings ─────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_cached_settings() -> Settings:
    return get_settings()


def get_prompt_rules() -> PromptRules:
    return PromptRules(max_length=get_cached_settings().max_prompt_length)


# ── Singletons ───────────────────────────────────────────────
_worker_adapter: HttpWorkerAdapter | None = None
_gateway: FailoverGateway | None = None
_image_router_rotator: CredentialRotator | None = None
_comparison_rotator: CredentialRotator | None = None
_image_router: ImageRouterAdapter | None = None
_comparator: SiliconFlowAdapter | None = None
_key_lease_pool: KeyLeasePool | None = None


def get_worker_adapter() -> HttpWorkerAdapter:
    global _worker_adapter
    if _worker_adapter is None:
        s = get_cached_settings()
        _worker_adapter = HttpWorkerAdapter(
            timeout=max(s.generate_timeout_seconds, s.compare_timeout_seconds),
            probe_timeout=s.probe_timeout_seconds,
        )
    return _worker_adapter


def get_gateway() -> FailoverGateway:
    """Create or return the singleton failover gateway.

    The selector is built from ``BACKEND_URLS``; generation requests get the
    local fallback image unless ``FALLBACK_ENABLED`` is off.
    """
    global _gateway
    if _gateway is None:
        s = get_cached_settings()
        selector = BackendSelector(
            s.backend_pool,
            unhealthy_window_s=s.unhealthy_window_seconds,
        )
        fallbacks: dict[OperationKind, FallbackImageBuilder] = {}
        if s.fallback_enabled:
            fallbacks[OperationKind.GENERATE] = FallbackImageBuilder(
                base_url=s.fallback_image_base_url,
                rules=PromptRules(max_length=s.max_prompt_length),
            )
        _gateway = FailoverGateway(
            selector,
            get_worker_adapter(),
            max_attempts=s.max_attempts,
            timeouts={
                OperationKind.GENERATE: s.generate_timeout_seconds,
                OperationKind.COMPARE: s.compare_timeout_seconds,
            },
            fallbacks=fallbacks,
        )
    return _gateway


def get_image_router_rotator() -> CredentialRotator:
    global _image_router_rotator
    if _image_router_rotator is None:
        s = get_cached_settings()
        _image_router_rotator = CredentialRotator("imagerouter", s.image_router_key_pool)
    return _image_router_rotator


def get_comparison_rotator() -> CredentialRotator:
    global _comparison_rotator
    if _comparison_rotator is None:
        s = get_cached_settings()
        _comparison_rotator = CredentialRotator("siliconflow", s.comparison_key_pool)
    return _comparison_rotator


def get_image_router() -> ImageRouterAdapter:
    global _image_router
    if _image_router is None:
        s = get_cached_settings()
        _image_router = ImageRouterAdapter(
            get_image_router_rotator(),
            url=s.image_router_url,
            model=s.image_router_model,
            output_format=s.image_router_output_format,
            timeout=s.image_router_timeout_seconds,
        )
    return _image_router


def get_comparator() -> SiliconFlowAdapter:
    global _comparator
    if _comparator is None:
        s = get_cached_settings()
        _comparator = SiliconFlowAdapter(
            get_comparison_rotator(),
            url=s.comparison_url,
            model=s.comparison_model,
            max_tokens=s.comparison_max_tokens,
            temperature=s.comparison_temperature,
            timeout=s.comparison_timeout_seconds,
        )
    return _comparator


def get_credential_rotators() -> list[CredentialRotator]:
    return [get_image_router_rotator(), get_comparison_rotator()]


def get_key_lease_pool() -> KeyLeasePool:
    """Lease pool over the comparison keys, handed out one holder at a time."""
    global _key_lease_pool
    if _key_lease_pool is None:
        s = get_cached_settings()
        _key_lease_pool = KeyLeasePool(
            "siliconflow", s.comparison_key_pool, lease_seconds=s.key_lease_seconds
        )
    return _key_lease_pool


# ── Application services ─────────────────────────────────────
def get_routing_service() -> RoutingService:
    return RoutingService(get_gateway(), rules=get_prompt_rules())


def get_image_service() -> ImageService:
    s = get_cached_settings()
    return ImageService(
        get_image_router(),
        get_comparator(),
        rules=get_prompt_rules(),
        generated_by=f"ImageRouter.io ({s.image_router_model.rsplit('/', 1)[-1]})",
    )


# ── Shutdown ─────────────────────────────────────────────────
# Each role tears down only the singletons it builds.
async def close_balancer_clients() -> None:
    global _worker_adapter, _gateway
    if _worker_adapter is not None:
        await _worker_adapter.close()
    _worker_adapter = _gateway = None


async def close_worker_clients() -> None:
    global _image_router, _comparator, _image_router_rotator, _comparison_rotator
    global _key_lease_pool
    for client in (_image_router, _comparator):
        if client is not None:
            await client.close()
    _image_router = _comparator = None
    _image_router_rotator = _comparison_rotator = _key_lease_pool = None
