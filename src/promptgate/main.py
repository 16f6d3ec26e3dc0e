"""FastAPI application entry-points.

Assembles routers, middleware, exception handlers, and lifecycle hooks for
the two deployable roles: the balancer (``app``) and a worker
(``worker_app``).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog
from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from promptgate.adapters.inbound.rest.routers import (
    balancer_router,
    health_router,
    worker_router,
)
from promptgate.config import Settings, get_settings
from promptgate.dependencies import close_balancer_clients, close_worker_clients
from promptgate.shared.errors import register_exception_handlers
from promptgate.shared.middleware import (
    LoggingMiddleware,
    MetricsMiddleware,
    RequestIdMiddleware,
)
from promptgate.shared.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifecycle — startup & shutdown hooks."""
    settings: Settings = app.state.settings
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.is_production,
    )
    logger.info(
        "application_starting",
        role=app.state.role,
        env=settings.app_env.value,
        backends=len(settings.backend_pool),
    )

    yield

    # Shutdown: close this role's outbound HTTP clients
    await app.state.close_clients()
    logger.info("application_shutdown", role=app.state.role)


def _build_app(
    settings: Settings,
    *,
    role: str,
    title: str,
    description: str,
    routers: list[APIRouter],
    close_clients: Callable[[], Awaitable[None]],
) -> FastAPI:
    app = FastAPI(
        title=title,
        description=description,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Store settings in app state for lifecycle access
    app.state.settings = settings
    app.state.role = role
    app.state.close_clients = close_clients

    # ── Middleware (order matters: first added = outermost) ───
    cors_origins = settings.cors_origins
    # CORSMiddleware rejects ["*"] together with allow_credentials
    allow_all_origins = "*" in cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[] if allow_all_origins else cors_origins,
        allow_origin_regex=".*" if allow_all_origins else None,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Served-By", "X-Attempt", "X-Response-Time-Ms", "X-Request-ID"],
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Exception handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── REST routers ─────────────────────────────────────────
    app.include_router(health_router)
    for router in routers:
        app.include_router(router)

    return app


def create_app(settings: Settings | None = None) -> FastAPI:
    """Balancer factory — spreads requests over the configured workers."""
    settings = settings or get_settings()
    return _build_app(
        settings,
        role="balancer",
        title="Prompt Gate",
        description=(
            "Public entry point for image generation and comparison. "
            "Forwards each request to a healthy worker, retrying on failure, "
            "and serves a locally built image URL when every worker is down."
        ),
        routers=[balancer_router],
        close_clients=close_balancer_clients,
    )


def create_worker_app(settings: Settings | None = None) -> FastAPI:
    """Worker factory — calls the external image providers directly."""
    settings = settings or get_settings()
    return _build_app(
        settings,
        role="worker",
        title="Prompt Gate Worker",
        description=(
            "Generates images through ImageRouter and compares images through "
            "a SiliconFlow vision model, rotating API keys per call."
        ),
        routers=[worker_router],
        close_clients=close_worker_clients,
    )


# Uvicorn entry-points
app = create_app()
worker_app = create_worker_app()
