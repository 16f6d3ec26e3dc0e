"""Global exception handlers — map domain errors to HTTP responses.

Clients must be able to tell bad input (400, do not retry) apart from
backend unavailability (503, retry with backoff).
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
import structlog

from promptgate.domain.exceptions import (
    AllBackendsExhaustedError,
    BackendUnavailableError,
    DomainError,
    KeyLeaseNotFoundError,
    KeysBusyError,
    NoCredentialsConfiguredError,
    UpstreamProviderError,
    ValidationRejectedError,
)

logger = structlog.get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain→HTTP exception mappings."""

    @app.exception_handler(ValidationRejectedError)
    async def handle_validation(request: Request, exc: ValidationRejectedError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def handle_malformed_body(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={
                "code": "VALIDATION_ERROR",
                "message": "Invalid request body",
                "details": {"errors": [str(e.get("msg", "")) for e in exc.errors()]},
            },
        )

    @app.exception_handler(NoCredentialsConfiguredError)
    async def handle_no_credentials(
        request: Request, exc: NoCredentialsConfiguredError
    ) -> ORJSONResponse:
        logger.error("credentials_missing_http", pool=exc.pool_name)
        return ORJSONResponse(
            status_code=500,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(AllBackendsExhaustedError)
    async def handle_exhausted(request: Request, exc: AllBackendsExhaustedError) -> ORJSONResponse:
        logger.error("backends_exhausted_http", attempts=exc.attempts, last_error=exc.last_error)
        return ORJSONResponse(
            status_code=503,
            content={
                "code": exc.code,
                "message": "All internal workers unavailable",
                "details": {"attempts": exc.attempts, "last_error": exc.last_error},
            },
            headers={"Retry-After": "5"},
        )

    @app.exception_handler(KeysBusyError)
    async def handle_keys_busy(request: Request, exc: KeysBusyError) -> ORJSONResponse:
        logger.warning("keys_busy_http", pool=exc.pool_name, total_keys=exc.total_keys)
        return ORJSONResponse(
            status_code=503,
            content={
                "code": exc.code,
                "message": exc.message,
                "details": {
                    "totalKeys": exc.total_keys,
                    "availableKeys": 0,
                    "retryAfter": exc.retry_after,
                },
            },
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(KeyLeaseNotFoundError)
    async def handle_key_not_found(
        request: Request, exc: KeyLeaseNotFoundError
    ) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=404,
            content={"code": exc.code, "message": exc.message, "details": {"keyId": exc.key_id}},
        )

    @app.exception_handler(BackendUnavailableError)
    async def handle_backend(request: Request, exc: BackendUnavailableError) -> ORJSONResponse:
        logger.error("backend_error_http", backend=exc.backend, reason=exc.reason)
        return ORJSONResponse(
            status_code=502,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(UpstreamProviderError)
    async def handle_upstream(request: Request, exc: UpstreamProviderError) -> ORJSONResponse:
        logger.error("upstream_error_http", provider=exc.provider, message=exc.message)
        return ORJSONResponse(
            status_code=502,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(DomainError)
    async def handle_domain(request: Request, exc: DomainError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return ORJSONResponse(
            status_code=500,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )
