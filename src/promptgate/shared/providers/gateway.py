"""Failover gateway — the main entry-point for routed backend calls.

Composes the BackendSelector with a BackendPort into a single resilience
layer.  Callers hand in an operation and the validated payload snapshot; the
gateway handles selection, per-attempt timeouts, exclusion of failing
backends, bounded retries, and the local fallback for generation requests.
"""

from __future__ import annotations

import asyncio
import copy
import time
from typing import TYPE_CHECKING, Any, Callable, Mapping

import structlog

from promptgate.domain.enums import OperationKind
from promptgate.domain.exceptions import AllBackendsExhaustedError, BackendUnavailableError
from promptgate.shared.observability.metrics import (
    BACKEND_ATTEMPTS,
    BACKEND_LATENCY,
    EXHAUSTED_REQUESTS,
    FALLBACK_RESPONSES,
    UNHEALTHY_BACKENDS,
)
from promptgate.shared.providers.router import BackendSelector
from promptgate.shared.providers.types import BackendRequest, ProbeResult, RoutedResult

if TYPE_CHECKING:
    from promptgate.ports.outbound import BackendPort

logger = structlog.get_logger(__name__)

FallbackBuilder = Callable[[Mapping[str, Any]], dict[str, Any] | None]

DEFAULT_TIMEOUTS: dict[OperationKind, float] = {
    OperationKind.GENERATE: 30.0,
    OperationKind.COMPARE: 60.0,
}


class FailoverGateway:
    """Bounded-retry router over a pool of interchangeable workers.

    Usage::

        gateway = FailoverGateway(selector, backend_port, fallbacks={
            OperationKind.GENERATE: FallbackImageBuilder(),
        })
        result = await gateway.route(OperationKind.GENERATE, {"prompt": "a cat"})

    ``fallbacks`` maps an operation to a builder that receives the payload
    snapshot and returns a degraded body, or ``None`` if the snapshot cannot
    be used.  Builders registered for operations that do not support a
    fallback are ignored.
    """

    def __init__(
        self,
        selector: BackendSelector,
        backend: BackendPort,
        *,
        max_attempts: int = 3,
        timeouts: Mapping[OperationKind, float] | None = None,
        fallbacks: Mapping[OperationKind, FallbackBuilder] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._selector = selector
        self._backend = backend
        self._max_attempts = max_attempts
        self._timeouts = {**DEFAULT_TIMEOUTS, **(timeouts or {})}
        self._fallbacks = {
            op: fn for op, fn in (fallbacks or {}).items() if op.supports_fallback
        }

    @property
    def selector(self) -> BackendSelector:
        return self._selector

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    # ── Main entry-point ─────────────────────────────────────
    async def route(
        self,
        operation: OperationKind,
        payload: Mapping[str, Any],
    ) -> RoutedResult:
        """Route one request, retrying across backends.

        Args:
            operation: The logical operation being requested.
            payload: Validated body snapshot; never mutated.

        Returns:
            The first successful backend result, or a fallback result for
            fallback-eligible operations.

        Raises:
            AllBackendsExhaustedError: If every attempt failed and no fallback
                could be produced.
        """
        snapshot = copy.deepcopy(dict(payload))
        timeout_s = self._timeouts[operation]
        started = time.monotonic()
        last_error: str | None = None

        for attempt in range(1, self._max_attempts + 1):
            backend = self._selector.select_next()
            log = logger.bind(operation=operation.value, backend=backend, attempt=attempt)
            request = BackendRequest(
                operation=operation,
                payload=copy.deepcopy(snapshot),
                timeout_s=timeout_s,
            )

            try:
                body, latency_ms = await self._attempt(backend, request)
            except BackendUnavailableError as exc:
                last_error = exc.reason
                self._selector.mark_unhealthy(backend)
                self._publish_health()
                log.warning("backend_attempt_failed", error=exc.reason)
                continue

            self._publish_health()
            log.info("backend_attempt_succeeded", latency_ms=float(f"{latency_ms:.1f}"))
            return RoutedResult(
                success=True,
                payload=body,
                source=backend,
                duration_ms=float(f"{latency_ms:.1f}"),
                attempt=attempt,
            )

        logger.error(
            "all_backends_failed",
            operation=operation.value,
            attempts=self._max_attempts,
            last_error=last_error,
        )
        return self._fallback_or_raise(operation, snapshot, started, last_error)

    def _publish_health(self) -> None:
        """Sync the unhealthy gauge with the selector, expiries and resets included."""
        UNHEALTHY_BACKENDS.set(self._selector.get_status().unhealthy_count)

    # ── Single attempt ───────────────────────────────────────
    async def _attempt(
        self, backend: str, request: BackendRequest
    ) -> tuple[dict[str, Any], float]:
        op = request.operation.value
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._backend.call(backend, request),
                timeout=request.timeout_s,
            )
        except asyncio.TimeoutError:
            reason = f"Timeout after {request.timeout_s}s"
            self._selector.record_failure(backend, reason)
            BACKEND_ATTEMPTS.labels(operation=op, outcome="timeout").inc()
            raise BackendUnavailableError(backend, reason) from None
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
            self._selector.record_failure(backend, reason)
            BACKEND_ATTEMPTS.labels(operation=op, outcome="error").inc()
            raise BackendUnavailableError(backend, reason) from exc

        latency_ms = (time.monotonic() - start) * 1000
        if not response.ok:
            reason = f"Worker returned status: {response.status_code}"
            self._selector.record_failure(backend, reason)
            BACKEND_ATTEMPTS.labels(operation=op, outcome="error").inc()
            raise BackendUnavailableError(backend, reason)

        self._selector.record_success(backend, latency_ms)
        BACKEND_ATTEMPTS.labels(operation=op, outcome="success").inc()
        BACKEND_LATENCY.labels(operation=op).observe(latency_ms / 1000)
        return response.body, latency_ms

    # ── Exhaustion ───────────────────────────────────────────
    def _fallback_or_raise(
        self,
        operation: OperationKind,
        snapshot: dict[str, Any],
        started: float,
        last_error: str | None,
    ) -> RoutedResult:
        builder = self._fallbacks.get(operation)
        if builder is not None:
            body = builder(snapshot)
            if body is not None:
                FALLBACK_RESPONSES.labels(operation=operation.value).inc()
                return RoutedResult(
                    success=True,
                    payload=body,
                    source=str(body.get("serverUsed", "fallback")),
                    duration_ms=float(f"{(time.monotonic() - started) * 1000:.1f}"),
                    attempt=self._max_attempts,
                    fallback=True,
                )

        EXHAUSTED_REQUESTS.labels(operation=operation.value).inc()
        raise AllBackendsExhaustedError(self._max_attempts, last_error)

    # ── Health observation ───────────────────────────────────
    async def probe_all(self) -> list[ProbeResult]:
        """Probe every backend concurrently; exclusions are left untouched."""
        return list(
            await asyncio.gather(*(self._backend.probe(b) for b in self._selector.pool))
        )
