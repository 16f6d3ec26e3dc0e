"""Backend selector — round-robin over the currently healthy workers.

Unhealthy workers are removed from the rotation until their exclusion window
elapses.  The cursor is applied to the *filtered* list so exclusions compact
the rotation instead of leaving gaps.
"""

from __future__ import annotations

import threading
import time
from typing import Sequence

import structlog

from promptgate.shared.providers.health import BackendStatsTracker, Clock, ExpiringFailureSet
from promptgate.shared.providers.types import BackendStats, PoolStatus

logger = structlog.get_logger(__name__)


class BackendSelector:
    """Owns one backend pool: ordering, cursor, exclusions and stats."""

    def __init__(
        self,
        backends: Sequence[str],
        *,
        unhealthy_window_s: float = 120.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if not backends:
            raise ValueError("BackendSelector requires at least one backend")
        self._pool: tuple[str, ...] = tuple(backends)
        self._unhealthy = ExpiringFailureSet(window_seconds=unhealthy_window_s, clock=clock)
        self._stats = BackendStatsTracker(self._pool)

        self._cursor = 0
        self._lock = threading.Lock()

    @property
    def pool(self) -> tuple[str, ...]:
        return self._pool

    # ── Selection ────────────────────────────────────────────
    def select_next(self) -> str:
        """Pick the next healthy backend.

        When every backend is excluded the exclusion list is cleared and the
        first backend is served, favouring availability.
        """
        with self._lock:
            available = self._unhealthy.exclude(self._pool)

            if not available:
                logger.warning("all_backends_unhealthy_resetting", pool_size=len(self._pool))
                self._unhealthy.reset_all()
                return self._pool[0]

            backend = available[self._cursor % len(available)]
            self._cursor += 1
            return backend

    # ── Health bookkeeping ───────────────────────────────────
    def mark_unhealthy(self, backend: str) -> None:
        self._unhealthy.mark_unhealthy(backend)
        logger.warning(
            "backend_marked_unhealthy",
            backend=backend,
            window_s=self._unhealthy.window_seconds,
        )

    def is_healthy(self, backend: str) -> bool:
        return self._unhealthy.is_healthy(backend)

    def record_success(self, backend: str, latency_ms: float) -> None:
        self._stats.record_success(backend, latency_ms)

    def record_failure(self, backend: str, error: str) -> None:
        self._stats.record_failure(backend, error)

    # ── Introspection ────────────────────────────────────────
    def get_status(self) -> PoolStatus:
        """Read-only snapshot; never evicts or advances anything."""
        unhealthy = self._unhealthy.active() & set(self._pool)
        total = len(self._pool)
        healthy = total - len(unhealthy)
        return PoolStatus(
            pool_size=total,
            unhealthy_count=len(unhealthy),
            healthy_count=healthy,
            cursor_position=self._cursor,
            health_percent=round(healthy / total * 100),
            unhealthy=tuple(b for b in self._pool if b in unhealthy),
        )

    def backend_stats(self) -> list[BackendStats]:
        return self._stats.snapshot(self._unhealthy.active())
