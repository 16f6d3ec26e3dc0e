"""Failure tracking for backend pools.

``ExpiringFailureSet`` holds identities that are temporarily excluded from
selection.  Each entry carries its own expiry and is dropped lazily the next
time anyone looks at it, so no background timer is needed.

``BackendStatsTracker`` keeps cumulative per-backend counters for status views.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Callable, Iterable

from promptgate.shared.providers.types import BackendStats

Clock = Callable[[], float]


class ExpiringFailureSet:
    """Thread-safe set of unhealthy identities with per-entry expiry."""

    def __init__(
        self,
        *,
        window_seconds: float = 120.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._expiries: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def window_seconds(self) -> float:
        return self._window

    # ── Mutation ─────────────────────────────────────────────
    def mark_unhealthy(self, identity: str) -> None:
        """Insert or refresh ``identity`` with a fresh expiry window."""
        with self._lock:
            self._expiries[identity] = self._clock() + self._window

    def reset_all(self) -> None:
        with self._lock:
            self._expiries.clear()

    # ── Queries ──────────────────────────────────────────────
    def is_healthy(self, identity: str) -> bool:
        with self._lock:
            self._evict()
            return identity not in self._expiries

    def exclude(self, pool: Iterable[str]) -> list[str]:
        """Return the members of ``pool`` that are currently healthy, in order."""
        with self._lock:
            self._evict()
            return [member for member in pool if member not in self._expiries]

    def active(self) -> frozenset[str]:
        """Unexpired members, computed without evicting anything."""
        with self._lock:
            now = self._clock()
            return frozenset(k for k, expiry in self._expiries.items() if expiry > now)

    # ── Internals ────────────────────────────────────────────
    def _evict(self) -> None:
        """Drop expired entries (caller holds lock)."""
        now = self._clock()
        expired = [k for k, expiry in self._expiries.items() if expiry <= now]
        for identity in expired:
            del self._expiries[identity]


class BackendStatsTracker:
    """Cumulative request counters for every member of a pool."""

    def __init__(self, pool: Iterable[str]) -> None:
        self._stats: dict[str, BackendStats] = {b: BackendStats(backend=b) for b in pool}
        self._lock = threading.Lock()

    def record_success(self, backend: str, latency_ms: float) -> None:
        with self._lock:
            stats = self._stats.get(backend)
            if stats is None:
                return
            stats.requests += 1
            stats.last_used = datetime.now(timezone.utc).isoformat()
            # Running average weighted toward recent calls
            if stats.avg_response_time_ms:
                stats.avg_response_time_ms = (stats.avg_response_time_ms + latency_ms) / 2
            else:
                stats.avg_response_time_ms = latency_ms
            stats.avg_response_time_ms = float(f"{stats.avg_response_time_ms:.1f}")

    def record_failure(self, backend: str, error: str) -> None:
        with self._lock:
            stats = self._stats.get(backend)
            if stats is None:
                return
            stats.requests += 1
            stats.failures += 1
            stats.last_error = error
            stats.last_used = datetime.now(timezone.utc).isoformat()

    def snapshot(self, unhealthy: frozenset[str] = frozenset()) -> list[BackendStats]:
        with self._lock:
            return [
                BackendStats(
                    backend=s.backend,
                    requests=s.requests,
                    failures=s.failures,
                    avg_response_time_ms=s.avg_response_time_ms,
                    last_error=s.last_error,
                    last_used=s.last_used,
                    healthy=s.backend not in unhealthy,
                )
                for s in self._stats.values()
            ]
