"""Core types for the backend routing and credential rotation layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from promptgate.domain.enums import OperationKind, ProbeStatus


@dataclass(frozen=True)
class BackendRequest:
    """One attempt's view of a routed request.

    Attributes:
        operation: Logical operation (decides the worker path).
        payload:   Private copy of the inbound body snapshot.
        timeout_s: Per-attempt deadline in seconds.
    """

    operation: OperationKind
    payload: dict[str, Any]
    timeout_s: float

    @property
    def path(self) -> str:
        return self.operation.path


@dataclass(frozen=True)
class BackendResponse:
    """Raw outcome of a single backend call."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class RoutedResult:
    """Result handed back to the request layer.

    Real-backend and fallback results share this shape; only ``fallback``
    and ``source`` tell them apart.
    """

    success: bool
    payload: dict[str, Any]
    source: str
    duration_ms: float
    attempt: int
    fallback: bool = False


@dataclass(frozen=True)
class PoolStatus:
    """Read-only snapshot of a backend pool."""

    pool_size: int
    unhealthy_count: int
    healthy_count: int
    cursor_position: int
    health_percent: int
    unhealthy: tuple[str, ...] = ()


@dataclass
class BackendStats:
    """Per-backend request bookkeeping."""

    backend: str
    requests: int = 0
    failures: int = 0
    avg_response_time_ms: float = 0.0
    last_error: str | None = None
    last_used: str | None = None
    healthy: bool = True

    @property
    def success_rate(self) -> float | None:
        if not self.requests:
            return None
        return float(f"{(self.requests - self.failures) / self.requests * 100:.2f}")


@dataclass(frozen=True)
class ProbeResult:
    backend: str
    status: ProbeStatus
    response_time_ms: float | None = None
    status_code: int | None = None
    error: str | None = None


@dataclass
class KeyLease:
    """Lease bookkeeping for one key.  ``held_since`` is on the pool's clock."""

    key_id: int
    api_key: str
    active: bool = False
    held_since: float | None = None
    acquired_at: str | None = None
    last_used: str | None = None


@dataclass(frozen=True)
class LeaseGrant:
    key_id: int
    api_key: str
    wait_ms: float
    expires_in_ms: float
