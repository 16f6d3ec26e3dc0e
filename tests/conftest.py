"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from promptgate.domain.enums import ProbeStatus
from promptgate.ports.outbound import BackendPort
from promptgate.shared.providers.types import BackendRequest, BackendResponse, ProbeResult


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedBackend(BackendPort):
    """In-memory BackendPort whose behaviour is set per backend identity.

    A behaviour is either an int status code, an exception instance to raise,
    the string ``"hang"`` to sleep past any timeout, or a callable taking the
    request and returning a ``BackendResponse``.
    """

    def __init__(self, behaviours: dict[str, Any] | None = None) -> None:
        self.behaviours: dict[str, Any] = dict(behaviours or {})
        self.calls: list[tuple[str, BackendRequest]] = []
        self.probed: list[str] = []

    async def call(self, backend: str, request: BackendRequest) -> BackendResponse:
        self.calls.append((backend, request))
        behaviour = self.behaviours.get(backend, 200)
        if isinstance(behaviour, Exception):
            raise behaviour
        if behaviour == "hang":
            await asyncio.sleep(10)
            raise AssertionError("hanging call was not cancelled")
        if callable(behaviour):
            return behaviour(request)
        return BackendResponse(
            status_code=behaviour,
            body={"success": 200 <= behaviour < 300, "served_by": backend},
        )

    async def probe(self, backend: str) -> ProbeResult:
        self.probed.append(backend)
        behaviour = self.behaviours.get(backend, 200)
        if isinstance(behaviour, int) and behaviour < 400:
            return ProbeResult(
                backend=backend, status=ProbeStatus.UP, response_time_ms=1.0, status_code=200
            )
        return ProbeResult(backend=backend, status=ProbeStatus.DOWN, error="unreachable")

    @property
    def called_backends(self) -> list[str]:
        return [b for b, _ in self.calls]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scripted_backend() -> Callable[..., ScriptedBackend]:
    def _make(**behaviours: Any) -> ScriptedBackend:
        return ScriptedBackend({f"http://{k}": v for k, v in behaviours.items()})

    return _make
