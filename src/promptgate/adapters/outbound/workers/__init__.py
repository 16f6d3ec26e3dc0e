"""HTTP transport to backend workers.

Each call is a single POST with no retry logic of its own; the failover
gateway owns retries, timeouts and exclusion.
"""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog

from promptgate.domain.enums import ProbeStatus
from promptgate.ports.outbound import BackendPort
from promptgate.shared.providers.types import BackendRequest, BackendResponse, ProbeResult

logger = structlog.get_logger(__name__)


class HttpWorkerAdapter(BackendPort):
    """Forwards routed requests to ``<backend base URL><operation path>``."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        probe_timeout: float = 5.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._probe_timeout = probe_timeout

    async def call(self, backend: str, request: BackendRequest) -> BackendResponse:
        response = await self._client.post(
            f"{backend}{request.path}",
            json=request.payload,
            headers={"Content-Type": "application/json"},
            timeout=request.timeout_s,
        )
        return BackendResponse(status_code=response.status_code, body=self._parse_body(response))

    async def probe(self, backend: str) -> ProbeResult:
        start = time.monotonic()
        try:
            response = await self._client.get(
                f"{backend}/api/health", timeout=self._probe_timeout
            )
        except httpx.TimeoutException:
            return ProbeResult(backend=backend, status=ProbeStatus.DOWN, error="timeout")
        except httpx.HTTPError as exc:
            logger.debug("backend_probe_failed", backend=backend, error=str(exc))
            return ProbeResult(
                backend=backend,
                status=ProbeStatus.DOWN,
                error=f"{type(exc).__name__}: {exc}",
            )

        return ProbeResult(
            backend=backend,
            status=ProbeStatus.UP if response.is_success else ProbeStatus.DOWN,
            response_time_ms=round((time.monotonic() - start) * 1000, 1),
            status_code=response.status_code,
        )

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {"raw_text": response.text}
        return data if isinstance(data, dict) else {"data": data}

    async def close(self) -> None:
        await self._client.aclose()
