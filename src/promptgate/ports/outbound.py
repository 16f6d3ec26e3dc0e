"""Outbound ports — interfaces that infrastructure adapters must implement.

These are the *driven* ports in hexagonal architecture.  The routing core and
the application services depend only on these abstractions, never on concrete
HTTP clients.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from promptgate.shared.providers.types import BackendRequest, BackendResponse, ProbeResult


# ═══════════════════════════════════════════════════════════════
#  Backend workers (used by the balancer)
# ═══════════════════════════════════════════════════════════════
class BackendPort(ABC):
    """Transport to a single worker identity."""

    @abstractmethod
    async def call(self, backend: str, request: BackendRequest) -> BackendResponse:
        """Forward ``request`` to ``backend``.

        Returns whatever status the backend answered with; raises on transport
        failure.  Timeouts are enforced by the caller.
        """

    @abstractmethod
    async def probe(self, backend: str) -> ProbeResult: ...

    async def close(self) -> None:
        return None


# ═══════════════════════════════════════════════════════════════
#  External AI providers (used by the workers)
# ═══════════════════════════════════════════════════════════════
class ImageGeneratorPort(ABC):
    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return a URL for an image rendered from ``prompt``."""


class ImageComparatorPort(ABC):
    @abstractmethod
    async def compare(
        self,
        target_image: str,
        generated_image: str,
        original_prompt: str = "",
    ) -> dict[str, Any]: ...
