"""Application services for both deployable roles.

``RoutingService`` runs on the balancer: it validates and snapshots the
inbound body, then hands it to the failover gateway.

``ImageService`` runs on each worker: it validates the body again and calls
the external AI providers through their ports.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from promptgate.domain.enums import OperationKind
from promptgate.domain.services.validation import PromptRules, validate_comparison, validate_prompt
from promptgate.ports.outbound import ImageComparatorPort, ImageGeneratorPort
from promptgate.shared.providers.gateway import FailoverGateway
from promptgate.shared.providers.types import RoutedResult

logger = structlog.get_logger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class RoutingService:
    """Balancer-side entry point: validate, snapshot, route."""

    def __init__(self, gateway: FailoverGateway, *, rules: PromptRules | None = None) -> None:
        self._gateway = gateway
        self._rules = rules or PromptRules()

    @property
    def gateway(self) -> FailoverGateway:
        return self._gateway

    async def generate(self, snapshot: dict[str, Any]) -> RoutedResult:
        validate_prompt(snapshot.get("prompt"), self._rules)
        return await self._gateway.route(OperationKind.GENERATE, snapshot)

    async def compare(self, snapshot: dict[str, Any]) -> RoutedResult:
        validate_comparison(
            snapshot.get("targetImage"),
            snapshot.get("generatedImage"),
            snapshot.get("originalPrompt"),
        )
        return await self._gateway.route(OperationKind.COMPARE, snapshot)


class ImageService:
    """Worker-side generation and comparison."""

    def __init__(
        self,
        generator: ImageGeneratorPort,
        comparator: ImageComparatorPort,
        *,
        rules: PromptRules | None = None,
        generated_by: str = "ImageRouter.io (Juggernaut-Lightning-Flux)",
    ) -> None:
        self._generator = generator
        self._comparator = comparator
        self._rules = rules or PromptRules()
        self._generated_by = generated_by

    @property
    def rules(self) -> PromptRules:
        return self._rules

    async def generate(self, prompt: Any) -> dict[str, Any]:
        prompt = validate_prompt(prompt, self._rules)
        logger.info("image_generation_started", prompt_length=len(prompt))

        image_url = await self._generator.generate(prompt)

        logger.info("image_generation_succeeded", image_url=image_url)
        return {
            "success": True,
            "imageUrl": image_url,
            "prompt": prompt,
            "timestamp": _utcnow(),
            "generatedBy": self._generated_by,
        }

    async def compare(
        self,
        target_image: Any,
        generated_image: Any,
        original_prompt: Any = "",
    ) -> dict[str, Any]:
        validate_comparison(target_image, generated_image, original_prompt)
        comparison = await self._comparator.compare(
            target_image, generated_image, original_prompt or ""
        )
        return {"success": True, "comparison": comparison, "timestamp": _utcnow()}
