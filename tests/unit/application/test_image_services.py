"""Unit tests for the balancer and worker application services."""

from __future__ import annotations

from typing import Any

import pytest

from promptgate.application.services import ImageService, RoutingService
from promptgate.domain.enums import OperationKind
from promptgate.domain.exceptions import ValidationRejectedError
from promptgate.domain.services.validation import PromptRules
from promptgate.ports.outbound import ImageComparatorPort, ImageGeneratorPort
from promptgate.shared.providers import BackendSelector, FailoverGateway


class StubGenerator(ImageGeneratorPort):
    def __init__(self) -> None:
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return "https://img/generated.webp"


class StubComparator(ImageComparatorPort):
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []

    async def compare(
        self, target_image: str, generated_image: str, original_prompt: str = ""
    ) -> dict[str, Any]:
        self.calls.append((target_image, generated_image, original_prompt))
        return {"similarity_score": 90}


class TestRoutingService:
    @pytest.mark.asyncio
    async def test_invalid_prompt_never_reaches_a_backend(self, scripted_backend) -> None:
        backend = scripted_backend()
        service = RoutingService(FailoverGateway(BackendSelector(["http://a"]), backend))

        with pytest.raises(ValidationRejectedError):
            await service.generate({"prompt": "   "})

        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_generate_routes_the_snapshot(self, scripted_backend) -> None:
        backend = scripted_backend()
        service = RoutingService(FailoverGateway(BackendSelector(["http://a"]), backend))

        result = await service.generate({"prompt": "a cat"})

        assert result.source == "http://a"
        assert backend.calls[0][1].operation == OperationKind.GENERATE
        assert backend.calls[0][1].payload == {"prompt": "a cat"}

    @pytest.mark.asyncio
    async def test_compare_validates_images(self, scripted_backend) -> None:
        backend = scripted_backend()
        service = RoutingService(FailoverGateway(BackendSelector(["http://a"]), backend))

        with pytest.raises(ValidationRejectedError, match="generatedImage is required"):
            await service.compare({"targetImage": "https://t", "generatedImage": ""})
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_prompt_rules_are_configurable(self, scripted_backend) -> None:
        service = RoutingService(
            FailoverGateway(BackendSelector(["http://a"]), scripted_backend()),
            rules=PromptRules(max_length=3),
        )
        with pytest.raises(ValidationRejectedError, match="max 3 characters"):
            await service.generate({"prompt": "a cat"})


class TestImageService:
    @pytest.mark.asyncio
    async def test_generate_returns_worker_body(self) -> None:
        generator = StubGenerator()
        service = ImageService(generator, StubComparator(), generated_by="test-model")

        body = await service.generate("a cat")

        assert generator.prompts == ["a cat"]
        assert body["success"] is True
        assert body["imageUrl"] == "https://img/generated.webp"
        assert body["prompt"] == "a cat"
        assert body["generatedBy"] == "test-model"
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_generate_rejects_before_calling_provider(self) -> None:
        generator = StubGenerator()
        service = ImageService(generator, StubComparator())

        with pytest.raises(ValidationRejectedError, match="Prompt is required"):
            await service.generate(None)
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_compare_defaults_missing_prompt(self) -> None:
        comparator = StubComparator()
        service = ImageService(StubGenerator(), comparator)

        body = await service.compare("https://t", "https://g", None)

        assert comparator.calls == [("https://t", "https://g", "")]
        assert body["comparison"] == {"similarity_score": 90}
