"""External AI provider adapters used by the workers.

Each provider-specific HTTP call is a plain request; the API key comes from
a CredentialRotator so load spreads across every configured key.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from promptgate.domain.exceptions import UpstreamProviderError
from promptgate.ports.outbound import ImageComparatorPort, ImageGeneratorPort
from promptgate.shared.observability.metrics import PROVIDER_CALLS
from promptgate.shared.providers.key_manager import CredentialRotator

logger = structlog.get_logger(__name__)

LITERAL_PROMPT_SUFFIX = (
    ", exactly as described, nothing more nothing less, "
    "literal interpretation, precise and accurate"
)

COMPARISON_SYSTEM = """You compare a target image with an image generated from a text prompt.
Return ONLY a JSON object with keys:
similarity_score (int 0-100), matching_elements (list of strings),
missing_elements (list of strings), feedback (string)."""


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "provider_call_retrying",
        attempt=retry_state.attempt_number,
        error=f"{type(exc).__name__}: {exc}",
    )


# Connection-level failures only; a slow provider is left to the balancer's timeout
_provider_retry = retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    retry=retry_if_exception_type(httpx.NetworkError),
    before_sleep=_log_retry,
    reraise=True,
)


class _ProviderClient:
    """Authenticated JSON POSTs to one provider endpoint, one key per call."""

    provider = "provider"

    def __init__(
        self,
        rotator: CredentialRotator,
        url: str,
        client: httpx.AsyncClient | None,
        timeout: float,
    ) -> None:
        self._rotator = rotator
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @_provider_retry
    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        api_key = self._rotator.next_key()
        return await self._client.post(
            self._url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            json=payload,
        )

    def _raise_for_status(self, response: httpx.Response) -> None:
        if not response.is_success:
            PROVIDER_CALLS.labels(provider=self.provider, status="error").inc()
            raise UpstreamProviderError(
                self.provider, f"API error: {response.status_code} - {response.text[:500]}"
            )

    async def close(self) -> None:
        await self._client.aclose()


class ImageRouterAdapter(_ProviderClient, ImageGeneratorPort):
    """Text-to-image generation through ImageRouter's OpenAI-compatible API."""

    provider = "imagerouter"

    def __init__(
        self,
        rotator: CredentialRotator,
        *,
        url: str = "https://api.imagerouter.io/v1/openai/images/generations",
        model: str = "run-diffusion/Juggernaut-Lightning-Flux",
        output_format: str = "webp",
        client: httpx.AsyncClient | None = None,
        timeout: float = 25.0,
    ) -> None:
        super().__init__(rotator, url, client, timeout)
        self._model = model
        self._output_format = output_format

    async def generate(self, prompt: str) -> str:
        response = await self._post(
            {
                "prompt": f"{prompt.strip()}{LITERAL_PROMPT_SUFFIX}",
                "model": self._model,
                "n": 1,
                "size": "auto",
                "quality": "auto",
                "output_format": self._output_format,
            }
        )
        self._raise_for_status(response)

        try:
            image_url = self._extract_url(response.json())
        except ValueError:
            image_url = None
        if not image_url:
            logger.error("imagerouter_unexpected_response", body=response.text[:500])
            PROVIDER_CALLS.labels(provider=self.provider, status="error").inc()
            raise UpstreamProviderError(self.provider, "No image URL in API response")

        PROVIDER_CALLS.labels(provider=self.provider, status="success").inc()
        return image_url

    @staticmethod
    def _extract_url(data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            url = items[0].get("url")
            if url:
                return str(url)
        url = data.get("url") or data.get("image_url")
        return str(url) if url else None


class SiliconFlowAdapter(_ProviderClient, ImageComparatorPort):
    """Vision-model image comparison through SiliconFlow chat completions."""

    provider = "siliconflow"

    def __init__(
        self,
        rotator: CredentialRotator,
        *,
        url: str = "https://api.siliconflow.com/v1/chat/completions",
        model: str = "Qwen/Qwen3-VL-8B-Instruct",
        max_tokens: int = 800,
        temperature: float = 0.2,
        client: httpx.AsyncClient | None = None,
        timeout: float = 55.0,
    ) -> None:
        super().__init__(rotator, url, client, timeout)
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def compare(
        self,
        target_image: str,
        generated_image: str,
        original_prompt: str = "",
    ) -> dict[str, Any]:
        instruction = "Image 1 is the target. Image 2 was generated"
        instruction += f' from the prompt "{original_prompt}".' if original_prompt else "."

        response = await self._post(
            {
                "model": self._model,
                "max_tokens": self._max_tokens,
                "temperature": self._temperature,
                "messages": [
                    {"role": "system", "content": COMPARISON_SYSTEM},
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": instruction},
                            {"type": "image_url", "image_url": {"url": target_image}},
                            {"type": "image_url", "image_url": {"url": generated_image}},
                        ],
                    },
                ],
            }
        )
        self._raise_for_status(response)

        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            PROVIDER_CALLS.labels(provider=self.provider, status="error").inc()
            raise UpstreamProviderError(self.provider, "No message content in API response")

        PROVIDER_CALLS.labels(provider=self.provider, status="success").inc()
        return self._parse_json(text or "")

    @staticmethod
    def _parse_json(text: str) -> dict[str, Any]:
        candidate = text
        fence = "```json" if "```json" in text else "```" if "```" in text else None
        if fence:
            start = text.index(fence) + len(fence)
            end = text.find("```", start)
            candidate = text[start:] if end == -1 else text[start:end]
        try:
            parsed = json.loads(candidate.strip())
        except json.JSONDecodeError:
            return {"raw_text": text}
        return parsed if isinstance(parsed, dict) else {"result": parsed}
