"""Unit tests for outbound HTTP adapters.

Tests use ``httpx.MockTransport`` to verify request mapping, response
parsing and error handling without hitting real services.
"""

from __future__ import annotations

import json

import httpx
import pytest

from promptgate.adapters.outbound.imaging import (
    LITERAL_PROMPT_SUFFIX,
    ImageRouterAdapter,
    SiliconFlowAdapter,
)
from promptgate.adapters.outbound.workers import HttpWorkerAdapter
from promptgate.domain.enums import OperationKind, ProbeStatus
from promptgate.domain.exceptions import NoCredentialsConfiguredError, UpstreamProviderError
from promptgate.shared.providers import BackendRequest, CredentialRotator


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ═══════════════════════════════════════════════════════════════
#  Worker transport
# ═══════════════════════════════════════════════════════════════
class TestHttpWorkerAdapter:
    @pytest.mark.asyncio
    async def test_posts_payload_to_operation_path(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "imageUrl": "https://img/1"})

        adapter = HttpWorkerAdapter(client=mock_client(handler))
        response = await adapter.call(
            "http://worker-1",
            BackendRequest(OperationKind.GENERATE, {"prompt": "a cat"}, timeout_s=30.0),
        )

        assert response.ok
        assert response.body["imageUrl"] == "https://img/1"
        assert str(seen[0].url) == "http://worker-1/api/generate-image"
        assert json.loads(seen[0].content) == {"prompt": "a cat"}

    @pytest.mark.asyncio
    async def test_non_json_body_is_wrapped(self) -> None:
        adapter = HttpWorkerAdapter(
            client=mock_client(lambda request: httpx.Response(502, text="Bad Gateway"))
        )
        response = await adapter.call(
            "http://worker-1",
            BackendRequest(OperationKind.COMPARE, {}, timeout_s=60.0),
        )
        assert not response.ok
        assert response.body == {"raw_text": "Bad Gateway"}

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        adapter = HttpWorkerAdapter(client=mock_client(handler))
        with pytest.raises(httpx.ConnectError):
            await adapter.call(
                "http://worker-1",
                BackendRequest(OperationKind.GENERATE, {"prompt": "x"}, timeout_s=1.0),
            )

    @pytest.mark.asyncio
    async def test_probe_reports_up_and_down(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/health"
            if request.url.host == "down":
                raise httpx.ConnectError("refused", request=request)
            if request.url.host == "slow":
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"status": "healthy"})

        adapter = HttpWorkerAdapter(client=mock_client(handler))

        up = await adapter.probe("http://up")
        down = await adapter.probe("http://down")
        slow = await adapter.probe("http://slow")

        assert up.status == ProbeStatus.UP
        assert up.status_code == 200
        assert up.response_time_ms is not None
        assert down.status == ProbeStatus.DOWN
        assert "ConnectError" in (down.error or "")
        assert slow.status == ProbeStatus.DOWN
        assert slow.error == "timeout"


# ═══════════════════════════════════════════════════════════════
#  ImageRouter
# ═══════════════════════════════════════════════════════════════
class TestImageRouterAdapter:
    @pytest.mark.asyncio
    async def test_generate_rotates_keys_and_extracts_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": [{"url": "https://img/abc.webp"}]})

        adapter = ImageRouterAdapter(
            CredentialRotator("imagerouter", ["k1", "k2"]), client=mock_client(handler)
        )

        assert await adapter.generate("  a cat  ") == "https://img/abc.webp"
        await adapter.generate("a dog")

        assert [r.headers["Authorization"] for r in seen] == ["Bearer k1", "Bearer k2"]
        body = json.loads(seen[0].content)
        assert body["prompt"] == f"a cat{LITERAL_PROMPT_SUFFIX}"
        assert body["model"] == "run-diffusion/Juggernaut-Lightning-Flux"
        assert body["output_format"] == "webp"
        assert body["n"] == 1

    @pytest.mark.parametrize(
        "payload, expected",
        [
            ({"data": [{"url": "https://a"}]}, "https://a"),
            ({"url": "https://b"}, "https://b"),
            ({"image_url": "https://c"}, "https://c"),
            ({"data": []}, None),
            (["https://d"], None),
        ],
    )
    def test_extract_url(self, payload, expected) -> None:
        assert ImageRouterAdapter._extract_url(payload) == expected

    @pytest.mark.asyncio
    async def test_error_status_raises_upstream_error(self) -> None:
        adapter = ImageRouterAdapter(
            CredentialRotator("imagerouter", ["k1"]),
            client=mock_client(lambda request: httpx.Response(429, text="rate limited")),
        )
        with pytest.raises(UpstreamProviderError, match="API error: 429 - rate limited"):
            await adapter.generate("a cat")

    @pytest.mark.asyncio
    async def test_missing_url_raises_upstream_error(self) -> None:
        adapter = ImageRouterAdapter(
            CredentialRotator("imagerouter", ["k1"]),
            client=mock_client(lambda request: httpx.Response(200, json={"data": []})),
        )
        with pytest.raises(UpstreamProviderError, match="No image URL"):
            await adapter.generate("a cat")

    @pytest.mark.asyncio
    async def test_connection_error_is_retried_with_next_key(self) -> None:
        keys: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            keys.append(request.headers["Authorization"])
            if len(keys) == 1:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(200, json={"url": "https://img/retried.webp"})

        adapter = ImageRouterAdapter(
            CredentialRotator("imagerouter", ["k1", "k2"]), client=mock_client(handler)
        )

        assert await adapter.generate("a cat") == "https://img/retried.webp"
        assert keys == ["Bearer k1", "Bearer k2"]

    @pytest.mark.asyncio
    async def test_no_keys_aborts_before_calling_out(self) -> None:
        calls: list[httpx.Request] = []
        adapter = ImageRouterAdapter(
            CredentialRotator("imagerouter", []),
            client=mock_client(lambda request: calls.append(request) or httpx.Response(200)),
        )
        with pytest.raises(NoCredentialsConfiguredError):
            await adapter.generate("a cat")
        assert calls == []


# ═══════════════════════════════════════════════════════════════
#  SiliconFlow
# ═══════════════════════════════════════════════════════════════
class TestSiliconFlowAdapter:
    @staticmethod
    def _reply(content: str) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    @pytest.mark.asyncio
    async def test_compare_sends_both_images(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return self._reply('```json\n{"similarity_score": 82}\n```')

        adapter = SiliconFlowAdapter(
            CredentialRotator("siliconflow", ["s1"]), client=mock_client(handler)
        )
        result = await adapter.compare("https://t", "https://g", "a cat")

        assert result == {"similarity_score": 82}
        body = json.loads(seen[0].content)
        assert body["model"] == "Qwen/Qwen3-VL-8B-Instruct"
        assert body["max_tokens"] == 800
        assert body["temperature"] == 0.2
        parts = body["messages"][1]["content"]
        assert [p["type"] for p in parts] == ["text", "image_url", "image_url"]
        assert parts[1]["image_url"]["url"] == "https://t"
        assert '"a cat"' in parts[0]["text"]

    @pytest.mark.parametrize(
        "text, expected",
        [
            ('{"a": 1}', {"a": 1}),
            ('Sure!\n```\n{"a": 2}\n```', {"a": 2}),
            ("[1, 2]", {"result": [1, 2]}),
            ("not json", {"raw_text": "not json"}),
        ],
    )
    def test_parse_json(self, text, expected) -> None:
        assert SiliconFlowAdapter._parse_json(text) == expected

    @pytest.mark.asyncio
    async def test_malformed_reply_raises_upstream_error(self) -> None:
        adapter = SiliconFlowAdapter(
            CredentialRotator("siliconflow", ["s1"]),
            client=mock_client(lambda request: httpx.Response(200, json={"choices": []})),
        )
        with pytest.raises(UpstreamProviderError, match="No message content"):
            await adapter.compare("https://t", "https://g")
