"""Emergency image result built locally from the prompt text alone.

Used only after every backend attempt for a generation request has failed.
No network call is made here: the result is a deterministic public image URL
that renders the prompt on demand.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping
from urllib.parse import quote

import structlog

from promptgate.domain.services.validation import PromptRules, is_valid_prompt

logger = structlog.get_logger(__name__)

FALLBACK_SOURCE = "pollinations-direct-fallback"
DEFAULT_FALLBACK_BASE_URL = "https://image.pollinations.ai/prompt/"

# Characters JavaScript's encodeURIComponent leaves untouched besides alphanumerics.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(text: str) -> str:
    return quote(text, safe=_URI_COMPONENT_SAFE)


def build_fallback_image_url(prompt: str, base_url: str = DEFAULT_FALLBACK_BASE_URL) -> str:
    if not base_url.endswith("/"):
        base_url += "/"
    return f"{base_url}{encode_uri_component(prompt.strip())}"


class FallbackImageBuilder:
    """Turns a generation payload snapshot into a degraded success body."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_FALLBACK_BASE_URL,
        rules: PromptRules | None = None,
    ) -> None:
        self._base_url = base_url
        self._rules = rules or PromptRules()

    def __call__(self, snapshot: Mapping[str, Any] | None) -> dict[str, Any] | None:
        """Return the fallback body, or ``None`` when the snapshot is unusable."""
        prompt = (snapshot or {}).get("prompt")
        if not is_valid_prompt(prompt, self._rules):
            logger.warning("fallback_snapshot_invalid")
            return None

        image_url = build_fallback_image_url(prompt, self._base_url)
        logger.warning("fallback_image_used", prompt=prompt)
        return {
            "success": True,
            "imageUrl": image_url,
            "prompt": prompt,
            "serverUsed": FALLBACK_SOURCE,
            "fallback": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
