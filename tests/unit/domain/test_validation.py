"""Unit tests for request validation and the local fallback image."""

from __future__ import annotations

import pytest

from promptgate.domain.exceptions import ValidationRejectedError
from promptgate.domain.services.fallback import (
    FALLBACK_SOURCE,
    FallbackImageBuilder,
    build_fallback_image_url,
    encode_uri_component,
)
from promptgate.domain.services.validation import (
    PromptRules,
    is_valid_prompt,
    validate_comparison,
    validate_prompt,
)


class TestValidatePrompt:
    def test_accepts_ordinary_prompt(self) -> None:
        assert validate_prompt("a beautiful sunset") == "a beautiful sunset"

    @pytest.mark.parametrize(
        "prompt, message",
        [
            (None, "Prompt is required"),
            ("", "Prompt is required"),
            (42, "Prompt must be a string"),
            (["a cat"], "Prompt must be a string"),
            ("   \n\t", "Prompt cannot be empty"),
        ],
    )
    def test_rejects_bad_prompts(self, prompt, message) -> None:
        with pytest.raises(ValidationRejectedError, match=message) as exc_info:
            validate_prompt(prompt)
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_length_limit_is_inclusive(self) -> None:
        assert validate_prompt("x" * 1000)
        with pytest.raises(ValidationRejectedError, match=r"max 1000 characters"):
            validate_prompt("x" * 1001)

    def test_custom_rules(self) -> None:
        rules = PromptRules(max_length=5)
        assert is_valid_prompt("short", rules)
        assert not is_valid_prompt("longer", rules)


class TestValidateComparison:
    def test_accepts_two_images(self) -> None:
        validate_comparison("https://x/t.png", "data:image/png;base64,AAAA", "a cat")
        validate_comparison("https://x/t.png", "https://x/g.png", None)

    def test_reports_every_missing_image(self) -> None:
        with pytest.raises(ValidationRejectedError) as exc_info:
            validate_comparison("", None)
        assert exc_info.value.message == "targetImage is required; generatedImage is required"

    def test_rejects_non_string_prompt(self) -> None:
        with pytest.raises(ValidationRejectedError, match="originalPrompt must be a string"):
            validate_comparison("t", "g", 7)


class TestFallbackImage:
    def test_encoding_matches_uri_component_rules(self) -> None:
        assert encode_uri_component("a grey square") == "a%20grey%20square"
        assert encode_uri_component("cats & dogs?") == "cats%20%26%20dogs%3F"
        assert encode_uri_component("it's (very) fine!*~") == "it's%20(very)%20fine!*~"
        assert encode_uri_component("café") == "caf%C3%A9"

    def test_url_uses_trimmed_prompt(self) -> None:
        url = build_fallback_image_url("  a grey square  ")
        assert url == "https://image.pollinations.ai/prompt/a%20grey%20square"

    def test_custom_base_url_gets_trailing_slash(self) -> None:
        assert build_fallback_image_url("x", "https://img.local/p") == "https://img.local/p/x"

    def test_builder_returns_tagged_body(self) -> None:
        body = FallbackImageBuilder()({"prompt": "a grey square"})
        assert body is not None
        assert body["success"] is True
        assert body["fallback"] is True
        assert body["serverUsed"] == FALLBACK_SOURCE
        assert body["prompt"] == "a grey square"
        assert body["imageUrl"].endswith("/prompt/a%20grey%20square")
        assert "timestamp" in body

    @pytest.mark.parametrize("snapshot", [None, {}, {"prompt": ""}, {"prompt": 3}, {"prompt": "x" * 1001}])
    def test_builder_declines_unusable_snapshot(self, snapshot) -> None:
        assert FallbackImageBuilder()(snapshot) is None
