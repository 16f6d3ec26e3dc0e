"""Request shape checks shared by the balancer, the workers and the fallback path.

The same rules decide whether a request may be routed at all and whether a
payload snapshot is good enough to build an emergency result from.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from promptgate.domain.exceptions import ValidationRejectedError

logger = structlog.get_logger(__name__)

DEFAULT_MAX_PROMPT_LENGTH = 1000


@dataclass(frozen=True, slots=True)
class PromptRules:
    """Configurable limits for prompt text."""

    max_length: int = DEFAULT_MAX_PROMPT_LENGTH


def validate_prompt(prompt: Any, rules: PromptRules | None = None) -> str:
    """Return the prompt unchanged if it is routable, else raise."""
    rules = rules or PromptRules()

    if prompt is None or prompt == "":
        raise ValidationRejectedError("Prompt is required")
    if not isinstance(prompt, str):
        raise ValidationRejectedError("Prompt must be a string")
    if not prompt.strip():
        raise ValidationRejectedError("Prompt cannot be empty")
    if len(prompt) > rules.max_length:
        raise ValidationRejectedError(
            f"Prompt too long (max {rules.max_length} characters)"
        )
    return prompt


def is_valid_prompt(prompt: Any, rules: PromptRules | None = None) -> bool:
    try:
        validate_prompt(prompt, rules)
    except ValidationRejectedError:
        return False
    return True


def validate_comparison(
    target_image: Any,
    generated_image: Any,
    original_prompt: Any = "",
) -> None:
    """Both images must be present as non-empty strings (URLs or data URIs)."""
    violations: list[str] = []

    for name, value in (("targetImage", target_image), ("generatedImage", generated_image)):
        if not isinstance(value, str) or not value.strip():
            violations.append(f"{name} is required")

    if original_prompt is not None and not isinstance(original_prompt, str):
        violations.append("originalPrompt must be a string")

    if violations:
        logger.info("comparison_rejected", violations=violations)
        raise ValidationRejectedError("; ".join(violations))
