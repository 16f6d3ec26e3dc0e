"""Prompt Gate — Application Configuration."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from promptgate.shared.providers.key_manager import parse_keys


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Centralised, validated configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "promptgate"
    app_env: Environment = Environment.DEVELOPMENT
    app_debug: bool = False
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "https://abracadraw.navgurukul.org",
        ]
    )

    # ── Balancer ─────────────────────────────────────────────
    # Comma-separated worker base URLs, in rotation order
    backend_urls: str = ""
    max_attempts: int = Field(3, ge=1, le=10)
    unhealthy_window_seconds: float = Field(120.0, gt=0)
    generate_timeout_seconds: float = Field(30.0, gt=0)
    compare_timeout_seconds: float = Field(60.0, gt=0)
    probe_timeout_seconds: float = Field(5.0, gt=0)
    fallback_enabled: bool = True
    fallback_image_base_url: str = "https://image.pollinations.ai/prompt/"

    # ── Validation ───────────────────────────────────────────
    max_prompt_length: int = Field(1000, ge=1)

    # ── ImageRouter (generation) ─────────────────────────────
    image_router_url: str = "https://api.imagerouter.io/v1/openai/images/generations"
    image_router_model: str = "run-diffusion/Juggernaut-Lightning-Flux"
    image_router_output_format: str = "webp"
    image_router_timeout_seconds: float = 25.0
    # Multiple keys (comma-separated for rotation) plus numbered slots
    image_router_api_keys: str = ""
    image_router_api_key_1: str = ""
    image_router_api_key_2: str = ""
    image_router_api_key_3: str = ""
    image_router_api_key_4: str = ""
    image_router_api_key_5: str = ""
    image_router_api_key_6: str = ""
    image_router_api_key_7: str = ""

    # ── SiliconFlow (comparison) ─────────────────────────────
    comparison_url: str = "https://api.siliconflow.com/v1/chat/completions"
    comparison_model: str = "Qwen/Qwen3-VL-8B-Instruct"
    comparison_max_tokens: int = 800
    comparison_temperature: float = 0.2
    comparison_timeout_seconds: float = 55.0
    comparison_api_keys: str = ""
    comparison_api_key_1: str = ""
    comparison_api_key_2: str = ""
    comparison_api_key_3: str = ""
    comparison_api_key_4: str = ""
    comparison_api_key_5: str = ""
    comparison_api_key_6: str = ""
    comparison_api_key_7: str = ""
    comparison_api_key_8: str = ""
    comparison_api_key_9: str = ""
    comparison_api_key_10: str = ""

    # ── Key leasing (comparison pool) ────────────────────────
    key_lease_seconds: float = Field(60.0, gt=0)
    key_acquire_max_wait_seconds: float = Field(30.0, ge=0)
    key_acquire_poll_seconds: float = Field(1.0, gt=0)

    # ── Derived helpers ──────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.app_env == Environment.PRODUCTION

    @property
    def backend_pool(self) -> tuple[str, ...]:
        return tuple(u.rstrip("/") for u in parse_keys(self.backend_urls))

    @property
    def image_router_key_pool(self) -> tuple[str, ...]:
        numbered = [getattr(self, f"image_router_api_key_{i}") for i in range(1, 8)]
        return parse_keys(self.image_router_api_keys, numbered)

    @property
    def comparison_key_pool(self) -> tuple[str, ...]:
        numbered = [getattr(self, f"comparison_api_key_{i}") for i in range(1, 11)]
        return parse_keys(self.comparison_api_keys, numbered)

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("backend_urls")
    @classmethod
    def _validate_backend_urls(cls, v: str) -> str:
        for url in parse_keys(v):
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"backend url {url!r} must start with 'http://' or 'https://'")
        return v

    @model_validator(mode="after")
    def _warn_missing_backends(self) -> Settings:
        """A production balancer with no workers can only ever serve fallbacks."""
        if self.app_env == Environment.PRODUCTION and not self.backend_urls:
            import warnings
            warnings.warn(
                "backend_urls is empty in production — only the worker app is usable",
                UserWarning,
                stacklevel=2,
            )
        return self


def get_settings(**overrides: Any) -> Settings:
    """Factory that allows test-time overrides."""
    return Settings(**overrides)
