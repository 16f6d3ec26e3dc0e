"""Data Transfer Objects — Pydantic models for API boundaries.

DTOs handle serialisation and documentation.  Request fields are typed
loosely on purpose so shape problems surface through the domain validation
rules (and their messages) rather than as generic schema errors.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ═══════════════════════════════════════════════════════════════
#  Common
# ═══════════════════════════════════════════════════════════════
class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict | None = None  # type: ignore[type-arg]


class HealthResponse(BaseModel):
    success: bool = True
    status: str = "healthy"
    service: str = "promptgate"
    role: str = "balancer"
    version: str = "0.1.0"
    environment: str = "development"


# ═══════════════════════════════════════════════════════════════
#  Generation
# ═══════════════════════════════════════════════════════════════
class GenerateImageRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prompt: Any = Field(None, examples=["a beautiful sunset over mountains"])

    def snapshot(self) -> dict[str, Any]:
        return {"prompt": self.prompt}


class GenerateImageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    image_url: str = Field(..., alias="imageUrl")
    prompt: str
    timestamp: str
    generated_by: str = Field(..., alias="generatedBy")


# ═══════════════════════════════════════════════════════════════
#  Comparison
# ═══════════════════════════════════════════════════════════════
class CompareImagesRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    target_image: Any = Field(None, alias="targetImage")
    generated_image: Any = Field(None, alias="generatedImage")
    original_prompt: Any = Field("", alias="originalPrompt")

    def snapshot(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class CompareImagesResponse(BaseModel):
    success: bool = True
    comparison: dict[str, Any]
    timestamp: str


# ═══════════════════════════════════════════════════════════════
#  Status
# ═══════════════════════════════════════════════════════════════
class PoolStatusOut(BaseModel):
    pool_size: int
    unhealthy_count: int
    healthy_count: int
    cursor_position: int
    health_percent: int
    unhealthy: list[str] = Field(default_factory=list)


class BackendStatsOut(BaseModel):
    backend: str
    requests: int
    failures: int
    avg_response_time_ms: float
    success_rate: float | None = None
    last_error: str | None = None
    last_used: str | None = None
    healthy: bool = True


class BalancerStatusResponse(BaseModel):
    success: bool = True
    load_balancer: PoolStatusOut = Field(..., alias="loadBalancer")
    backends: list[BackendStatsOut] = Field(default_factory=list)
    timestamp: str

    model_config = ConfigDict(populate_by_name=True)


class ProbeResultOut(BaseModel):
    backend: str
    status: str
    response_time_ms: float | None = None
    status_code: int | None = None
    error: str | None = None


class CredentialPoolOut(BaseModel):
    pool: str
    total: int
    cursor: int


class WorkerStatusResponse(BaseModel):
    success: bool = True
    status: str = "operational"
    credentials: list[CredentialPoolOut] = Field(default_factory=list)
    max_prompt_length: int
    timestamp: str


# ═══════════════════════════════════════════════════════════════
#  Key leasing
# ═══════════════════════════════════════════════════════════════
class ReleaseKeyRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    key_id: Any = Field(None, alias="keyId")


class KeyLeaseResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    key_id: int = Field(..., alias="keyId")
    api_key: str = Field(..., alias="apiKey")
    status: str = "active"
    wait_time: float = Field(..., alias="waitTime")
    expires_in: float = Field(..., alias="expiresIn")


class KeyReleaseResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    key_id: int = Field(..., alias="keyId")
    message: str = "API key released successfully"
    duration: float


class KeyLeaseOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    status: str
    acquired_at: str | None = Field(None, alias="acquiredAt")
    last_used: str | None = Field(None, alias="lastUsed")


class KeyStatusResponse(BaseModel):
    success: bool = True
    pool: str
    total: int
    available: int
    active: int
    keys: list[KeyLeaseOut] = Field(default_factory=list)
