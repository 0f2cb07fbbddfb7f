"""Data Transfer Objects — Pydantic models for API boundaries."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════
#  Common
# ═══════════════════════════════════════════════════════════════
class ErrorResponse(BaseModel):
    code: str
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    environment: str = "development"
    period: str
    providers: dict[str, str] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
#  Generation
# ═══════════════════════════════════════════════════════════════
class MessageIn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class GenerateRequest(BaseModel):
    messages: list[MessageIn] = Field(..., min_length=1)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(500, ge=1, le=32_000)
    preferred_provider: str | None = None
    task_type: str = "general"


class GenerateResponse(BaseModel):
    success: bool
    content: str | None = None
    provider: str | None = None
    usage_amount: int | None = None
    cost: float | None = None
    attempted: list[str] = Field(default_factory=list)
    error: str | None = None
    diagnostics: dict[str, dict[str, Any]] | None = None


# ═══════════════════════════════════════════════════════════════
#  Budget & providers
# ═══════════════════════════════════════════════════════════════
class UsageRequest(BaseModel):
    usage_amount: float = Field(..., ge=0)
    cost: float = Field(..., ge=0)
    success: bool = True


class RecommendationResponse(BaseModel):
    kind: str
    service: str | None


class OverrideRequest(BaseModel):
    enabled: bool
