"""AI Gateway — Application Configuration."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class StateBackend(str, enum.Enum):
    FILE = "file"
    REDIS = "redis"


class Settings(BaseSettings):
    """Centralised, validated configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    app_name: str = "ai-gateway"
    app_env: Environment = Environment.DEVELOPMENT
    app_debug: bool = False
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # ── LLM providers ────────────────────────────────────────
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""

    openai_model: str = "gpt-4"
    anthropic_model: str = "claude-3-5-sonnet-20241022"
    gemini_model: str = "gemini-1.5-pro"
    openai_base_url: str = "https://api.openai.com/v1"

    # USD per 1,000 tokens
    openai_cost_per_1k: float = 0.03
    anthropic_cost_per_1k: float = 0.003
    gemini_cost_per_1k: float = 0.00125

    # ── Provider Resilience ──────────────────────────────────
    provider_priority: str = "openai,anthropic,gemini"
    provider_timeout_seconds: float = 60.0
    circuit_breaker_error_threshold: int = 3
    circuit_breaker_cooldown_seconds: float = 300.0

    # task type -> ordered provider ids; empty = built-in table
    task_priorities: dict[str, list[str]] = Field(default_factory=dict)

    # ── Budget (USD per calendar month) ──────────────────────
    openai_monthly_limit: float = 100.0
    anthropic_monthly_limit: float = 50.0
    gemini_monthly_limit: float = 25.0
    elevenlabs_monthly_limit: float = 50.0
    total_monthly_limit: float = 200.0
    budget_warning_ratio: float = 0.80

    # ── State persistence ────────────────────────────────────
    state_backend: StateBackend = StateBackend.FILE
    data_dir: str = "./data"
    redis_url: str = "redis://localhost:6379/0"
    flush_interval_seconds: float = 300.0

    # ── Observability ────────────────────────────────────────
    prometheus_enabled: bool = True

    # ── Derived helpers ──────────────────────────────────────
    @property
    def is_production(self) -> bool:
        return self.app_env == Environment.PRODUCTION

    @property
    def monthly_limits(self) -> dict[str, float]:
        return {
            "openai": self.openai_monthly_limit,
            "anthropic": self.anthropic_monthly_limit,
            "gemini": self.gemini_monthly_limit,
            "elevenlabs": self.elevenlabs_monthly_limit,
        }

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator(
        "circuit_breaker_error_threshold",
        "circuit_breaker_cooldown_seconds",
        "provider_timeout_seconds",
        "flush_interval_seconds",
    )
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("budget_warning_ratio")
    @classmethod
    def _ratio(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError("budget_warning_ratio must be between 0 and 1")
        return v


def get_settings(**overrides: Any) -> Settings:
    """Factory that allows test-time overrides."""
    return Settings(**overrides)
