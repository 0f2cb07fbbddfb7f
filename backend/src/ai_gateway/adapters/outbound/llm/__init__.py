"""LLM provider adapters — one outbound HTTP call per provider.

Each ``_invoke_*`` method translates provider-neutral messages into the
provider's request shape, performs the call and normalises the reply into
``ProviderResponse``.  Failures are raised as ``ProviderError``.  Adapters
never touch circuit breaker or ledger state; the orchestrator owns all
accounting.
"""

from __future__ import annotations

from typing import Any, Sequence

import httpx
import structlog

from ai_gateway.domain.enums import MessageRole, ProviderErrorKind
from ai_gateway.domain.exceptions import ProviderError
from ai_gateway.ports.outbound import ProviderPort
from ai_gateway.shared.providers.types import (
    CallOptions,
    ChatMessage,
    ProviderProfile,
    ProviderResponse,
)

logger = structlog.get_logger(__name__)

# Substituted when a provider reply carries no usage figures.
ESTIMATED_USAGE_TOKENS = 500

OPENAI_BASE_URL = "https://api.openai.com/v1"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
ANTHROPIC_API_VERSION = "2023-06-01"


def build_provider_profiles(
    *,
    openai_api_key: str = "",
    anthropic_api_key: str = "",
    gemini_api_key: str = "",
    openai_model: str = "gpt-4",
    anthropic_model: str = "claude-3-5-sonnet-20241022",
    gemini_model: str = "gemini-1.5-pro",
    openai_base_url: str = OPENAI_BASE_URL,
    openai_cost_per_1k: float = 0.03,
    anthropic_cost_per_1k: float = 0.003,
    gemini_cost_per_1k: float = 0.00125,
    timeout_s: float = 60.0,
    priority_order: str = "openai,anthropic,gemini",
) -> list[ProviderProfile]:
    """Build ProviderProfile list from settings values.

    Configuration order is openai, anthropic, gemini; ``priority_order`` only
    sets the rank used by the default ranking.
    """
    priority_map: dict[str, int] = {}
    for idx, name in enumerate(priority_order.split(",")):
        if name.strip():
            priority_map[name.strip().lower()] = idx + 1

    return [
        ProviderProfile(
            provider_id="openai",
            api_key=openai_api_key.strip(),
            model=openai_model,
            base_url=openai_base_url or OPENAI_BASE_URL,
            cost_per_1k_tokens=openai_cost_per_1k,
            priority=priority_map.get("openai", 10),
            timeout_s=timeout_s,
        ),
        ProviderProfile(
            provider_id="anthropic",
            api_key=anthropic_api_key.strip(),
            model=anthropic_model,
            base_url=ANTHROPIC_BASE_URL,
            cost_per_1k_tokens=anthropic_cost_per_1k,
            priority=priority_map.get("anthropic", 10),
            timeout_s=timeout_s,
            metadata={"api_version": ANTHROPIC_API_VERSION},
        ),
        ProviderProfile(
            provider_id="gemini",
            api_key=gemini_api_key.strip(),
            model=gemini_model,
            base_url=GEMINI_BASE_URL,
            cost_per_1k_tokens=gemini_cost_per_1k,
            priority=priority_map.get("gemini", 10),
            timeout_s=timeout_s,
        ),
    ]


class LLMProviderClient(ProviderPort):
    """Dispatches a normalised call to the right provider over a shared httpx client."""

    def __init__(
        self,
        profiles: Sequence[ProviderProfile],
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._profiles = {p.provider_id: p for p in profiles}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._dispatch = {
            "openai": self._invoke_openai,
            "anthropic": self._invoke_anthropic,
            "gemini": self._invoke_gemini,
        }

    async def call(
        self,
        provider_id: str,
        messages: Sequence[ChatMessage],
        options: CallOptions,
    ) -> ProviderResponse:
        profile = self._profiles.get(provider_id)
        invoke = self._dispatch.get(provider_id)
        if profile is None or invoke is None:
            raise ProviderError(
                provider_id,
                f"Unknown provider: {provider_id}",
                kind=ProviderErrorKind.UNKNOWN_PROVIDER,
            )
        if not profile.enabled:
            raise ProviderError(provider_id, "No API key configured", kind=ProviderErrorKind.HTTP)

        try:
            content, usage = await invoke(profile, messages, options)
        except httpx.TimeoutException as exc:
            raise ProviderError(provider_id, f"Timeout: {exc}", kind=ProviderErrorKind.TIMEOUT) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            kind = ProviderErrorKind.QUOTA if status == 429 else ProviderErrorKind.HTTP
            raise ProviderError(
                provider_id,
                f"HTTP {status}: {_error_detail(exc.response)}",
                kind=kind,
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(
                provider_id, f"{type(exc).__name__}: {exc}", kind=ProviderErrorKind.TRANSPORT
            ) from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(
                provider_id,
                f"Malformed response: {type(exc).__name__}: {exc}",
                kind=ProviderErrorKind.MALFORMED,
            ) from exc

        if usage is None:
            logger.info("provider_usage_estimated", provider=provider_id, tokens=ESTIMATED_USAGE_TOKENS)
            usage = ESTIMATED_USAGE_TOKENS
        return ProviderResponse(content=content, usage_amount=usage, cost=profile.cost_for(usage))

    # ── Provider HTTP calls (pure, no failover logic) ────────
    async def _invoke_openai(
        self,
        profile: ProviderProfile,
        messages: Sequence[ChatMessage],
        options: CallOptions,
    ) -> tuple[str, int | None]:
        response = await self._client.post(
            f"{profile.base_url or OPENAI_BASE_URL}/chat/completions",
            headers={
                "Authorization": f"Bearer {profile.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": profile.model,
                "messages": openai_messages(messages),
                "temperature": options.temperature,
                "max_tokens": options.max_tokens,
            },
        )
        response.raise_for_status()
        data = response.json()
        text = data["choices"][0]["message"]["content"]
        usage = (data.get("usage") or {}).get("total_tokens")
        return text or "", _as_int(usage)

    async def _invoke_anthropic(
        self,
        profile: ProviderProfile,
        messages: Sequence[ChatMessage],
        options: CallOptions,
    ) -> tuple[str, int | None]:
        system, conversation = anthropic_messages(messages)
        body: dict[str, Any] = {
            "model": profile.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": conversation,
        }
        if system is not None:
            body["system"] = system
        response = await self._client.post(
            f"{profile.base_url or ANTHROPIC_BASE_URL}/messages",
            headers={
                "x-api-key": profile.api_key,
                "anthropic-version": profile.metadata.get("api_version", ANTHROPIC_API_VERSION),
                "content-type": "application/json",
            },
            json=body,
        )
        response.raise_for_status()
        data = response.json()
        text = data["content"][0]["text"]
        usage = data.get("usage") or {}
        if "input_tokens" in usage or "output_tokens" in usage:
            total: int | None = int(usage.get("input_tokens", 0)) + int(usage.get("output_tokens", 0))
        else:
            total = None
        return text, total

    async def _invoke_gemini(
        self,
        profile: ProviderProfile,
        messages: Sequence[ChatMessage],
        options: CallOptions,
    ) -> tuple[str, int | None]:
        system, contents = gemini_contents(messages)
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": options.temperature,
                "maxOutputTokens": options.max_tokens,
            },
        }
        if system is not None:
            body["system_instruction"] = {"parts": [{"text": system}]}
        response = await self._client.post(
            f"{profile.base_url or GEMINI_BASE_URL}/models/{profile.model}:generateContent",
            headers={
                "x-goog-api-key": profile.api_key,
                "Content-Type": "application/json",
            },
            json=body,
        )
        response.raise_for_status()
        data = response.json()
        parts = data["candidates"][0]["content"]["parts"]
        text = "".join(part.get("text", "") for part in parts)
        usage = (data.get("usageMetadata") or {}).get("totalTokenCount")
        return text, _as_int(usage)

    async def close(self) -> None:
        await self._client.aclose()


# ── Message shape translation ────────────────────────────────
def openai_messages(messages: Sequence[ChatMessage]) -> list[dict[str, str]]:
    return [{"role": m.role.value, "content": m.content} for m in messages]


def anthropic_messages(
    messages: Sequence[ChatMessage],
) -> tuple[str | None, list[dict[str, str]]]:
    """Lift system messages into the top-level ``system`` field."""
    system_parts = [m.content for m in messages if m.role is MessageRole.SYSTEM]
    conversation = [
        {
            "role": "assistant" if m.role is MessageRole.ASSISTANT else "user",
            "content": m.content,
        }
        for m in messages
        if m.role is not MessageRole.SYSTEM
    ]
    return ("\n\n".join(system_parts) if system_parts else None), conversation


def gemini_contents(
    messages: Sequence[ChatMessage],
) -> tuple[str | None, list[dict[str, Any]]]:
    """Lift system messages into ``system_instruction``; assistant becomes ``model``."""
    system_parts = [m.content for m in messages if m.role is MessageRole.SYSTEM]
    contents = [
        {
            "role": "model" if m.role is MessageRole.ASSISTANT else "user",
            "parts": [{"text": m.content}],
        }
        for m in messages
        if m.role is not MessageRole.SYSTEM
    ]
    return ("\n\n".join(system_parts) if system_parts else None), contents


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message", error))[:200]
        if error:
            return str(error)[:200]
    return str(body)[:200]


__all__ = [
    "ESTIMATED_USAGE_TOKENS",
    "LLMProviderClient",
    "anthropic_messages",
    "build_provider_profiles",
    "gemini_contents",
    "openai_messages",
]
