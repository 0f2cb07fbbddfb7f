"""Gateway exception hierarchy.

All exceptions inherit from ``GatewayError`` so callers can catch the entire
family in one clause while still discriminating on subclass.
"""

from __future__ import annotations

from typing import Any

from ai_gateway.domain.enums import ProviderErrorKind


class GatewayError(Exception):
    """Base class for all gateway errors."""

    def __init__(self, message: str, *, code: str = "GATEWAY_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Providers ────────────────────────────────────────────────
class ProviderError(GatewayError):
    """A single provider call failed; recoverable by trying the next candidate."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        kind: ProviderErrorKind = ProviderErrorKind.TRANSPORT,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.kind = kind
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}", code="PROVIDER_ERROR")


class AllProvidersFailedError(GatewayError):
    """Every eligible candidate failed, or none were eligible."""

    def __init__(
        self,
        diagnostics: dict[str, dict[str, Any]],
        *,
        attempted: list[str] | None = None,
    ) -> None:
        self.diagnostics = diagnostics
        self.attempted = list(attempted or [])
        tried = ", ".join(self.attempted) or "none eligible"
        super().__init__(
            f"All AI providers failed ({tried})",
            code="ALL_PROVIDERS_FAILED",
        )


# ── Infrastructure ───────────────────────────────────────────
class PersistenceError(GatewayError):
    """Durable store read/write failed; the in-memory ledger stays authoritative."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="PERSISTENCE_ERROR")


class ConfigurationError(GatewayError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR")


class UnknownServiceError(GatewayError):
    def __init__(self, service: str) -> None:
        super().__init__(f"Unknown service {service!r}", code="UNKNOWN_SERVICE")
