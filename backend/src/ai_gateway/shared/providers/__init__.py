"""Multi-provider failover framework.

Provides candidate ordering, per-provider circuit breaking and sequential
failover for generation providers.
"""

from ai_gateway.shared.providers.types import (
    CallOptions,
    ChatMessage,
    CircuitSnapshot,
    GenerationFailure,
    GenerationResult,
    ProviderProfile,
    ProviderResponse,
)
from ai_gateway.shared.providers.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from ai_gateway.shared.providers.router import PriorityTable, ProviderRouter
from ai_gateway.shared.providers.orchestrator import FailoverOrchestrator

__all__ = [
    "CallOptions",
    "ChatMessage",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitSnapshot",
    "CircuitState",
    "FailoverOrchestrator",
    "GenerationFailure",
    "GenerationResult",
    "PriorityTable",
    "ProviderProfile",
    "ProviderResponse",
    "ProviderRouter",
]
