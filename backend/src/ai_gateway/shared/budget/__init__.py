"""Budget ledger and admission control."""

from ai_gateway.shared.budget.policy import (
    DEFAULT_FAILOVER_CHAIN,
    DEFAULT_SERVICES,
    BudgetFlag,
    BudgetPolicy,
    ServiceDefinition,
    UsageEntry,
)
from ai_gateway.shared.budget.ledger import BudgetLedger

__all__ = [
    "DEFAULT_FAILOVER_CHAIN",
    "DEFAULT_SERVICES",
    "BudgetFlag",
    "BudgetLedger",
    "BudgetPolicy",
    "ServiceDefinition",
    "UsageEntry",
]
