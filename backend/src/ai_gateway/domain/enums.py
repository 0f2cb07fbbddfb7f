"""Domain enumerations for the AI gateway."""

from __future__ import annotations

import enum


class MessageRole(str, enum.Enum):
    """Role of a provider-neutral chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ServiceKind(str, enum.Enum):
    """Broad category of a tracked service."""

    AI = "ai"
    AUXILIARY = "auxiliary"

    @classmethod
    def parse(cls, value: str | ServiceKind) -> ServiceKind | None:
        """Accept enum members, their values, and the legacy ``voice`` alias."""
        if isinstance(value, ServiceKind):
            return value
        normalised = str(value).strip().lower()
        if normalised == "voice":
            return cls.AUXILIARY
        try:
            return cls(normalised)
        except ValueError:
            return None


class UsageUnit(str, enum.Enum):
    """Billing unit a service's ``usage_amount`` is measured in."""

    TOKENS = "tokens"
    CHARACTERS = "characters"
    MINUTES = "minutes"


class TaskType(str, enum.Enum):
    """Caller-supplied request classification used to pick a provider order."""

    GENERAL = "general"
    PRIORITY_ASSESSMENT = "priority_assessment"
    CALENDAR_MANAGEMENT = "calendar_management"
    CONVERSATION = "conversation"
    SIMPLE_RESPONSE = "simple_response"

    @classmethod
    def parse(cls, value: str | TaskType | None) -> TaskType | None:
        if value is None:
            return None
        if isinstance(value, TaskType):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class NotificationKind(str, enum.Enum):
    """State changes reported on the notification bus."""

    BUDGET_WARNING = "budget_warning"
    BUDGET_EXCEEDED = "budget_exceeded"
    SERVICE_FAILOVER = "service_failover"
    SERVICE_RESTORED = "service_restored"
    MONTHLY_RESET = "monthly_reset"


class DisableReason(str, enum.Enum):
    """Why a service is budget-disabled."""

    NONE = "none"
    BUDGET_EXCEEDED = "budget_exceeded"


class ProviderErrorKind(str, enum.Enum):
    """Normalised cause of a single provider call failing."""

    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    QUOTA = "quota"
    HTTP = "http"
    MALFORMED = "malformed"
    UNKNOWN_PROVIDER = "unknown_provider"
