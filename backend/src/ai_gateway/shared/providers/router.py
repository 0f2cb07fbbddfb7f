"""Provider router — computes the ordered candidate list for one request.

Selection policy:
    * a preferred provider that is enabled goes first, followed by the other
      enabled providers in configuration order (no re-sort by priority);
    * otherwise the task-type table decides;
    * unknown task types fall back to the default ranking (enabled providers
      ascending by priority).

Eligibility (breaker / budget state) is *not* decided here; the orchestrator
re-checks it for every candidate at attempt time.
"""

from __future__ import annotations

from typing import Mapping, Sequence

import structlog

from ai_gateway.domain.enums import TaskType
from ai_gateway.domain.exceptions import ConfigurationError
from ai_gateway.shared.providers.types import ProviderProfile

logger = structlog.get_logger(__name__)


DEFAULT_TASK_PRIORITIES: dict[TaskType, tuple[str, ...]] = {
    # Complex reasoning
    TaskType.PRIORITY_ASSESSMENT: ("openai", "anthropic", "gemini"),
    TaskType.CALENDAR_MANAGEMENT: ("openai", "anthropic", "gemini"),
    # Long context
    TaskType.CONVERSATION: ("anthropic", "openai", "gemini"),
    # Cheapest for simple tasks
    TaskType.SIMPLE_RESPONSE: ("gemini", "anthropic", "openai"),
}


class PriorityTable:
    """Finite task-type → provider-order mapping, validated at construction.

    ``TaskType.GENERAL`` (and any tag not in the table) always resolves to the
    default ranking, so a lookup can never fail at runtime.
    """

    def __init__(
        self,
        profiles: Sequence[ProviderProfile],
        table: Mapping[TaskType | str, Sequence[str]] | None = None,
    ) -> None:
        known = {p.provider_id for p in profiles}
        self._profiles = list(profiles)
        self._table: dict[TaskType, tuple[str, ...]] = {}

        if table is None:
            # Built-in orders are trimmed to the configured providers
            for tag, order in DEFAULT_TASK_PRIORITIES.items():
                self._table[tag] = tuple(pid for pid in order if pid in known)
            return

        for raw_tag, order in table.items():
            tag = TaskType.parse(raw_tag)
            if tag is None:
                raise ConfigurationError(f"Unknown task type in priority table: {raw_tag!r}")
            unknown = [pid for pid in order if pid not in known]
            if unknown:
                raise ConfigurationError(
                    f"Priority table for {tag.value!r} references unknown providers: {unknown}"
                )
            if tag is TaskType.GENERAL:
                continue
            self._table[tag] = tuple(order)

    def default_ranking(self) -> list[str]:
        enabled = [p for p in self._profiles if p.enabled]
        return [p.provider_id for p in sorted(enabled, key=lambda p: p.priority)]

    def lookup(self, task_type: TaskType | str | None) -> list[str]:
        tag = TaskType.parse(task_type)
        if tag is None or tag not in self._table:
            if task_type is not None and tag is None:
                logger.debug("unknown_task_type", task_type=str(task_type))
            return self.default_ranking()
        return list(self._table[tag])

    def as_dict(self) -> dict[str, list[str]]:
        out = {tag.value: list(order) for tag, order in self._table.items()}
        out[TaskType.GENERAL.value] = self.default_ranking()
        return out


class ProviderRouter:
    """Builds the candidate order for a request."""

    def __init__(
        self,
        profiles: Sequence[ProviderProfile],
        priority_table: PriorityTable | None = None,
    ) -> None:
        self._profiles = list(profiles)
        self._by_id = {p.provider_id: p for p in self._profiles}
        self._table = priority_table or PriorityTable(self._profiles)

    @property
    def priority_table(self) -> PriorityTable:
        return self._table

    def candidates(
        self,
        *,
        task_type: TaskType | str | None = TaskType.GENERAL,
        preferred_provider: str | None = None,
    ) -> list[str]:
        if preferred_provider:
            preferred = self._by_id.get(preferred_provider)
            if preferred is not None and preferred.enabled:
                others = [
                    p.provider_id
                    for p in self._profiles
                    if p.enabled and p.provider_id != preferred_provider
                ]
                return [preferred_provider, *others]
            logger.debug("preferred_provider_ignored", provider=preferred_provider)

        return self._table.lookup(task_type)
