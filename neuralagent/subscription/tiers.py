"""Subscription tiers, their limits, and the tier comparison table."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Tuple, Union

from neuralagent.errors import InvalidTierError, Result, UnknownTierError
from neuralagent.subscription.limits import (
    UNLIMITED,
    Limit,
    Limited,
    limit_from_wire,
    limit_to_wire,
)


class Tier(str, Enum):
    FREE = "free"
    PRO = "pro"
    UNLIMITED = "unlimited"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"

    @property
    def rank(self) -> int:
        """Position in the tier ordering, free being 0."""
        return TIER_ORDER.index(self)


TIER_ORDER: Tuple[Tier, ...] = (
    Tier.FREE,
    Tier.PRO,
    Tier.UNLIMITED,
    Tier.BUSINESS,
    Tier.ENTERPRISE,
)


def parse_tier(value: Union[Tier, str, None]) -> Result[Tier]:
    """Resolve a tier identifier, failing with InvalidTierError."""
    if isinstance(value, Tier):
        return Result.success(value)
    try:
        return Result.success(Tier(value))
    except ValueError:
        return Result.failure(InvalidTierError(value))


@dataclass(frozen=True)
class TierLimits:
    tasks_per_day: Limit
    background_mode: bool
    ai_providers: frozenset[str]
    max_concurrent_tasks: Limit
    task_history_days: Limit
    features: frozenset[str]

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape used by the get_tier_limits RPC (-1 means unlimited)."""
        return {
            "tasks_per_day": limit_to_wire(self.tasks_per_day),
            "background_mode": self.background_mode,
            "ai_providers": sorted(self.ai_providers),
            "max_concurrent_tasks": limit_to_wire(self.max_concurrent_tasks),
            "task_history_days": limit_to_wire(self.task_history_days),
            "features": sorted(self.features),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TierLimits":
        """Parse the RPC shape; camelCase keys from older functions are accepted."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return None

        return cls(
            tasks_per_day=limit_from_wire(pick("tasks_per_day", "tasksPerDay")),
            background_mode=bool(pick("background_mode", "backgroundMode")),
            ai_providers=frozenset(pick("ai_providers", "aiProviders") or ()),
            max_concurrent_tasks=limit_from_wire(pick("max_concurrent_tasks", "maxConcurrentTasks")),
            task_history_days=limit_from_wire(pick("task_history_days", "taskHistory")),
            features=frozenset(pick("features") or ()),
        )


@dataclass(frozen=True)
class TierDescriptor:
    """Display row for the billing page."""

    tier: Tier
    name: str
    price: str
    period: str
    features: Tuple[str, ...]
    limitations: Tuple[str, ...] = ()
    popular: bool = False


_BASIC = "basic_automation"
_ADVANCED = "advanced_automation"
_SCHEDULING = "task_scheduling"
_WORKFLOWS = "custom_workflows"
_TEAM = "team_collaboration"

TIER_LIMITS: Dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(
        tasks_per_day=Limited(5),
        background_mode=False,
        ai_providers=frozenset({"openai"}),
        max_concurrent_tasks=Limited(1),
        task_history_days=Limited(7),
        features=frozenset({_BASIC}),
    ),
    Tier.PRO: TierLimits(
        tasks_per_day=Limited(50),
        background_mode=True,
        ai_providers=frozenset({"openai", "anthropic"}),
        max_concurrent_tasks=Limited(3),
        task_history_days=Limited(30),
        features=frozenset({_BASIC, _ADVANCED, _SCHEDULING}),
    ),
    Tier.UNLIMITED: TierLimits(
        tasks_per_day=UNLIMITED,
        background_mode=True,
        ai_providers=frozenset({"openai", "anthropic", "azure_openai"}),
        max_concurrent_tasks=Limited(5),
        task_history_days=Limited(90),
        features=frozenset({_BASIC, _ADVANCED, _SCHEDULING, _WORKFLOWS}),
    ),
    Tier.BUSINESS: TierLimits(
        tasks_per_day=UNLIMITED,
        background_mode=True,
        ai_providers=frozenset({"openai", "anthropic", "azure_openai", "bedrock"}),
        max_concurrent_tasks=Limited(10),
        task_history_days=Limited(365),
        features=frozenset({_BASIC, _ADVANCED, _SCHEDULING, _WORKFLOWS, _TEAM}),
    ),
    Tier.ENTERPRISE: TierLimits(
        tasks_per_day=UNLIMITED,
        background_mode=True,
        ai_providers=frozenset({"openai", "anthropic", "azure_openai", "bedrock"}),
        max_concurrent_tasks=UNLIMITED,
        task_history_days=UNLIMITED,
        features=frozenset({
            _BASIC, _ADVANCED, _SCHEDULING, _WORKFLOWS, _TEAM, "sso", "audit_logs",
        }),
    ),
}

TIER_COMPARISON: Tuple[TierDescriptor, ...] = (
    TierDescriptor(
        tier=Tier.FREE,
        name="Free",
        price="$0",
        period="forever",
        features=(
            "5 tasks per day",
            "Basic automation",
            "OpenAI integration",
            "1 concurrent task",
            "7 days history",
        ),
        limitations=(
            "No background mode",
            "Limited AI providers",
            "Basic features only",
        ),
    ),
    TierDescriptor(
        tier=Tier.PRO,
        name="Pro",
        price="$19",
        period="per month",
        features=(
            "50 tasks per day",
            "Background mode",
            "Advanced automation",
            "Task scheduling",
            "OpenAI + Anthropic",
            "3 concurrent tasks",
            "30 days history",
        ),
        popular=True,
    ),
    TierDescriptor(
        tier=Tier.UNLIMITED,
        name="Unlimited",
        price="$49",
        period="per month",
        features=(
            "Unlimited tasks",
            "All Pro features",
            "Custom workflows",
            "Azure OpenAI support",
            "5 concurrent tasks",
            "90 days history",
        ),
    ),
    TierDescriptor(
        tier=Tier.BUSINESS,
        name="Business",
        price="$99",
        period="per month",
        features=(
            "Everything in Unlimited",
            "Team collaboration",
            "All AI providers",
            "10 concurrent tasks",
            "1 year history",
            "Priority support",
        ),
    ),
    TierDescriptor(
        tier=Tier.ENTERPRISE,
        name="Enterprise",
        price="Custom",
        period="contact us",
        features=(
            "Everything in Business",
            "SSO integration",
            "Audit logs",
            "Unlimited concurrent tasks",
            "Unlimited history",
            "Dedicated support",
            "Custom integrations",
        ),
    ),
)


@dataclass(frozen=True)
class TierCatalog:
    """Static registry of tiers. Lookups have no side effects."""

    limits: Mapping[Tier, TierLimits] = field(default_factory=lambda: dict(TIER_LIMITS))
    comparison: Tuple[TierDescriptor, ...] = TIER_COMPARISON

    def limits_for(self, tier: Union[Tier, str]) -> Result[TierLimits]:
        try:
            key = tier if isinstance(tier, Tier) else Tier(tier)
        except ValueError:
            return Result.failure(UnknownTierError(tier))
        limits = self.limits.get(key)
        if limits is None:
            return Result.failure(UnknownTierError(tier))
        return Result.success(limits)

    def contains(self, tier: Union[Tier, str, None]) -> bool:
        return self.limits_for(tier).ok if tier is not None else False

    def all_tiers(self) -> List[Tuple[Tier, TierLimits]]:
        return [(tier, self.limits[tier]) for tier in TIER_ORDER if tier in self.limits]

    def tier_comparison_table(self) -> List[TierDescriptor]:
        return list(self.comparison)

    def display_name(self, tier: Tier) -> str:
        for descriptor in self.comparison:
            if descriptor.tier is tier:
                return descriptor.name
        return tier.value.capitalize()


DEFAULT_CATALOG = TierCatalog()
