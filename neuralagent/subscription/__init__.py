"""Subscription tiers, entitlement checks and usage tracking for NeuralAgent."""

from neuralagent.subscription.limits import UNLIMITED, Limit, Limited
from neuralagent.subscription.tiers import (
    DEFAULT_CATALOG,
    Tier,
    TierCatalog,
    TierDescriptor,
    TierLimits,
)
from neuralagent.subscription.state import (
    SubscriptionChange,
    SubscriptionRecord,
    UsageSnapshot,
)
from neuralagent.subscription.usage import summarize

__all__ = [
    "UNLIMITED",
    "Limit",
    "Limited",
    "DEFAULT_CATALOG",
    "Tier",
    "TierCatalog",
    "TierDescriptor",
    "TierLimits",
    "SubscriptionChange",
    "SubscriptionRecord",
    "UsageSnapshot",
    "summarize",
]
