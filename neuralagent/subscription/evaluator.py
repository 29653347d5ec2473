"""Client-side entitlement checks.

Everything here is a pure function of a SubscriptionRecord, TierLimits and the
current time. The same rules run server-side in the can_create_task,
has_feature and get_tier_limits RPCs, which take precedence; these answers are
advisory and exist so the UI can respond without a round trip.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from neuralagent.errors import InvalidTierError, Result, StaleUsageError
from neuralagent.subscription.limits import UNLIMITED, Unlimited
from neuralagent.subscription.state import SubscriptionRecord
from neuralagent.subscription.tiers import DEFAULT_CATALOG, Tier, TierCatalog, TierLimits

ONE_DAY = timedelta(days=1)


def normalize_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def is_expired(record: SubscriptionRecord, now: Optional[datetime] = None) -> bool:
    """True iff an expiration is set and lies strictly before now."""
    if record.expires_at is None:
        return False
    return record.expires_at < normalize_now(now)


def days_until_expiration(record: SubscriptionRecord, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days left, rounded up. Negative once expired, None without expiration."""
    if record.expires_at is None:
        return None
    remaining = record.expires_at - normalize_now(now)
    return math.ceil(remaining / ONE_DAY)


def is_usage_stale(record: SubscriptionRecord, now: Optional[datetime] = None) -> bool:
    return normalize_now(now) >= record.tasks_reset_date


def effective_used_today(record: SubscriptionRecord, now: Optional[datetime] = None) -> int:
    """Stored counter, or 0 once its reset boundary has passed.

    The record is never corrected here; the backing store performs the reset.
    """
    if is_usage_stale(record, now):
        return 0
    return record.tasks_used_today


def usage_staleness(record: SubscriptionRecord, now: Optional[datetime] = None) -> Optional[StaleUsageError]:
    if not is_usage_stale(record, now) or record.tasks_used_today == 0:
        return None
    return StaleUsageError(
        f"tasks_used_today={record.tasks_used_today} is past its reset boundary "
        f"{record.tasks_reset_date.isoformat()}"
    )


def remaining_tasks_today(
    record: SubscriptionRecord,
    limits: TierLimits,
    now: Optional[datetime] = None,
) -> Union[int, Unlimited]:
    if limits.tasks_per_day is UNLIMITED:
        return UNLIMITED
    return max(0, limits.tasks_per_day.value - effective_used_today(record, now))


def can_create_task(
    record: SubscriptionRecord,
    limits: TierLimits,
    now: Optional[datetime] = None,
) -> bool:
    # Records without an expiration (free, enterprise contracts) never expire.
    if is_expired(record, now):
        return False
    remaining = remaining_tasks_today(record, limits, now)
    return remaining is UNLIMITED or remaining > 0


def has_feature(record: SubscriptionRecord, limits: TierLimits, feature_id: str) -> bool:
    return feature_id in limits.features


def can_use_provider(limits: TierLimits, provider_id: str) -> bool:
    return provider_id in limits.ai_providers


def can_run_concurrently(limits: TierLimits, running_tasks: int) -> bool:
    """Whether one more task may start alongside running_tasks."""
    if limits.max_concurrent_tasks is UNLIMITED:
        return True
    return running_tasks < limits.max_concurrent_tasks.value


def upgrade(
    record: SubscriptionRecord,
    new_tier: Union[Tier, str],
    expires_at: Optional[datetime],
    catalog: TierCatalog = DEFAULT_CATALOG,
) -> Result[SubscriptionRecord]:
    """Record with tier and expiration replaced; usage counters untouched.

    Downgrades are allowed. expires_at is taken as given.
    """
    if not catalog.contains(new_tier):
        return Result.failure(InvalidTierError(new_tier))
    tier = new_tier if isinstance(new_tier, Tier) else Tier(new_tier)
    return Result.success(replace(record, tier=tier, expires_at=expires_at))
