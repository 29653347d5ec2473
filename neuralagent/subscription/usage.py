"""Usage statistics for subscription limits."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from neuralagent.subscription.evaluator import effective_used_today, is_usage_stale
from neuralagent.subscription.state import SubscriptionRecord, UsageSnapshot
from neuralagent.subscription.tiers import TierLimits


def count_statuses(rows: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    """Count task rows by their status column."""
    return dict(Counter(str(row.get("status")) for row in rows))


def summarize(
    record: SubscriptionRecord,
    limits: TierLimits,
    task_status_counts: Mapping[str, int],
    now: Optional[datetime] = None,
) -> UsageSnapshot:
    """Aggregate task counts into a snapshot.

    Statuses other than completed, failed and running only count toward the
    total. With now given, tasks_today is the stale-aware count.
    """
    if now is None:
        tasks_today = record.tasks_used_today
        stale = False
    else:
        tasks_today = effective_used_today(record, now)
        stale = is_usage_stale(record, now)

    return UsageSnapshot(
        subscription=record,
        tier_limits=limits,
        tasks_today=tasks_today,
        total_tasks=sum(task_status_counts.values()),
        completed_tasks=task_status_counts.get("completed", 0),
        failed_tasks=task_status_counts.get("failed", 0),
        running_tasks=task_status_counts.get("running", 0),
        stale=stale,
    )
