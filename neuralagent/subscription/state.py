"""Subscription record, history and usage snapshot definitions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Mapping, Optional, Union

from neuralagent.subscription.tiers import Tier, TierLimits

# Columns of the users table that make up a subscription record.
SUBSCRIPTION_COLUMNS = (
    "id",
    "subscription_tier",
    "subscription_expires_at",
    "tasks_used_today",
    "tasks_reset_date",
)

TASK_STATUSES = ("completed", "failed", "running")


def parse_timestamp(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Parse a backend timestamp into an aware UTC datetime.

    Plain dates (the tasks_reset_date column) become midnight UTC of that day.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).replace("Z", "+00:00")
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class SubscriptionRecord:
    user_id: str
    tier: Tier
    expires_at: Optional[datetime]
    tasks_used_today: int
    tasks_reset_date: datetime

    def __post_init__(self) -> None:
        if self.tasks_used_today < 0:
            raise ValueError("tasks_used_today cannot be negative")
        # Naive datetimes are taken as UTC.
        object.__setattr__(self, "expires_at", parse_timestamp(self.expires_at))
        object.__setattr__(self, "tasks_reset_date", parse_timestamp(self.tasks_reset_date))

    @classmethod
    def from_row(cls, row: Mapping[str, Any], user_id: Optional[str] = None) -> "SubscriptionRecord":
        """Build a record from a users row.

        Raises ValueError for a tier outside the enumeration or a malformed row.
        """
        reset = parse_timestamp(row.get("tasks_reset_date"))
        if reset is None:
            raise ValueError("tasks_reset_date is missing")
        return cls(
            user_id=str(row.get("id") or user_id or ""),
            tier=Tier(row.get("subscription_tier") or Tier.FREE.value),
            expires_at=parse_timestamp(row.get("subscription_expires_at")),
            tasks_used_today=int(row.get("tasks_used_today") or 0),
            tasks_reset_date=reset,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "subscription_tier": self.tier.value,
            "subscription_expires_at": format_timestamp(self.expires_at),
            "tasks_used_today": self.tasks_used_today,
            "tasks_reset_date": format_timestamp(self.tasks_reset_date),
        }


@dataclass(frozen=True)
class SubscriptionChange:
    old_tier: Optional[str]
    new_tier: str
    changed_at: Optional[datetime]
    expires_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SubscriptionChange":
        return cls(
            old_tier=row.get("old_tier"),
            new_tier=str(row.get("new_tier", "")),
            changed_at=parse_timestamp(row.get("changed_at")),
            expires_at=parse_timestamp(row.get("expires_at")),
        )


@dataclass(frozen=True)
class UsageSnapshot:
    subscription: SubscriptionRecord
    tier_limits: TierLimits
    tasks_today: int
    total_tasks: int
    completed_tasks: int
    failed_tasks: int
    running_tasks: int
    stale: bool = False
