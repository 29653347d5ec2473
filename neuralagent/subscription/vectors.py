"""Shared policy vectors for keeping client and server entitlement rules in step."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from neuralagent.subscription import evaluator
from neuralagent.subscription.limits import UNLIMITED, Limit
from neuralagent.subscription.state import SubscriptionRecord
from neuralagent.subscription.tiers import DEFAULT_CATALOG, Tier, TierCatalog

VECTORS_PATH = Path(__file__).parent / "policy_vectors.json"


@dataclass(frozen=True)
class PolicyVector:
    name: str
    tier: str
    tasks_used_today: int
    reset_offset_hours: float
    expires_offset_hours: Optional[float]
    expected: Dict[str, Any]

    def record(self, now: datetime, user_id: str = "vector-user") -> SubscriptionRecord:
        expires_at = None
        if self.expires_offset_hours is not None:
            expires_at = now + timedelta(hours=self.expires_offset_hours)
        return SubscriptionRecord(
            user_id=user_id,
            tier=Tier(self.tier),
            expires_at=expires_at,
            tasks_used_today=self.tasks_used_today,
            tasks_reset_date=now + timedelta(hours=self.reset_offset_hours),
        )


def load_policy_vectors(path: Optional[Path] = None) -> List[PolicyVector]:
    data = json.loads((path or VECTORS_PATH).read_text())
    return [PolicyVector(**item) for item in data["vectors"]]


def _encode(value: Any) -> Any:
    if value is UNLIMITED:
        return "unlimited"
    return value


def _limit_value(limit: Limit) -> Any:
    return _encode(limit if limit is UNLIMITED else limit.value)


def evaluate_vector(
    vector: PolicyVector,
    now: datetime,
    catalog: TierCatalog = DEFAULT_CATALOG,
) -> Dict[str, Any]:
    """Run the client evaluator on a vector, in the vector's expected shape."""
    record = vector.record(now)
    limits = catalog.limits_for(record.tier).unwrap()
    return {
        "tasks_per_day": _limit_value(limits.tasks_per_day),
        "can_create_task": evaluator.can_create_task(record, limits, now),
        "is_expired": evaluator.is_expired(record, now),
        "remaining_tasks_today": _encode(evaluator.remaining_tasks_today(record, limits, now)),
    }
