"""Subscription state for the signed-in user.

Reads the SubscriptionRecord and task rows through the backend and answers
entitlement questions two ways:

1. Advisory, client-side: evaluator functions over the fetched record.
2. Authoritative, server-side: the can_create_task, has_feature and
   get_tier_limits RPCs. These win whenever the two disagree.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple, Union

from neuralagent.auth.session import Identity, SessionStore, get_session_store
from neuralagent.errors import (
    IdentityMismatchError,
    ProviderError,
    Result,
)
from neuralagent.providers.base import BaseBackend
from neuralagent.providers.supabase_client import get_backend
from neuralagent.subscription import evaluator
from neuralagent.subscription.limits import Unlimited
from neuralagent.subscription.state import (
    SUBSCRIPTION_COLUMNS,
    SubscriptionChange,
    SubscriptionRecord,
    UsageSnapshot,
    format_timestamp,
)
from neuralagent.subscription.tiers import (
    DEFAULT_CATALOG,
    Tier,
    TierCatalog,
    TierDescriptor,
    TierLimits,
)
from neuralagent.subscription.usage import count_statuses, summarize

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
TASKS_TABLE = "tasks"
HISTORY_TABLE = "subscription_history"


class SubscriptionService:
    """Subscription queries and upgrades for the current identity."""

    def __init__(
        self,
        session_store: SessionStore,
        backend: BaseBackend,
        catalog: TierCatalog = DEFAULT_CATALOG,
    ):
        self._sessions = session_store
        self._backend = backend
        self.catalog = catalog
        self.current_subscription: Optional[SubscriptionRecord] = None

    def _identity(self) -> Result[Identity]:
        return self._sessions.active_identity()

    def get_current_subscription(self) -> Result[SubscriptionRecord]:
        """Fetch the signed-in user's subscription record."""
        active = self._identity()
        if not active.ok:
            return Result.failure(active.error)
        identity = active.value

        try:
            row = self._backend.fetch_one(
                USERS_TABLE, {"id": identity.user_id}, SUBSCRIPTION_COLUMNS
            )
        except ProviderError as e:
            logger.error("Get subscription error: %s", e)
            return Result.failure(e)

        try:
            record = SubscriptionRecord.from_row(row, identity.user_id)
        except ValueError as e:
            logger.error("Malformed subscription row for %s: %s", identity.user_id, e)
            return Result.failure(ProviderError(str(e)))

        if record.user_id != identity.user_id:
            return Result.failure(IdentityMismatchError(
                f"Subscription record {record.user_id} does not belong to {identity.user_id}"
            ))

        staleness = evaluator.usage_staleness(record)
        if staleness is not None:
            logger.debug("Stale usage counter: %s", staleness)

        self.current_subscription = record
        return Result.success(record)

    def _record_and_limits(self) -> Result[Tuple[SubscriptionRecord, TierLimits]]:
        result = self.get_current_subscription()
        if not result.ok:
            return Result.failure(result.error)
        record = result.value
        limits = self.catalog.limits_for(record.tier)
        if not limits.ok:
            return Result.failure(limits.error)
        return Result.success((record, limits.value))

    def upgrade_subscription(
        self,
        new_tier: Union[Tier, str],
        expires_at: Optional[datetime] = None,
    ) -> Result[SubscriptionRecord]:
        """Change tier (no payment processing). Downgrades are allowed."""
        current = self.get_current_subscription()
        if not current.ok:
            return current

        upgraded = evaluator.upgrade(current.value, new_tier, expires_at, self.catalog)
        if not upgraded.ok:
            return upgraded

        record = upgraded.value
        try:
            self._backend.invoke("upgrade_subscription", {
                "user_uuid": record.user_id,
                "new_tier": record.tier.value,
                "expires_at": format_timestamp(record.expires_at),
            })
        except ProviderError as e:
            logger.error("Upgrade subscription error: %s", e)
            return Result.failure(e)

        logger.info(
            "Subscription changed %s -> %s for %s",
            current.value.tier.value, record.tier.value, record.user_id,
        )
        return self.get_current_subscription()

    def get_subscription_history(self) -> Result[List[SubscriptionChange]]:
        """Tier changes for the signed-in user, newest first."""
        active = self._identity()
        if not active.ok:
            return Result.failure(active.error)
        identity = active.value

        try:
            rows = self._backend.query(
                HISTORY_TABLE,
                {"user_id": identity.user_id},
                order="changed_at",
                descending=True,
            )
        except ProviderError as e:
            logger.error("Get subscription history error: %s", e)
            return Result.failure(e)
        return Result.success([SubscriptionChange.from_row(row) for row in rows])

    def get_tier_info(self, tier: Union[Tier, str]) -> Result[TierLimits]:
        return self.catalog.limits_for(tier)

    def get_all_tiers(self) -> List[Tuple[Tier, TierLimits]]:
        return self.catalog.all_tiers()

    def get_tier_comparison(self) -> List[TierDescriptor]:
        return self.catalog.tier_comparison_table()

    def get_usage_stats(self, now: Optional[datetime] = None) -> Result[UsageSnapshot]:
        fetched = self._record_and_limits()
        if not fetched.ok:
            return Result.failure(fetched.error)
        record, limits = fetched.value

        try:
            rows = self._backend.query(TASKS_TABLE, {"user_id": record.user_id}, ("status",))
        except ProviderError as e:
            logger.error("Get usage stats error: %s", e)
            return Result.failure(e)

        return Result.success(
            summarize(record, limits, count_statuses(rows), evaluator.normalize_now(now))
        )

    # Advisory client-side checks

    def can_create_task(self, now: Optional[datetime] = None) -> Result[bool]:
        fetched = self._record_and_limits()
        if not fetched.ok:
            return Result.failure(fetched.error)
        record, limits = fetched.value
        return Result.success(evaluator.can_create_task(record, limits, now))

    def remaining_tasks_today(self, now: Optional[datetime] = None) -> Result[Union[int, Unlimited]]:
        fetched = self._record_and_limits()
        if not fetched.ok:
            return Result.failure(fetched.error)
        record, limits = fetched.value
        return Result.success(evaluator.remaining_tasks_today(record, limits, now))

    def has_feature(self, feature: str) -> Result[bool]:
        fetched = self._record_and_limits()
        if not fetched.ok:
            return Result.failure(fetched.error)
        record, limits = fetched.value
        return Result.success(evaluator.has_feature(record, limits, feature))

    def is_subscription_expired(self, now: Optional[datetime] = None) -> Result[bool]:
        current = self.get_current_subscription()
        if not current.ok:
            return Result.failure(current.error)
        return Result.success(evaluator.is_expired(current.value, now))

    def days_until_expiration(self, now: Optional[datetime] = None) -> Result[Optional[int]]:
        current = self.get_current_subscription()
        if not current.ok:
            return Result.failure(current.error)
        return Result.success(evaluator.days_until_expiration(current.value, now))

    # Authoritative server-side checks

    def _remote_check(self, procedure: str, **args: Any) -> bool:
        active = self._identity()
        if not active.ok:
            return False
        identity = active.value
        try:
            return bool(self._backend.invoke(procedure, {"user_uuid": identity.user_id, **args}))
        except ProviderError as e:
            logger.error("%s check error: %s", procedure, e)
            return False

    def can_create_task_remote(self) -> bool:
        return self._remote_check("can_create_task")

    def has_feature_remote(self, feature: str) -> bool:
        return self._remote_check("has_feature", feature_name=feature)

    def get_tier_limits_remote(self) -> Result[TierLimits]:
        active = self._identity()
        if not active.ok:
            return Result.failure(active.error)
        identity = active.value
        try:
            data = self._backend.invoke("get_tier_limits", {"user_uuid": identity.user_id})
        except ProviderError as e:
            logger.error("Get tier limits error: %s", e)
            return Result.failure(e)
        if isinstance(data, list):
            data = data[0] if data else {}
        return Result.success(TierLimits.from_dict(data or {}))


_subscription_service: Optional[SubscriptionService] = None


def get_subscription_service() -> SubscriptionService:
    """Get or create the process-wide subscription service."""
    global _subscription_service
    if _subscription_service is None:
        _subscription_service = SubscriptionService(get_session_store(), get_backend())
    return _subscription_service


def reset_subscription_service() -> None:
    global _subscription_service
    _subscription_service = None
