from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

from neuralagent.errors import (
    IdentityMismatchError,
    InvalidTierError,
    NotAuthenticatedError,
    ProviderError,
)
from neuralagent.providers.base import AuthEvent
from neuralagent.subscription.limits import UNLIMITED, Limited
from neuralagent.subscription.manager import SubscriptionService
from neuralagent.subscription.tiers import Tier

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestCurrentSubscription:
    def test_fetches_record_for_signed_in_user(self, service, backend):
        backend.set_subscription(tier="pro", tasks_used_today=3)
        record = service.get_current_subscription().unwrap()
        assert record.tier is Tier.PRO
        assert record.user_id == backend.user["id"]
        assert service.current_subscription == record
        assert ("fetch_one", "users", {"id": backend.user["id"]}) in backend.calls

    def test_requires_identity(self, store, backend):
        backend.set_subscription()
        result = SubscriptionService(store, backend).get_current_subscription()
        assert isinstance(result.error, NotAuthenticatedError)

    def test_expired_access_token_is_refreshed_first(self, service, backend):
        backend.set_subscription(tier="pro")
        backend.emit(AuthEvent.TOKEN_REFRESHED, {**backend.session, "expires_at": int(time.time()) - 10})

        record = service.get_current_subscription().unwrap()

        assert record.tier is Tier.PRO
        names = [call[0] for call in backend.calls]
        assert names.index("refresh_session") < names.index("fetch_one")

    def test_revoked_refresh_token(self, service, backend):
        backend.set_subscription()
        backend.emit(AuthEvent.TOKEN_REFRESHED, {**backend.session, "expires_at": int(time.time()) - 10})
        backend.fail("refresh_session", "Invalid Refresh Token: Revoked", status_code=400)
        result = service.get_current_subscription()
        assert result.error.message == "Invalid Refresh Token: Revoked"
        assert not any(call[0] == "fetch_one" for call in backend.calls)

    def test_backend_error_is_returned(self, service, backend):
        backend.fail("fetch_one", "permission denied for table users")
        result = service.get_current_subscription()
        assert isinstance(result.error, ProviderError)
        assert result.error.message == "permission denied for table users"

    def test_missing_row(self, service):
        assert isinstance(service.get_current_subscription().error, ProviderError)

    def test_malformed_row(self, service, backend):
        backend.set_subscription(tier="gold")
        assert isinstance(service.get_current_subscription().error, ProviderError)

    def test_record_for_another_user(self, service, backend):
        backend.set_subscription()
        backend.tables["users"][0]["id"] = "someone-else"

        def fetch_any(table, filters, columns=("*",)):
            return dict(backend.tables[table][0])

        backend.fetch_one = fetch_any
        result = service.get_current_subscription()
        assert isinstance(result.error, IdentityMismatchError)


class TestUpgrade:
    def test_upgrade_calls_rpc_and_rereads(self, service, backend):
        backend.set_subscription(tier="free", tasks_used_today=4)
        expires = NOW + timedelta(days=30)
        record = service.upgrade_subscription(Tier.PRO, expires).unwrap()
        assert record.tier is Tier.PRO
        assert record.expires_at == expires
        assert record.tasks_used_today == 4
        assert ("rpc:upgrade_subscription", {
            "user_uuid": backend.user["id"],
            "new_tier": "pro",
            "expires_at": expires.isoformat(),
        }) in backend.calls

    def test_downgrade_without_expiration(self, service, backend):
        backend.set_subscription(tier="business", expires_at="2024-07-01T00:00:00+00:00")
        record = service.upgrade_subscription("free").unwrap()
        assert record.tier is Tier.FREE
        assert record.expires_at is None

    def test_invalid_tier_never_reaches_backend(self, service, backend):
        backend.set_subscription()
        result = service.upgrade_subscription("bogus")
        assert isinstance(result.error, InvalidTierError)
        assert not any(call[0] == "rpc:upgrade_subscription" for call in backend.calls)

    def test_rpc_failure(self, service, backend):
        backend.set_subscription()
        backend.fail("rpc:upgrade_subscription", "upgrade rejected")
        result = service.upgrade_subscription(Tier.PRO)
        assert result.error.message == "upgrade rejected"
        assert backend.tables["users"][0]["subscription_tier"] == "free"

    def test_history_newest_first(self, service, backend):
        backend.set_subscription()
        backend.tables["subscription_history"] = [
            {"user_id": backend.user["id"], "old_tier": "free", "new_tier": "pro",
             "changed_at": "2024-05-01T00:00:00+00:00"},
            {"user_id": backend.user["id"], "old_tier": "pro", "new_tier": "business",
             "changed_at": "2024-06-01T00:00:00+00:00"},
            {"user_id": "someone-else", "old_tier": "free", "new_tier": "enterprise",
             "changed_at": "2024-06-10T00:00:00+00:00"},
        ]
        changes = service.get_subscription_history().unwrap()
        assert [c.new_tier for c in changes] == ["business", "pro"]


class TestTierInfo:
    def test_tier_info(self, service):
        assert service.get_tier_info("pro").unwrap().tasks_per_day == Limited(50)
        assert not service.get_tier_info("gold").ok

    def test_all_tiers(self, service):
        assert [t for t, _ in service.get_all_tiers()] == list(Tier)

    def test_comparison(self, service):
        assert len(service.get_tier_comparison()) == 5


class TestUsageStats:
    def test_summarizes_task_rows(self, service, backend):
        backend.set_subscription(tasks_used_today=2)
        user_id = backend.user["id"]
        backend.tables["tasks"] = [
            {"user_id": user_id, "status": "completed"},
            {"user_id": user_id, "status": "completed"},
            {"user_id": user_id, "status": "failed"},
            {"user_id": user_id, "status": "running"},
            {"user_id": user_id, "status": "pending"},
            {"user_id": "someone-else", "status": "completed"},
        ]
        snapshot = service.get_usage_stats(NOW).unwrap()
        assert snapshot.tasks_today == 2
        assert snapshot.total_tasks == 5
        assert snapshot.completed_tasks == 2
        assert snapshot.failed_tasks == 1
        assert snapshot.running_tasks == 1
        assert snapshot.stale is False

    def test_task_query_failure(self, service, backend):
        backend.set_subscription()
        backend.fail("query")
        assert isinstance(service.get_usage_stats(NOW).error, ProviderError)


class TestAdvisoryChecks:
    def test_can_create_task(self, service, backend):
        backend.set_subscription(tasks_used_today=5)
        assert service.can_create_task(NOW).unwrap() is False
        assert service.remaining_tasks_today(NOW).unwrap() == 0

    def test_stale_counter(self, service, backend):
        backend.set_subscription(tasks_used_today=5, tasks_reset_date="2024-06-15")
        assert service.can_create_task(NOW).unwrap() is True
        assert service.remaining_tasks_today(NOW).unwrap() == 5

    def test_unlimited(self, service, backend):
        backend.set_subscription(tier="unlimited", tasks_used_today=900)
        assert service.remaining_tasks_today(NOW).unwrap() is UNLIMITED

    def test_has_feature(self, service, backend):
        backend.set_subscription(tier="pro")
        assert service.has_feature("task_scheduling").unwrap() is True
        assert service.has_feature("sso").unwrap() is False

    def test_expiration(self, service, backend):
        backend.set_subscription(tier="pro", expires_at="2024-06-20T00:00:00+00:00")
        assert service.is_subscription_expired(NOW).unwrap() is False
        assert service.days_until_expiration(NOW).unwrap() == 5

    def test_requires_identity(self, store, backend):
        backend.set_subscription()
        service = SubscriptionService(store, backend)
        assert isinstance(service.can_create_task(NOW).error, NotAuthenticatedError)
        assert isinstance(service.has_feature("sso").error, NotAuthenticatedError)


class TestRemoteChecks:
    def test_can_create_task_remote(self, service, backend):
        backend.rpc["can_create_task"] = lambda args: True
        assert service.can_create_task_remote() is True
        assert ("rpc:can_create_task", {"user_uuid": backend.user["id"]}) in backend.calls

    def test_has_feature_remote_sends_feature_name(self, service, backend):
        backend.rpc["has_feature"] = lambda args: args["feature_name"] == "sso"
        assert service.has_feature_remote("sso") is True
        assert service.has_feature_remote("audit_logs") is False

    def test_remote_failure_denies(self, service, backend):
        backend.fail("rpc:can_create_task")
        assert service.can_create_task_remote() is False

    def test_remote_without_identity_denies(self, store, backend):
        backend.rpc["can_create_task"] = lambda args: True
        assert SubscriptionService(store, backend).can_create_task_remote() is False

    def test_tier_limits_remote(self, service, backend):
        backend.rpc["get_tier_limits"] = lambda args: [{
            "tasks_per_day": -1,
            "background_mode": True,
            "ai_providers": ["openai", "anthropic", "azure_openai"],
            "max_concurrent_tasks": 5,
            "task_history_days": 90,
            "features": ["basic_automation", "advanced_automation", "task_scheduling",
                         "custom_workflows"],
        }]
        limits = service.get_tier_limits_remote().unwrap()
        assert limits == service.get_tier_info(Tier.UNLIMITED).unwrap()
