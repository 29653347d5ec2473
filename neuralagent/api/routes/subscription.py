"""Subscription and entitlement API routes."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from neuralagent.api.errors import unwrap_or_raise
from neuralagent.subscription import evaluator
from neuralagent.subscription.limits import UNLIMITED, Limit, Unlimited
from neuralagent.subscription.manager import SubscriptionService, get_subscription_service
from neuralagent.subscription.state import SubscriptionRecord
from neuralagent.subscription.tiers import Tier, TierLimits

router = APIRouter(prefix="/subscription", tags=["subscription"])

LimitValue = Union[int, Literal["unlimited"]]


def _limit(value: Union[Limit, int, Unlimited]) -> LimitValue:
    if value is UNLIMITED:
        return "unlimited"
    if isinstance(value, int):
        return value
    return value.value


class TierLimitsResponse(BaseModel):
    tasks_per_day: LimitValue
    background_mode: bool
    ai_providers: List[str]
    max_concurrent_tasks: LimitValue
    task_history_days: LimitValue
    features: List[str]


class TierResponse(BaseModel):
    id: str
    name: str
    limits: TierLimitsResponse


class TierDescriptorResponse(BaseModel):
    tier: str
    name: str
    price: str
    period: str
    features: List[str]
    limitations: List[str]
    popular: bool


class SubscriptionResponse(BaseModel):
    tier: str
    expires_at: Optional[datetime]
    is_expired: bool
    days_until_expiration: Optional[int]
    tasks_used_today: int
    tasks_reset_date: datetime
    remaining_tasks_today: LimitValue
    can_create_task: bool


class UpgradeRequest(BaseModel):
    tier: str
    expires_at: Optional[datetime] = None


class SubscriptionChangeResponse(BaseModel):
    old_tier: Optional[str]
    new_tier: str
    changed_at: Optional[datetime]
    expires_at: Optional[datetime]


class UsageResponse(BaseModel):
    tier: str
    tier_limits: TierLimitsResponse
    tasks_today: int
    total_tasks: int
    completed_tasks: int
    failed_tasks: int
    running_tasks: int
    stale: bool


class CheckResponse(BaseModel):
    allowed: bool
    advisory: bool
    authoritative: bool


def _limits_response(limits: TierLimits) -> TierLimitsResponse:
    return TierLimitsResponse(
        tasks_per_day=_limit(limits.tasks_per_day),
        background_mode=limits.background_mode,
        ai_providers=sorted(limits.ai_providers),
        max_concurrent_tasks=_limit(limits.max_concurrent_tasks),
        task_history_days=_limit(limits.task_history_days),
        features=sorted(limits.features),
    )


def _subscription_response(service: SubscriptionService, record: SubscriptionRecord) -> SubscriptionResponse:
    limits = unwrap_or_raise(service.get_tier_info(record.tier))
    now = evaluator.normalize_now()
    return SubscriptionResponse(
        tier=record.tier.value,
        expires_at=record.expires_at,
        is_expired=evaluator.is_expired(record, now),
        days_until_expiration=evaluator.days_until_expiration(record, now),
        tasks_used_today=record.tasks_used_today,
        tasks_reset_date=record.tasks_reset_date,
        remaining_tasks_today=_limit(evaluator.remaining_tasks_today(record, limits, now)),
        can_create_task=evaluator.can_create_task(record, limits, now),
    )


@router.get("", response_model=SubscriptionResponse)
def get_subscription(service: SubscriptionService = Depends(get_subscription_service)):
    """Current subscription with derived expiration and quota facts."""
    record = unwrap_or_raise(service.get_current_subscription())
    return _subscription_response(service, record)


@router.post("/upgrade", response_model=SubscriptionResponse)
def upgrade(body: UpgradeRequest, service: SubscriptionService = Depends(get_subscription_service)):
    record = unwrap_or_raise(service.upgrade_subscription(body.tier, body.expires_at))
    return _subscription_response(service, record)


@router.get("/history", response_model=List[SubscriptionChangeResponse])
def get_history(service: SubscriptionService = Depends(get_subscription_service)):
    changes = unwrap_or_raise(service.get_subscription_history())
    return [
        SubscriptionChangeResponse(
            old_tier=c.old_tier,
            new_tier=c.new_tier,
            changed_at=c.changed_at,
            expires_at=c.expires_at,
        )
        for c in changes
    ]


@router.get("/usage", response_model=UsageResponse)
def get_usage(service: SubscriptionService = Depends(get_subscription_service)):
    snapshot = unwrap_or_raise(service.get_usage_stats())
    return UsageResponse(
        tier=snapshot.subscription.tier.value,
        tier_limits=_limits_response(snapshot.tier_limits),
        tasks_today=snapshot.tasks_today,
        total_tasks=snapshot.total_tasks,
        completed_tasks=snapshot.completed_tasks,
        failed_tasks=snapshot.failed_tasks,
        running_tasks=snapshot.running_tasks,
        stale=snapshot.stale,
    )


@router.get("/tiers", response_model=List[TierResponse])
def get_tiers(service: SubscriptionService = Depends(get_subscription_service)):
    return [
        TierResponse(
            id=tier.value,
            name=service.catalog.display_name(tier),
            limits=_limits_response(limits),
        )
        for tier, limits in service.get_all_tiers()
    ]


@router.get("/tiers/comparison", response_model=List[TierDescriptorResponse])
def get_tier_comparison(service: SubscriptionService = Depends(get_subscription_service)):
    return [
        TierDescriptorResponse(
            tier=d.tier.value,
            name=d.name,
            price=d.price,
            period=d.period,
            features=list(d.features),
            limitations=list(d.limitations),
            popular=d.popular,
        )
        for d in service.get_tier_comparison()
    ]


@router.get("/tiers/{tier}", response_model=TierResponse)
def get_tier(tier: str, service: SubscriptionService = Depends(get_subscription_service)):
    limits = unwrap_or_raise(service.get_tier_info(tier))
    return TierResponse(
        id=tier,
        name=service.catalog.display_name(Tier(tier)),
        limits=_limits_response(limits),
    )


@router.get("/can-create-task", response_model=CheckResponse)
def can_create_task(service: SubscriptionService = Depends(get_subscription_service)):
    """Server answer decides; the client-side answer is reported alongside."""
    advisory = unwrap_or_raise(service.can_create_task())
    authoritative = service.can_create_task_remote()
    return CheckResponse(allowed=authoritative, advisory=advisory, authoritative=authoritative)


@router.get("/features/{feature}", response_model=CheckResponse)
def has_feature(feature: str, service: SubscriptionService = Depends(get_subscription_service)):
    advisory = unwrap_or_raise(service.has_feature(feature))
    authoritative = service.has_feature_remote(feature)
    return CheckResponse(allowed=authoritative, advisory=advisory, authoritative=authoritative)
