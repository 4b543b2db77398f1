"""Contractor subscription and usage schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, field_validator

from propertyflow.schemas.base import BaseSchema
from propertyflow.models.enums import SubscriptionTier, NotificationType
from propertyflow.services.subscription_tiers import LEGACY_TIER_NAMES


class FeatureAccessResult(BaseSchema):
    allowed: bool
    tier: SubscriptionTier
    feature: str
    required_tier: Optional[SubscriptionTier] = None
    reason: Optional[str] = None


class LimitCheckResult(BaseSchema):
    """Where a contractor stands against one quantity limit.

    limit is -1 and remaining is None when unlimited.
    """

    feature: str
    allowed: bool
    current: int
    limit: int
    remaining: Optional[int] = None
    percentage: int
    is_approaching: bool
    is_at_limit: bool


class UsageOverview(BaseSchema):
    contractor_id: UUID
    tier: SubscriptionTier
    tier_name: str
    subscription_status: str
    billing_period_end: datetime
    limits: dict[str, LimitCheckResult]
    upgrade_tier: Optional[SubscriptionTier] = None


class CheckLimitRequest(BaseSchema):
    feature: str = Field(..., min_length=1, max_length=50)


class UpgradeRequest(BaseSchema):
    tier: SubscriptionTier

    @field_validator("tier", mode="before")
    @classmethod
    def normalize_legacy_names(cls, value):
        if isinstance(value, str) and value.lower() in LEGACY_TIER_NAMES:
            return LEGACY_TIER_NAMES[value.lower()]
        return value


class UpgradeResponse(BaseSchema):
    tier: SubscriptionTier
    checkout_url: str
    checkout_session_id: str
    price_difference_cents: int
    new_features: list[str]


class TierComparisonResponse(BaseSchema):
    current_tier: SubscriptionTier
    tiers: list[dict]


class NotificationResponse(BaseSchema):
    id: UUID
    type: NotificationType
    title: str
    message: str
    action_url: Optional[str] = None
    feature: Optional[str] = None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseSchema):
    notifications: list[NotificationResponse]
    unread_count: int
