"""Feature gating and limit checks for contractor subscription tiers."""

import logging
import time
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.errors import FeatureLockedError, SubscriptionLimitError
from propertyflow.models.contractor import ContractorProfile, ContractorUsage
from propertyflow.models.enums import SubscriptionTier
from propertyflow.schemas.subscription import FeatureAccessResult, LimitCheckResult, UsageOverview
from propertyflow.services import subscription_tiers as tiers
from propertyflow.services.contractor_notifications import UsageNotifier
from propertyflow.services.usage_tracker import UsageTracker, LIMIT_USAGE_FIELDS, usage_field

logger = logging.getLogger(__name__)

TIER_CACHE_TTL_SECONDS = 5 * 60


class TierCache:
    """Per-process contractor tier cache with a fixed TTL."""

    def __init__(self, ttl_seconds: float = TIER_CACHE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[UUID, tuple[SubscriptionTier, float]] = {}

    def get(self, contractor_id: UUID) -> Optional[SubscriptionTier]:
        entry = self._entries.get(contractor_id)
        if entry is None:
            return None
        tier, stored_at = entry
        if time.monotonic() - stored_at > self.ttl_seconds:
            del self._entries[contractor_id]
            return None
        return tier

    def set(self, contractor_id: UUID, tier: SubscriptionTier) -> None:
        self._entries[contractor_id] = (tier, time.monotonic())

    def invalidate(self, contractor_id: UUID) -> None:
        self._entries.pop(contractor_id, None)

    def clear(self) -> None:
        self._entries.clear()


tier_cache = TierCache()


def build_limit_result(tier: SubscriptionTier, limit_key: str, current: int) -> LimitCheckResult:
    """Evaluate one counter against the tier's limit (pure)."""
    limit = tiers.get_feature_limit(tier, limit_key)
    remaining = tiers.get_remaining_quota(tier, limit_key, current)
    return LimitCheckResult(
        feature=limit_key,
        allowed=tiers.is_within_limit(tier, limit_key, current),
        current=current,
        limit=limit,
        remaining=None if limit == tiers.UNLIMITED else int(remaining),
        percentage=tiers.get_usage_percentage(tier, limit_key, current),
        is_approaching=tiers.is_approaching_limit(tier, limit_key, current),
        is_at_limit=tiers.is_at_limit(tier, limit_key, current),
    )


class FeatureGate:
    """Answers "may this contractor do X?" and raises when they may not."""

    def __init__(
        self,
        db: AsyncSession,
        cache: TierCache = tier_cache,
        tracker: Optional[UsageTracker] = None,
    ):
        self.db = db
        self.cache = cache
        self.notifier = UsageNotifier(db)
        self.tracker = tracker or UsageTracker(db, notifier=self.notifier)

    async def get_tier(self, contractor_id: UUID) -> SubscriptionTier:
        cached = self.cache.get(contractor_id)
        if cached:
            return cached

        result = await self.db.execute(
            select(ContractorProfile.subscription_tier).where(ContractorProfile.id == contractor_id)
        )
        stored = result.scalar_one_or_none()
        if stored is None:
            raise LookupError(f"Contractor not found: {contractor_id}")

        tier = tiers.normalize_tier(stored)
        self.cache.set(contractor_id, tier)
        return tier

    def invalidate(self, contractor_id: UUID) -> None:
        self.cache.invalidate(contractor_id)

    async def can_access_feature(self, contractor_id: UUID, feature: str) -> FeatureAccessResult:
        tier = await self.get_tier(contractor_id)
        if tiers.has_feature_access(tier, feature):
            return FeatureAccessResult(allowed=True, tier=tier, feature=feature)

        required = tiers.get_required_tier(feature)
        if required:
            reason = f"Feature '{feature}' requires {tiers.CONTRACTOR_TIERS[required].name} plan or higher"
        else:
            reason = f"Feature '{feature}' is not available in any plan"
        return FeatureAccessResult(
            allowed=False, tier=tier, feature=feature, required_tier=required, reason=reason
        )

    async def check_limit(self, contractor_id: UUID, limit_key: str) -> LimitCheckResult:
        field = usage_field(limit_key)
        tier = await self.get_tier(contractor_id)
        usage = await self.tracker.get_usage(contractor_id)
        result = build_limit_result(tier, limit_key, getattr(usage, field))

        if result.is_at_limit:
            logger.warning(
                "Limit violation: contractor=%s feature=%s current=%s limit=%s tier=%s",
                contractor_id, limit_key, result.current, result.limit, tier.value,
            )
        return result

    async def check_multiple_limits(
        self,
        contractor_id: UUID,
        limit_keys: list[str],
    ) -> dict[str, LimitCheckResult]:
        tier = await self.get_tier(contractor_id)
        usage = await self.tracker.get_usage(contractor_id)
        return {
            key: build_limit_result(tier, key, getattr(usage, usage_field(key)))
            for key in limit_keys
        }

    async def usage_overview(self, contractor: ContractorProfile) -> UsageOverview:
        tier = await self.get_tier(contractor.id)
        usage: ContractorUsage = await self.tracker.get_usage(contractor.id)
        limits = {
            key: build_limit_result(tier, key, getattr(usage, field))
            for key, field in LIMIT_USAGE_FIELDS.items()
        }
        return UsageOverview(
            contractor_id=contractor.id,
            tier=tier,
            tier_name=tiers.CONTRACTOR_TIERS[tier].name,
            subscription_status=contractor.subscription_status,
            billing_period_end=usage.billing_period_end,
            limits=limits,
            upgrade_tier=tiers.get_upgrade_tier(tier),
        )

    async def enforce_feature(self, contractor_id: UUID, feature: str) -> None:
        """Raise FeatureLockedError unless the tier includes the feature."""
        access = await self.can_access_feature(contractor_id, feature)
        if access.allowed:
            return

        required = access.required_tier or SubscriptionTier.ENTERPRISE
        contractor = await self.db.get(ContractorProfile, contractor_id)
        if contractor:
            await self.notifier.feature_locked(contractor, feature, required)
            # The notification must survive the 403 that follows
            await self.db.commit()
        raise FeatureLockedError(feature, required.value, access.tier.value)

    async def enforce_limit(self, contractor_id: UUID, limit_key: str) -> LimitCheckResult:
        """Raise SubscriptionLimitError when one more item would exceed the limit."""
        result = await self.check_limit(contractor_id, limit_key)
        if not result.allowed:
            tier = await self.get_tier(contractor_id)
            upgrade = tiers.get_upgrade_tier(tier)
            raise SubscriptionLimitError(
                feature=limit_key,
                limit=result.limit,
                current=result.current,
                tier=tier.value,
                upgrade_required=upgrade.value if upgrade else None,
            )
        return result
