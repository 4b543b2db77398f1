"""Subscription-related notifications for contractors.

Covers usage thresholds (80% warning, 100% reached), locked-feature
attempts, upgrades and the monthly usage summary. Each creates an in-app
notification and queues the matching email.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.errors import SUBSCRIPTION_SETTINGS_URL
from propertyflow.models.contractor import ContractorProfile
from propertyflow.models.enums import NotificationType, SubscriptionTier
from propertyflow.services import subscription_tiers as tiers
from propertyflow.services.jobs import JobsService
from propertyflow.services.notifications import NotificationService

logger = logging.getLogger(__name__)

DEDUPE_HOURS = 24

FEATURE_DISPLAY_NAMES = {
    "active_jobs": "Active Jobs",
    "invoices_per_month": "Monthly Invoices",
    "customers": "Customers",
    "team_members": "Team Members",
    "inventory_items": "Inventory Items",
    "equipment_items": "Equipment Items",
    "active_leads": "Active Leads",
    "team_management": "Team Management",
    "crm": "CRM Features",
    "lead_management": "Lead Management",
    "inventory": "Inventory Management",
    "equipment": "Equipment Management",
    "marketing": "Marketing Features",
    "advanced_analytics": "Advanced Analytics",
    "api_access": "API Access",
}


def feature_display_name(feature: str) -> str:
    return FEATURE_DISPLAY_NAMES.get(feature) or feature.replace("_", " ").title()


class UsageNotifier:
    """Creates contractor notifications and queues their emails."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.notifications = NotificationService(db)
        self.jobs = JobsService(db)

    async def check_threshold(self, contractor_id: UUID, limit_key: str, current: int) -> None:
        """Notify when usage crosses 80% or 100% of a limit.

        The same notification type for the same feature is sent at most once
        per 24 hours. Errors are logged and never propagate to the caller's
        operation. The writes run in a savepoint, so a failure here leaves the
        caller's own changes intact.
        """
        try:
            async with self.db.begin_nested():
                contractor = await self.db.get(ContractorProfile, contractor_id)
                if not contractor:
                    logger.error("Contractor not found: %s", contractor_id)
                    return

                tier = tiers.normalize_tier(contractor.subscription_tier)
                limit = tiers.get_feature_limit(tier, limit_key)
                if limit in (tiers.UNLIMITED, 0):
                    return

                percentage = tiers.get_usage_percentage(tier, limit_key, current)
                if current >= limit:
                    notification_type = NotificationType.LIMIT_REACHED
                elif tiers.is_approaching_limit(tier, limit_key, current):
                    notification_type = NotificationType.LIMIT_WARNING
                else:
                    return

                if await self.notifications.sent_within(
                    contractor.user_id, notification_type, limit_key, DEDUPE_HOURS
                ):
                    logger.debug("Skipping duplicate %s for %s at %s%%", notification_type.value, limit_key, percentage)
                    return

                name = feature_display_name(limit_key)
                tier_name = tiers.CONTRACTOR_TIERS[tier].name
                if notification_type == NotificationType.LIMIT_REACHED:
                    title = f"{name} limit reached"
                    message = f"You've reached your limit of {limit} {name.lower()}. Upgrade now to continue."
                    template = "usage_limit_reached"
                else:
                    title = f"Approaching your {name} limit"
                    message = (
                        f"You're using {current} of {limit} {name.lower()} ({percentage}%). "
                        "Consider upgrading to avoid interruptions."
                    )
                    template = "usage_warning"

                await self.notifications.create(
                    user_id=contractor.user_id,
                    type=notification_type,
                    title=title,
                    message=message,
                    action_url=SUBSCRIPTION_SETTINGS_URL,
                    feature=limit_key,
                    meta={"current": current, "limit": limit, "percentage": percentage, "tier": tier.value},
                )
                await self.jobs.enqueue_email(
                    template=template,
                    to=contractor.email,
                    context={
                        "business_name": contractor.business_name,
                        "feature_name": name,
                        "current": current,
                        "limit": limit,
                        "percentage": percentage,
                        "tier_name": tier_name,
                        "upgrade_url": SUBSCRIPTION_SETTINGS_URL,
                    },
                    scope=f"{contractor.id}:{limit_key}:{datetime.utcnow():%Y%m%d%H}",
                )
        except Exception:
            logger.exception("Usage threshold check failed for contractor %s", contractor_id)

    async def feature_locked(
        self,
        contractor: ContractorProfile,
        feature: str,
        required_tier: SubscriptionTier,
    ) -> None:
        """Record a blocked attempt at a feature outside the tier."""
        if await self.notifications.sent_within(
            contractor.user_id, NotificationType.FEATURE_LOCKED, feature, DEDUPE_HOURS
        ):
            return
        name = feature_display_name(feature)
        tier_name = tiers.CONTRACTOR_TIERS[required_tier].name
        await self.notifications.create(
            user_id=contractor.user_id,
            type=NotificationType.FEATURE_LOCKED,
            title=f"{name} is a {tier_name} feature",
            message=f"{name} is available on the {tier_name} plan. Upgrade to unlock this feature.",
            action_url=SUBSCRIPTION_SETTINGS_URL,
            feature=feature,
            meta={"required_tier": required_tier.value},
        )

    async def upgrade_success(
        self,
        contractor: ContractorProfile,
        new_tier: SubscriptionTier,
        previous_tier: Optional[SubscriptionTier] = None,
    ) -> None:
        tier_name = tiers.CONTRACTOR_TIERS[new_tier].name
        new_features = (
            tiers.get_upgrade_features(previous_tier, new_tier) if previous_tier else []
        )
        await self.notifications.create(
            user_id=contractor.user_id,
            type=NotificationType.UPGRADE_SUCCESS,
            title="Subscription upgraded",
            message=f"Welcome to {tier_name}! All your new features are now active.",
            action_url="/contractor/dashboard",
            feature="subscription",
            meta={"new_tier": new_tier.value},
        )
        await self.jobs.enqueue_email(
            template="subscription_upgraded",
            to=contractor.email,
            context={
                "business_name": contractor.business_name,
                "tier_name": tier_name,
                "new_features": [feature_display_name(f) for f in new_features],
            },
            scope=f"{contractor.id}:{new_tier.value}:{datetime.utcnow():%Y%m%d%H%M}",
        )

    async def queue_monthly_summary(
        self,
        contractor: ContractorProfile,
        usage_rows: list[dict],
        period_end: datetime,
    ) -> None:
        tier = tiers.normalize_tier(contractor.subscription_tier)
        await self.jobs.enqueue_email(
            template="monthly_summary",
            to=contractor.email,
            context={
                "business_name": contractor.business_name,
                "tier_name": tiers.CONTRACTOR_TIERS[tier].name,
                "usage": usage_rows,
            },
            scope=f"{contractor.id}:{period_end:%Y%m%d}",
        )
