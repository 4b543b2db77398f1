"""Contractor usage counters checked against subscription limits.

Counters are maintained incrementally by the operations that create or
retire items (jobs, invoices, customers, ...). After an increment the
threshold notifier decides whether the contractor should hear about it.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.models.contractor import ContractorProfile, ContractorUsage
from propertyflow.services import subscription_tiers as tiers
from propertyflow.services.contractor_notifications import UsageNotifier, feature_display_name

logger = logging.getLogger(__name__)

BILLING_PERIOD_DAYS = 30

# Tier limit key -> ContractorUsage column
LIMIT_USAGE_FIELDS: dict[str, str] = {
    "active_jobs": "active_jobs_count",
    "invoices_per_month": "invoices_this_month",
    "customers": "total_customers",
    "team_members": "team_members_count",
    "inventory_items": "inventory_count",
    "equipment_items": "equipment_count",
    "active_leads": "active_leads_count",
}

# Counters cleared at each billing period rollover
MONTHLY_FIELDS = ("invoices_this_month",)


def usage_field(limit_key: str) -> str:
    try:
        return LIMIT_USAGE_FIELDS[limit_key]
    except KeyError:
        raise ValueError(f"Unknown feature for limit check: {limit_key}")


class UsageTracker:
    """Reads and updates a contractor's usage row."""

    def __init__(self, db: AsyncSession, notifier: Optional[UsageNotifier] = None):
        self.db = db
        self.notifier = notifier or UsageNotifier(db)

    async def get_or_create(self, contractor_id: UUID) -> ContractorUsage:
        """Return the usage row, creating a zeroed one on first use."""
        result = await self.db.execute(
            select(ContractorUsage).where(ContractorUsage.contractor_id == contractor_id)
        )
        usage = result.scalar_one_or_none()
        if usage:
            return usage

        usage = ContractorUsage(
            contractor_id=contractor_id,
            active_jobs_count=0,
            invoices_this_month=0,
            total_customers=0,
            team_members_count=0,
            inventory_count=0,
            equipment_count=0,
            active_leads_count=0,
            billing_period_end=datetime.utcnow() + timedelta(days=BILLING_PERIOD_DAYS),
        )
        self.db.add(usage)
        await self.db.flush()
        logger.info("Created usage tracking record for contractor %s", contractor_id)
        return usage

    async def get_usage(self, contractor_id: UUID) -> ContractorUsage:
        """Usage row with the monthly rollover applied if it is due."""
        usage = await self.get_or_create(contractor_id)
        await self.reset_monthly_if_due(usage)
        return usage

    async def reset_monthly_if_due(
        self,
        usage: ContractorUsage,
        now: Optional[datetime] = None,
    ) -> bool:
        """Reset monthly counters once the billing period has ended.

        The period is the Stripe subscription period when the contractor has
        one, otherwise the usage row's own period.
        """
        now = now or datetime.utcnow()
        contractor = await self.db.get(ContractorProfile, usage.contractor_id)
        period_end = (contractor.subscription_period_end if contractor else None) or usage.billing_period_end
        if period_end > now:
            return False

        summary = _usage_summary(contractor, usage) if contractor else []

        next_end = period_end
        while next_end <= now:
            next_end += timedelta(days=BILLING_PERIOD_DAYS)

        for field in MONTHLY_FIELDS:
            setattr(usage, field, 0)
        usage.last_reset_at = now
        usage.billing_period_end = next_end
        if contractor and contractor.subscription_period_end:
            contractor.subscription_period_end = next_end
        await self.db.flush()

        logger.info("Reset monthly usage for contractor %s", usage.contractor_id)
        if contractor:
            await self.notifier.queue_monthly_summary(contractor, summary, now)
        return True

    async def increment(self, contractor_id: UUID, limit_key: str, amount: int = 1) -> int:
        """Increase a counter and notify on threshold crossings. Returns the new value."""
        field = usage_field(limit_key)
        usage = await self.get_usage(contractor_id)
        new_value = getattr(usage, field) + amount
        setattr(usage, field, new_value)
        await self.db.flush()

        await self.notifier.check_threshold(contractor_id, limit_key, new_value)
        return new_value

    async def decrement(self, contractor_id: UUID, limit_key: str, amount: int = 1) -> int:
        """Decrease a counter, never below zero."""
        field = usage_field(limit_key)
        usage = await self.get_or_create(contractor_id)
        new_value = max(0, getattr(usage, field) - amount)
        setattr(usage, field, new_value)
        await self.db.flush()
        return new_value


def _usage_summary(contractor: ContractorProfile, usage: ContractorUsage) -> list[dict]:
    tier = tiers.normalize_tier(contractor.subscription_tier)
    rows = []
    for limit_key, field in LIMIT_USAGE_FIELDS.items():
        limit = tiers.get_feature_limit(tier, limit_key)
        if limit == 0:
            continue
        rows.append({
            "name": feature_display_name(limit_key),
            "current": getattr(usage, field),
            "limit": tiers.format_limit(limit),
        })
    return rows
