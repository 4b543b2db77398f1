"""Tests for feature gating, usage counters and threshold notifications."""

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from propertyflow.core.errors import FeatureLockedError, SubscriptionLimitError
from propertyflow.models import ContractorUsage, JobsOutbox, Notification
from propertyflow.models.enums import NotificationType, SubscriptionTier
from propertyflow.services.feature_gate import FeatureGate, TierCache, build_limit_result
from propertyflow.services.usage_tracker import UsageTracker, usage_field

from conftest import create_contractor


async def _notifications(db, user_id):
    result = await db.execute(
        select(Notification).where(Notification.user_id == user_id).order_by(Notification.created_at)
    )
    return list(result.scalars().all())


async def _email_jobs(db, template):
    result = await db.execute(select(JobsOutbox).where(JobsOutbox.unique_scope.like(f"send_email:{template}:%")))
    return list(result.scalars().all())


class TestBuildLimitResult:
    """Pure evaluation of one counter."""

    def test_under_limit(self):
        result = build_limit_result(SubscriptionTier.STARTER, "active_jobs", 5)
        assert result.allowed
        assert result.limit == 15
        assert result.remaining == 10
        assert result.percentage == 33
        assert not result.is_approaching

    def test_at_limit(self):
        result = build_limit_result(SubscriptionTier.STARTER, "active_jobs", 15)
        assert not result.allowed
        assert result.remaining == 0
        assert result.is_at_limit

    def test_unlimited_has_no_remaining(self):
        result = build_limit_result(SubscriptionTier.ENTERPRISE, "active_jobs", 500)
        assert result.allowed
        assert result.remaining is None
        assert result.percentage == 0


def test_usage_field_rejects_unknown_key():
    assert usage_field("customers") == "total_customers"
    with pytest.raises(ValueError):
        usage_field("rockets")


def test_tier_cache_expires():
    cache = TierCache(ttl_seconds=-1)
    contractor_id = uuid.uuid4()
    cache.set(contractor_id, SubscriptionTier.PRO)
    assert cache.get(contractor_id) is None


class TestFeatureGate:
    """Tier lookups, access checks and enforcement."""

    async def test_get_tier_unknown_contractor(self, db_session):
        with pytest.raises(LookupError):
            await FeatureGate(db_session).get_tier(uuid.uuid4())

    async def test_get_tier_is_cached(self, db_session):
        _, contractor = await create_contractor(db_session, SubscriptionTier.PRO)
        cache = TierCache()
        gate = FeatureGate(db_session, cache=cache)
        assert await gate.get_tier(contractor.id) == SubscriptionTier.PRO

        contractor.subscription_tier = SubscriptionTier.ENTERPRISE
        await db_session.flush()
        assert await gate.get_tier(contractor.id) == SubscriptionTier.PRO

        gate.invalidate(contractor.id)
        assert await gate.get_tier(contractor.id) == SubscriptionTier.ENTERPRISE

    async def test_can_access_feature(self, db_session):
        _, contractor = await create_contractor(db_session)
        gate = FeatureGate(db_session)

        allowed = await gate.can_access_feature(contractor.id, "basic_invoicing")
        assert allowed.allowed

        locked = await gate.can_access_feature(contractor.id, "inventory")
        assert not locked.allowed
        assert locked.required_tier == SubscriptionTier.PRO
        assert "Pro" in locked.reason

    async def test_enforce_feature_records_notification(self, db_session):
        user, contractor = await create_contractor(db_session)
        gate = FeatureGate(db_session)

        with pytest.raises(FeatureLockedError) as exc_info:
            await gate.enforce_feature(contractor.id, "team_management")

        assert exc_info.value.required_tier == "pro"
        assert exc_info.value.current_tier == "starter"
        body = exc_info.value.to_dict()
        assert body["error"] == "FEATURE_LOCKED"
        assert body["upgrade_url"] == "/contractor/settings/subscription"

        notifications = await _notifications(db_session, user.id)
        assert [n.type for n in notifications] == [NotificationType.FEATURE_LOCKED]

        # A second attempt within 24 hours does not add another
        with pytest.raises(FeatureLockedError):
            await gate.enforce_feature(contractor.id, "team_management")
        assert len(await _notifications(db_session, user.id)) == 1

    async def test_enforce_limit(self, db_session):
        _, contractor = await create_contractor(db_session, active_jobs_count=15)
        gate = FeatureGate(db_session)

        with pytest.raises(SubscriptionLimitError) as exc_info:
            await gate.enforce_limit(contractor.id, "active_jobs")

        error = exc_info.value
        assert error.current == 15
        assert error.limit == 15
        assert error.tier == "starter"
        assert error.upgrade_required == "pro"
        assert error.to_dict()["error"] == "SUBSCRIPTION_LIMIT_REACHED"

    async def test_enforce_limit_allows_under_limit(self, db_session):
        _, contractor = await create_contractor(db_session, SubscriptionTier.PRO, active_jobs_count=15)
        result = await FeatureGate(db_session).enforce_limit(contractor.id, "active_jobs")
        assert result.allowed
        assert result.remaining == 35

    async def test_enterprise_limit_has_no_upgrade(self, db_session):
        _, contractor = await create_contractor(db_session, SubscriptionTier.ENTERPRISE, total_customers=10_000)
        result = await FeatureGate(db_session).enforce_limit(contractor.id, "customers")
        assert result.allowed

    async def test_check_multiple_limits(self, db_session):
        _, contractor = await create_contractor(db_session, active_jobs_count=3, total_customers=50)
        results = await FeatureGate(db_session).check_multiple_limits(
            contractor.id, ["active_jobs", "customers"]
        )
        assert results["active_jobs"].allowed
        assert not results["customers"].allowed

    async def test_usage_overview(self, db_session):
        _, contractor = await create_contractor(db_session, invoices_this_month=16)
        overview = await FeatureGate(db_session).usage_overview(contractor)

        assert overview.tier == SubscriptionTier.STARTER
        assert overview.tier_name == "Starter"
        assert overview.upgrade_tier == SubscriptionTier.PRO
        assert set(overview.limits) == {
            "active_jobs", "invoices_per_month", "customers", "team_members",
            "inventory_items", "equipment_items", "active_leads",
        }
        assert overview.limits["invoices_per_month"].is_approaching


class TestUsageTracker:
    """Counter updates and the monthly rollover."""

    async def test_get_or_create_starts_at_zero(self, db_session):
        _, contractor = await create_contractor(db_session)
        await db_session.delete(
            (await db_session.execute(
                select(ContractorUsage).where(ContractorUsage.contractor_id == contractor.id)
            )).scalar_one()
        )
        await db_session.flush()

        usage = await UsageTracker(db_session).get_or_create(contractor.id)
        assert usage.active_jobs_count == 0
        assert usage.billing_period_end > datetime.utcnow()

    async def test_increment_and_decrement(self, db_session):
        _, contractor = await create_contractor(db_session)
        tracker = UsageTracker(db_session)

        assert await tracker.increment(contractor.id, "customers") == 1
        assert await tracker.increment(contractor.id, "customers", 2) == 3
        assert await tracker.decrement(contractor.id, "customers") == 2
        assert await tracker.decrement(contractor.id, "customers", 10) == 0

    async def test_monthly_reset(self, db_session):
        _, contractor = await create_contractor(db_session, invoices_this_month=19, total_customers=7)
        tracker = UsageTracker(db_session)
        usage = await tracker.get_or_create(contractor.id)
        usage.billing_period_end = datetime.utcnow() - timedelta(days=1)
        await db_session.flush()

        usage = await tracker.get_usage(contractor.id)

        assert usage.invoices_this_month == 0
        assert usage.total_customers == 7
        assert usage.last_reset_at is not None
        assert usage.billing_period_end > datetime.utcnow()
        assert len(await _email_jobs(db_session, "monthly_summary")) == 1

    async def test_reset_follows_subscription_period(self, db_session):
        _, contractor = await create_contractor(db_session, invoices_this_month=20)
        period_end = datetime.utcnow() - timedelta(days=1)
        contractor.subscription_period_end = period_end
        await db_session.flush()
        tracker = UsageTracker(db_session)

        usage = await tracker.get_usage(contractor.id)

        assert usage.invoices_this_month == 0
        assert contractor.subscription_period_end == period_end + timedelta(days=30)
        assert usage.billing_period_end == contractor.subscription_period_end

    async def test_subscription_period_still_open(self, db_session):
        _, contractor = await create_contractor(db_session, invoices_this_month=20)
        contractor.subscription_period_end = datetime.utcnow() + timedelta(days=5)
        tracker = UsageTracker(db_session)
        usage = await tracker.get_or_create(contractor.id)
        usage.billing_period_end = datetime.utcnow() - timedelta(days=1)
        await db_session.flush()

        assert not await tracker.reset_monthly_if_due(usage)
        assert usage.invoices_this_month == 20

    async def test_no_reset_before_period_end(self, db_session):
        _, contractor = await create_contractor(db_session, invoices_this_month=4)
        tracker = UsageTracker(db_session)
        usage = await tracker.get_or_create(contractor.id)
        assert not await tracker.reset_monthly_if_due(usage)
        assert usage.invoices_this_month == 4


class TestThresholdNotifications:
    """Warnings at 80% and 100% of a limit."""

    async def test_warning_at_eighty_percent(self, db_session):
        user, contractor = await create_contractor(db_session, active_jobs_count=11)
        await UsageTracker(db_session).increment(contractor.id, "active_jobs")

        notifications = await _notifications(db_session, user.id)
        assert [n.type for n in notifications] == [NotificationType.LIMIT_WARNING]
        assert notifications[0].feature == "active_jobs"
        assert notifications[0].meta["percentage"] == 80
        assert len(await _email_jobs(db_session, "usage_warning")) == 1

    async def test_limit_reached(self, db_session):
        user, contractor = await create_contractor(db_session, invoices_this_month=19)
        await UsageTracker(db_session).increment(contractor.id, "invoices_per_month")

        notifications = await _notifications(db_session, user.id)
        assert [n.type for n in notifications] == [NotificationType.LIMIT_REACHED]
        assert len(await _email_jobs(db_session, "usage_limit_reached")) == 1

    async def test_duplicate_warning_suppressed(self, db_session):
        user, contractor = await create_contractor(db_session, active_jobs_count=11)
        tracker = UsageTracker(db_session)
        await tracker.increment(contractor.id, "active_jobs")
        await tracker.increment(contractor.id, "active_jobs")

        notifications = await _notifications(db_session, user.id)
        assert len(notifications) == 1

    async def test_below_threshold_is_silent(self, db_session):
        user, contractor = await create_contractor(db_session)
        await UsageTracker(db_session).increment(contractor.id, "active_jobs")
        assert await _notifications(db_session, user.id) == []

    async def test_unlimited_is_silent(self, db_session):
        user, contractor = await create_contractor(
            db_session, SubscriptionTier.ENTERPRISE, active_jobs_count=10_000
        )
        await UsageTracker(db_session).increment(contractor.id, "active_jobs")
        assert await _notifications(db_session, user.id) == []
