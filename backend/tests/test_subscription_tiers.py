"""Tests for the contractor tier catalogue and limit arithmetic."""

import math

import pytest

from propertyflow.models.enums import SubscriptionTier
from propertyflow.services.subscription_tiers import (
    CONTRACTOR_TIERS,
    compare_tiers,
    format_limit,
    get_downgrade_features,
    get_downgrade_tier,
    get_feature_limit,
    get_price_difference_cents,
    get_remaining_quota,
    get_required_tier,
    get_upgrade_features,
    get_upgrade_tier,
    get_usage_percentage,
    has_feature_access,
    is_approaching_limit,
    is_at_limit,
    is_within_limit,
    normalize_tier,
    tier_comparison,
)

STARTER = SubscriptionTier.STARTER
PRO = SubscriptionTier.PRO
ENTERPRISE = SubscriptionTier.ENTERPRISE


class TestCatalogue:
    """Prices and limits of the three tiers."""

    def test_prices(self):
        assert CONTRACTOR_TIERS[STARTER].price_cents == 1999
        assert CONTRACTOR_TIERS[PRO].price_cents == 3999
        assert CONTRACTOR_TIERS[ENTERPRISE].price_cents == 7999

    def test_starter_limits(self):
        assert get_feature_limit(STARTER, "active_jobs") == 15
        assert get_feature_limit(STARTER, "invoices_per_month") == 20
        assert get_feature_limit(STARTER, "customers") == 50
        assert get_feature_limit(STARTER, "team_members") == 0

    def test_pro_limits(self):
        assert get_feature_limit(PRO, "active_jobs") == 50
        assert get_feature_limit(PRO, "invoices_per_month") == -1
        assert get_feature_limit(PRO, "team_members") == 6
        assert get_feature_limit(PRO, "inventory_items") == 200

    def test_enterprise_is_unlimited(self):
        assert all(value == -1 for value in CONTRACTOR_TIERS[ENTERPRISE].limits.values())

    def test_unknown_limit_key(self):
        with pytest.raises(ValueError):
            get_feature_limit(PRO, "spaceships")

    def test_higher_tiers_include_lower_features(self):
        assert CONTRACTOR_TIERS[STARTER].features <= CONTRACTOR_TIERS[PRO].features
        assert CONTRACTOR_TIERS[PRO].features <= CONTRACTOR_TIERS[ENTERPRISE].features


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("free", STARTER),
        ("basic", STARTER),
        ("growth", PRO),
        ("Professional", PRO),
        ("business", ENTERPRISE),
        (" enterprise ", ENTERPRISE),
        ("platinum", STARTER),
        (None, STARTER),
        (PRO, PRO),
    ],
)
def test_normalize_tier(raw, expected):
    assert normalize_tier(raw) == expected


def test_compare_tiers():
    assert compare_tiers(STARTER, PRO) < 0
    assert compare_tiers(ENTERPRISE, PRO) > 0
    assert compare_tiers(PRO, PRO) == 0


def test_required_tier_is_lowest_including_feature():
    assert get_required_tier("basic_invoicing") == STARTER
    assert get_required_tier("team_management") == PRO
    assert get_required_tier("api_access") == ENTERPRISE
    assert get_required_tier("time_travel") is None


def test_feature_access():
    assert not has_feature_access(STARTER, "inventory")
    assert has_feature_access(PRO, "inventory")
    assert has_feature_access(ENTERPRISE, "inventory")


class TestLimitChecks:
    """Quota arithmetic against a tier's limits."""

    def test_within_limit(self):
        assert is_within_limit(STARTER, "active_jobs", 14)
        assert not is_within_limit(STARTER, "active_jobs", 15)
        assert is_within_limit(ENTERPRISE, "active_jobs", 10_000)

    def test_zero_limit_never_within(self):
        assert not is_within_limit(STARTER, "team_members", 0)

    def test_remaining_quota(self):
        assert get_remaining_quota(STARTER, "customers", 45) == 5
        assert get_remaining_quota(STARTER, "customers", 60) == 0
        assert get_remaining_quota(ENTERPRISE, "customers", 60) == math.inf

    def test_approaching_limit_at_eighty_percent(self):
        assert not is_approaching_limit(STARTER, "active_jobs", 11)
        assert is_approaching_limit(STARTER, "active_jobs", 12)
        assert not is_approaching_limit(STARTER, "team_members", 5)
        assert not is_approaching_limit(ENTERPRISE, "active_jobs", 1_000_000)

    def test_at_limit(self):
        assert is_at_limit(STARTER, "invoices_per_month", 20)
        assert not is_at_limit(STARTER, "invoices_per_month", 19)
        assert not is_at_limit(PRO, "invoices_per_month", 500)

    def test_usage_percentage(self):
        assert get_usage_percentage(STARTER, "active_jobs", 3) == 20
        # 1/15 = 6.67%
        assert get_usage_percentage(STARTER, "active_jobs", 1) == 7
        # 2.5% rounds half up
        assert get_usage_percentage(PRO, "inventory_items", 5) == 3
        assert get_usage_percentage(STARTER, "active_jobs", 40) == 100
        assert get_usage_percentage(STARTER, "team_members", 0) == 100
        assert get_usage_percentage(ENTERPRISE, "active_jobs", 40) == 0


class TestTierMovement:
    """Upgrade and downgrade paths."""

    def test_upgrade_path(self):
        assert get_upgrade_tier(STARTER) == PRO
        assert get_upgrade_tier(PRO) == ENTERPRISE
        assert get_upgrade_tier(ENTERPRISE) is None

    def test_downgrade_path(self):
        assert get_downgrade_tier(ENTERPRISE) == PRO
        assert get_downgrade_tier(PRO) == STARTER
        assert get_downgrade_tier(STARTER) is None

    def test_upgrade_features(self):
        gained = get_upgrade_features(STARTER, PRO)
        assert "team_management" in gained
        assert "basic_invoicing" not in gained
        assert gained == sorted(gained)

    def test_downgrade_features(self):
        lost = get_downgrade_features(ENTERPRISE, PRO)
        assert "api_access" in lost
        assert "inventory" not in lost

    def test_price_difference(self):
        assert get_price_difference_cents(STARTER, PRO) == 2000
        assert get_price_difference_cents(ENTERPRISE, STARTER) == -6000


@pytest.mark.parametrize(
    "limit,expected",
    [(-1, "Unlimited"), (0, "Not available"), (15, "15"), (1000, "1,000")],
)
def test_format_limit(limit, expected):
    assert format_limit(limit) == expected


def test_tier_comparison_rows():
    rows = tier_comparison()
    assert [row["tier"] for row in rows] == ["starter", "pro", "enterprise"]
    assert rows[0]["limits"]["team_members"] == "Not available"
    assert rows[2]["limits"]["active_jobs"] == "Unlimited"
