"""Contractor subscription tiers: prices, quantity limits and feature flags.

Tiers are ordered starter < pro < enterprise. A limit of -1 means unlimited,
0 means the capability is not part of the tier.
"""

import math
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from propertyflow.models.enums import SubscriptionTier

UNLIMITED = -1
APPROACHING_THRESHOLD = 0.8

TIER_ORDER: dict[SubscriptionTier, int] = {
    SubscriptionTier.STARTER: 1,
    SubscriptionTier.PRO: 2,
    SubscriptionTier.ENTERPRISE: 3,
}

# Legacy plan names still present on older accounts and Stripe metadata
LEGACY_TIER_NAMES: dict[str, SubscriptionTier] = {
    "free": SubscriptionTier.STARTER,
    "basic": SubscriptionTier.STARTER,
    "starter": SubscriptionTier.STARTER,
    "growth": SubscriptionTier.PRO,
    "professional": SubscriptionTier.PRO,
    "pro": SubscriptionTier.PRO,
    "business": SubscriptionTier.ENTERPRISE,
    "enterprise": SubscriptionTier.ENTERPRISE,
}

# Quantity limits tracked by the usage counters
LIMIT_KEYS = (
    "active_jobs",
    "invoices_per_month",
    "customers",
    "team_members",
    "inventory_items",
    "equipment_items",
    "active_leads",
)

STARTER_FEATURES = frozenset({
    "basic_job_management",
    "basic_invoicing",
    "basic_customers",
    "mobile_app",
    "email_support",
    "work_orders",
    "payment_processing",
    "simple_calendar",
    "basic_expense_tracking",
    "basic_reports",
})

PRO_FEATURES = STARTER_FEATURES | frozenset({
    "advanced_job_management",
    "job_templates",
    "custom_fields",
    "advanced_invoicing",
    "recurring_invoices",
    "unlimited_invoices",
    "customer_portal",
    "customer_tags",
    "communication_history",
    "team_management",
    "team_chat",
    "role_permissions",
    "scheduling",
    "time_tracking",
    "timesheets",
    "crm",
    "lead_management",
    "inventory",
    "equipment",
    "marketing",
    "referral_program",
    "review_management",
    "standard_reports",
    "advanced_expense_tracking",
    "phone_support",
    "priority_support",
    "quickbooks_integration",
})

ENTERPRISE_FEATURES = PRO_FEATURES | frozenset({
    "unlimited_jobs",
    "unlimited_customers",
    "unlimited_team",
    "advanced_team_features",
    "advanced_crm",
    "advanced_lead_management",
    "advanced_inventory",
    "advanced_equipment",
    "advanced_marketing",
    "advanced_analytics",
    "custom_dashboards",
    "forecasting",
    "api_access",
    "webhooks",
    "zapier_integration",
    "account_manager",
    "white_label",
    "custom_branding",
    "payroll_integration",
    "multi_location_inventory",
    "gps_tracking",
    "route_optimization",
    "email_marketing",
    "sms_marketing",
    "shift_management",
    "performance_tracking",
    "team_analytics",
    "automated_workflows",
    "custom_integrations",
    "dedicated_support",
    "onboarding_assistance",
    "training_sessions",
})

ALL_FEATURES = ENTERPRISE_FEATURES


class TierConfig(BaseModel):
    """Static definition of one subscription tier."""

    model_config = ConfigDict(frozen=True)

    tier: SubscriptionTier
    name: str
    price_cents: int
    trial_days: int
    storage_gb: int
    job_photos: int
    quote_templates: int
    limits: dict[str, int]
    features: frozenset[str]
    description: str


CONTRACTOR_TIERS: dict[SubscriptionTier, TierConfig] = {
    SubscriptionTier.STARTER: TierConfig(
        tier=SubscriptionTier.STARTER,
        name="Starter",
        price_cents=1999,
        trial_days=7,
        storage_gb=1,
        job_photos=5,
        quote_templates=3,
        limits={
            "active_jobs": 15,
            "invoices_per_month": 20,
            "customers": 50,
            "team_members": 0,
            "inventory_items": 0,
            "equipment_items": 0,
            "active_leads": 0,
        },
        features=STARTER_FEATURES,
        description="Perfect for solo contractors and very small operations",
    ),
    SubscriptionTier.PRO: TierConfig(
        tier=SubscriptionTier.PRO,
        name="Pro",
        price_cents=3999,
        trial_days=7,
        storage_gb=10,
        job_photos=20,
        quote_templates=UNLIMITED,
        limits={
            "active_jobs": 50,
            "invoices_per_month": UNLIMITED,
            "customers": 500,
            "team_members": 6,
            "inventory_items": 200,
            "equipment_items": 20,
            "active_leads": 100,
        },
        features=PRO_FEATURES,
        description="Everything you need for growing contractor businesses with teams",
    ),
    SubscriptionTier.ENTERPRISE: TierConfig(
        tier=SubscriptionTier.ENTERPRISE,
        name="Enterprise",
        price_cents=7999,
        trial_days=7,
        storage_gb=100,
        job_photos=UNLIMITED,
        quote_templates=UNLIMITED,
        limits={key: UNLIMITED for key in LIMIT_KEYS},
        features=ENTERPRISE_FEATURES,
        description="Unlimited everything with full business operations suite",
    ),
}


def normalize_tier(tier: Union[str, SubscriptionTier, None]) -> SubscriptionTier:
    """Map a stored or legacy tier name onto a current tier (default starter)."""
    if not tier:
        return SubscriptionTier.STARTER
    if isinstance(tier, SubscriptionTier):
        return tier
    return LEGACY_TIER_NAMES.get(str(tier).strip().lower(), SubscriptionTier.STARTER)


def get_tier_config(tier: Union[str, SubscriptionTier, None]) -> TierConfig:
    return CONTRACTOR_TIERS[normalize_tier(tier)]


def compare_tiers(tier1: SubscriptionTier, tier2: SubscriptionTier) -> int:
    """Negative if tier1 < tier2, zero if equal, positive if tier1 > tier2."""
    return TIER_ORDER[tier1] - TIER_ORDER[tier2]


def is_higher_tier(tier1: SubscriptionTier, tier2: SubscriptionTier) -> bool:
    return compare_tiers(tier1, tier2) > 0


def get_required_tier(feature: str) -> Optional[SubscriptionTier]:
    """Lowest tier that includes the feature, or None if no tier does."""
    for tier in sorted(CONTRACTOR_TIERS, key=TIER_ORDER.get):
        if feature in CONTRACTOR_TIERS[tier].features:
            return tier
    return None


def has_feature_access(tier: SubscriptionTier, feature: str) -> bool:
    return feature in CONTRACTOR_TIERS[tier].features


def get_feature_limit(tier: SubscriptionTier, limit_key: str) -> int:
    """Limit for a quantity; -1 unlimited, 0 not available."""
    try:
        return CONTRACTOR_TIERS[tier].limits[limit_key]
    except KeyError:
        raise ValueError(f"Unknown limit: {limit_key}")


def is_within_limit(tier: SubscriptionTier, limit_key: str, current: int) -> bool:
    """True while one more item may be created."""
    limit = get_feature_limit(tier, limit_key)
    if limit == UNLIMITED:
        return True
    return current < limit


def get_remaining_quota(tier: SubscriptionTier, limit_key: str, current: int) -> float:
    """Items left before the limit; math.inf when unlimited."""
    limit = get_feature_limit(tier, limit_key)
    if limit == UNLIMITED:
        return math.inf
    return max(0, limit - current)


def is_approaching_limit(tier: SubscriptionTier, limit_key: str, current: int) -> bool:
    limit = get_feature_limit(tier, limit_key)
    if limit == UNLIMITED or limit == 0:
        return False
    return current >= limit * APPROACHING_THRESHOLD


def is_at_limit(tier: SubscriptionTier, limit_key: str, current: int) -> bool:
    limit = get_feature_limit(tier, limit_key)
    if limit == UNLIMITED:
        return False
    return current >= limit


def get_usage_percentage(tier: SubscriptionTier, limit_key: str, current: int) -> int:
    """Integer percentage capped at 100; 0 when unlimited, 100 when unavailable."""
    limit = get_feature_limit(tier, limit_key)
    if limit == UNLIMITED:
        return 0
    if limit == 0:
        return 100
    # Half-up rounding, independent of banker's rounding in round()
    return min(100, int(math.floor(current / limit * 100 + 0.5)))


def get_upgrade_tier(tier: SubscriptionTier) -> Optional[SubscriptionTier]:
    if tier == SubscriptionTier.STARTER:
        return SubscriptionTier.PRO
    if tier == SubscriptionTier.PRO:
        return SubscriptionTier.ENTERPRISE
    return None


def get_downgrade_tier(tier: SubscriptionTier) -> Optional[SubscriptionTier]:
    if tier == SubscriptionTier.ENTERPRISE:
        return SubscriptionTier.PRO
    if tier == SubscriptionTier.PRO:
        return SubscriptionTier.STARTER
    return None


def get_upgrade_features(current: SubscriptionTier, target: SubscriptionTier) -> list[str]:
    """Features gained by moving from current to target."""
    return sorted(CONTRACTOR_TIERS[target].features - CONTRACTOR_TIERS[current].features)


def get_downgrade_features(current: SubscriptionTier, target: SubscriptionTier) -> list[str]:
    """Features lost by moving from current to target."""
    return sorted(CONTRACTOR_TIERS[current].features - CONTRACTOR_TIERS[target].features)


def get_price_difference_cents(current: SubscriptionTier, target: SubscriptionTier) -> int:
    return CONTRACTOR_TIERS[target].price_cents - CONTRACTOR_TIERS[current].price_cents


def format_limit(limit: int) -> str:
    if limit == UNLIMITED:
        return "Unlimited"
    if limit == 0:
        return "Not available"
    return f"{limit:,}"


def tier_comparison() -> list[dict]:
    """Rows for the pricing/comparison table."""
    rows = []
    for tier in sorted(CONTRACTOR_TIERS, key=TIER_ORDER.get):
        config = CONTRACTOR_TIERS[tier]
        rows.append({
            "tier": tier.value,
            "name": config.name,
            "price_cents": config.price_cents,
            "trial_days": config.trial_days,
            "description": config.description,
            "limits": {key: format_limit(value) for key, value in config.limits.items()},
            "storage_gb": config.storage_gb,
            "features": sorted(config.features),
        })
    return rows
