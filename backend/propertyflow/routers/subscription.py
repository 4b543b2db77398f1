"""Contractor subscription router: usage, limits, tier comparison and upgrades."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.config import get_settings
from propertyflow.core.database import get_db
from propertyflow.core.security import require_contractor, AuthenticatedUser
from propertyflow.models.contractor import ContractorProfile
from propertyflow.schemas.subscription import (
    CheckLimitRequest,
    LimitCheckResult,
    TierComparisonResponse,
    UpgradeRequest,
    UpgradeResponse,
    UsageOverview,
)
from propertyflow.services import subscription_tiers as tiers
from propertyflow.services.feature_gate import FeatureGate
from propertyflow.services.payments import StripeClient, get_stripe_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contractor/subscription", tags=["subscription"])


async def _get_contractor(db: AsyncSession, current_user: AuthenticatedUser) -> ContractorProfile:
    contractor = await db.get(ContractorProfile, current_user.contractor_id)
    if not contractor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contractor profile not found")
    return contractor


@router.get("/usage", response_model=UsageOverview)
async def get_usage(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Current tier and where the contractor stands against every limit."""
    contractor = await _get_contractor(db, current_user)
    overview = await FeatureGate(db).usage_overview(contractor)
    # Reading usage may create the row or roll the billing period over
    await db.commit()
    return overview


@router.post("/check-limit", response_model=LimitCheckResult)
async def check_limit(
    data: CheckLimitRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Whether one more item of a limited kind may be created."""
    try:
        result = await FeatureGate(db).check_limit(current_user.contractor_id, data.feature)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    await db.commit()
    return result


@router.get("/tiers", response_model=TierComparisonResponse)
async def compare_tiers(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    tier = await FeatureGate(db).get_tier(current_user.contractor_id)
    return TierComparisonResponse(current_tier=tier, tiers=tiers.tier_comparison())


@router.post("/upgrade", response_model=UpgradeResponse)
async def upgrade(
    data: UpgradeRequest,
    db: AsyncSession = Depends(get_db),
    stripe: StripeClient = Depends(get_stripe_client),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Start a Stripe Checkout session for a higher tier.

    The tier only changes once Stripe reports the subscription through the
    webhook.
    """
    contractor = await _get_contractor(db, current_user)
    current = tiers.normalize_tier(contractor.subscription_tier)

    if not tiers.is_higher_tier(data.tier, current):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Already on {tiers.get_tier_config(current).name}; choose a higher tier",
        )

    price_id = get_settings().stripe_price_for_tier(data.tier.value)
    if not price_id:
        logger.error("[STRIPE] No price configured for tier %s", data.tier.value)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Billing is not configured for this tier",
        )

    session_id, checkout_url = await stripe.create_subscription_checkout(
        price_id=price_id,
        contractor_id=str(contractor.id),
        tier=data.tier.value,
        customer_id=contractor.stripe_customer_id,
        customer_email=contractor.email,
    )
    logger.info(
        "[STRIPE] Checkout %s started: contractor=%s %s -> %s",
        session_id, contractor.id, current.value, data.tier.value,
    )

    return UpgradeResponse(
        tier=data.tier,
        checkout_url=checkout_url,
        checkout_session_id=session_id,
        price_difference_cents=tiers.get_price_difference_cents(current, data.tier),
        new_features=tiers.get_upgrade_features(current, data.tier),
    )
