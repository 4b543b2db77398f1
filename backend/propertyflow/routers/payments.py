"""Rent payments and Stripe Connect onboarding."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import require_landlord, require_registered, AuthenticatedUser
from propertyflow.models.enums import ConnectOnboardingStatus, RentPaymentStatus, UserRole
from propertyflow.models.landlord import Landlord
from propertyflow.models.lease import Lease
from propertyflow.models.payment import RentPayment
from propertyflow.models.property import Property, Unit
from propertyflow.models.user import User
from propertyflow.schemas.payment import (
    CheckoutResponse,
    ConnectOnboardingResponse,
    RentPaymentListResponse,
    RentPaymentResponse,
)
from propertyflow.services.payments import StripeClient, connect_return_urls, get_stripe_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])

PAYABLE_STATUSES = (
    RentPaymentStatus.PENDING,
    RentPaymentStatus.PARTIALLY_PAID,
    RentPaymentStatus.FAILED,
)


def _payment_query():
    return (
        select(RentPayment, Unit, Property)
        .join(Lease, RentPayment.lease_id == Lease.id)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
    )


def _payment_response(payment: RentPayment, unit: Unit, prop: Property) -> RentPaymentResponse:
    response = RentPaymentResponse.model_validate(payment)
    response.property_name = prop.name
    response.unit_name = unit.name
    return response


@router.get("/payments", response_model=RentPaymentListResponse)
async def list_payments(
    payment_status: Optional[RentPaymentStatus] = None,
    lease_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Tenants see their own payments; landlords see their portfolio's."""
    query = _payment_query()
    if current_user.role == UserRole.LANDLORD:
        query = query.where(Property.landlord_id == current_user.landlord_id)
    else:
        query = query.where(RentPayment.tenant_id == current_user.db_user_id)

    if payment_status:
        query = query.where(RentPayment.status == payment_status)
    if lease_id:
        query = query.where(RentPayment.lease_id == lease_id)

    result = await db.execute(query.order_by(RentPayment.due_date))
    payments = [_payment_response(p, u, prop) for p, u, prop in result.all()]

    return RentPaymentListResponse(payments=payments, total=len(payments))


@router.post("/payments/{payment_id}/checkout", response_model=CheckoutResponse)
async def create_checkout(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    stripe: StripeClient = Depends(get_stripe_client),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Create a PaymentIntent for the outstanding amount of one of your payments."""
    result = await db.execute(
        select(RentPayment, Landlord)
        .join(Lease, RentPayment.lease_id == Lease.id)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .join(Landlord, Property.landlord_id == Landlord.id)
        .where(
            RentPayment.id == payment_id,
            RentPayment.tenant_id == current_user.db_user_id,
        )
    )
    row = result.one_or_none()
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    payment, landlord = row

    if payment.status not in PAYABLE_STATUSES or payment.outstanding_cents <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Payment is {payment.status.value} and cannot be paid",
        )

    destination = None
    if landlord.stripe_connect_account_id and landlord.stripe_onboarding_status == ConnectOnboardingStatus.ACTIVE:
        destination = landlord.stripe_connect_account_id

    amount = payment.outstanding_cents
    intent = await stripe.create_payment_intent(
        amount_cents=amount,
        metadata={
            "rent_payment_id": str(payment.id),
            "lease_id": str(payment.lease_id),
            "type": "rent_payment",
        },
        destination_account=destination,
        receipt_email=current_user.email,
        idempotency_key=f"rent_payment:{payment.id}:{amount}:{payment.amount_paid_cents}",
    )

    payment.stripe_payment_intent_id = intent["id"]
    await db.commit()

    logger.info("[STRIPE] PaymentIntent %s for rent payment %s (%s cents)", intent["id"], payment.id, amount)
    return CheckoutResponse(
        payment_intent_id=intent["id"],
        client_secret=intent["client_secret"],
        amount_cents=amount,
    )


@router.post("/landlord/connect/onboard", response_model=ConnectOnboardingResponse)
async def start_connect_onboarding(
    db: AsyncSession = Depends(get_db),
    stripe: StripeClient = Depends(get_stripe_client),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Create the landlord's Express account if needed and return an onboarding link."""
    landlord = await db.get(Landlord, current_user.landlord_id)
    if not landlord:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Landlord not found")

    if not landlord.stripe_connect_account_id:
        owner = await db.get(User, landlord.owner_user_id)
        landlord.stripe_connect_account_id = await stripe.create_express_account(
            email=landlord.company_email or (owner.email if owner else current_user.email),
            metadata={"landlord_id": str(landlord.id)},
        )
        landlord.stripe_onboarding_status = ConnectOnboardingStatus.PENDING
        # The account must be stored even if the link request fails
        await db.commit()

    refresh_url, return_url = connect_return_urls("landlord")
    onboarding_url = await stripe.create_account_link(
        landlord.stripe_connect_account_id, refresh_url, return_url,
    )

    return ConnectOnboardingResponse(
        account_id=landlord.stripe_connect_account_id,
        onboarding_url=onboarding_url,
        status=landlord.stripe_onboarding_status,
    )
