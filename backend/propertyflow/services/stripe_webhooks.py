"""
Stripe webhook processing.

Every event is recorded in processed_webhook_events in the same transaction
as its effects, so Stripe's redeliveries are acknowledged without being
applied twice.
"""

import hmac
import logging
import time
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.config import get_settings
from propertyflow.core.errors import WebhookSignatureError
from propertyflow.core.security import compute_hmac_sha256
from propertyflow.models.contractor import ContractorProfile, SubscriptionEvent
from propertyflow.models.enums import (
    AuditAction,
    ConnectOnboardingStatus,
    NotificationType,
    RentPaymentStatus,
    SubscriptionTier,
    TransactionStatus,
)
from propertyflow.models.landlord import Landlord
from propertyflow.models.lease import Lease
from propertyflow.models.payment import PaymentTransaction, ProcessedWebhookEvent, RentPayment
from propertyflow.models.property import Property, Unit
from propertyflow.models.user import User
from propertyflow.services import subscription_tiers as tiers
from propertyflow.services.audit import AuditService
from propertyflow.services.contractor_notifications import UsageNotifier
from propertyflow.services.email import format_cents
from propertyflow.services.feature_gate import tier_cache
from propertyflow.services.jobs import JobsService
from propertyflow.services.notifications import NotificationService

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"


class UnknownPaymentError(Exception):
    """A charge references a rent payment this database does not have."""


def verify_stripe_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = SIGNATURE_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """Check a Stripe-Signature header: t=<ts>,v1=<hmac of "<ts>.<payload>">."""
    if not header:
        raise WebhookSignatureError("Missing Stripe-Signature header")

    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)

    if not timestamp or not signatures:
        raise WebhookSignatureError("Malformed Stripe-Signature header")
    try:
        ts = int(timestamp)
    except ValueError:
        raise WebhookSignatureError("Malformed Stripe-Signature timestamp")

    now = time.time() if now is None else now
    if abs(now - ts) > tolerance:
        raise WebhookSignatureError("Stripe-Signature timestamp outside tolerance")

    expected = compute_hmac_sha256(secret, f"{timestamp}.".encode() + payload)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookSignatureError("No matching Stripe signature")


def tier_from_subscription(subscription: dict[str, Any]) -> SubscriptionTier:
    """Tier from subscription metadata, falling back to the price id."""
    metadata = subscription.get("metadata") or {}
    if metadata.get("tier"):
        return tiers.normalize_tier(metadata["tier"])

    settings = get_settings()
    items = (subscription.get("items") or {}).get("data") or []
    price_id = ((items[0].get("price") or {}).get("id")) if items else None
    for tier in SubscriptionTier:
        if price_id and settings.stripe_price_for_tier(tier.value) == price_id:
            return tier
    return tiers.normalize_tier(None)


def _as_uuid(value: Any) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _from_epoch(value: Optional[int]) -> Optional[datetime]:
    return datetime.utcfromtimestamp(value) if value else None


class StripeWebhookHandler:
    """Applies Stripe events to payments, subscriptions and Connect payees."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.notifications = NotificationService(db)
        self.jobs = JobsService(db)
        self.audit = AuditService(db)

    async def _get(self, model, value: Any):
        ident = _as_uuid(value)
        return await self.db.get(model, ident) if ident else None

    async def handle(self, event: dict[str, Any]) -> str:
        event_id = event["id"]
        event_type = event.get("type", "")

        existing = await self.db.get(ProcessedWebhookEvent, event_id)
        if existing:
            logger.info("[STRIPE] Duplicate event %s (%s)", event_id, event_type)
            return DUPLICATE

        obj = (event.get("data") or {}).get("object") or {}
        handler = {
            "charge.succeeded": self._charge_succeeded,
            "payment_intent.processing": self._payment_intent_processing,
            "payment_intent.payment_failed": self._payment_intent_failed,
            "customer.subscription.created": self._subscription_changed,
            "customer.subscription.updated": self._subscription_changed,
            "customer.subscription.deleted": self._subscription_deleted,
            "invoice.payment_failed": self._invoice_payment_failed,
            "account.updated": self._account_updated,
        }.get(event_type)

        outcome = IGNORED
        if handler:
            await handler(obj, event_id)
            outcome = PROCESSED
        else:
            logger.info("[STRIPE] Unhandled event type %s", event_type)

        self.db.add(ProcessedWebhookEvent(id=event_id, provider="stripe", event_type=event_type))
        await self.db.flush()
        return outcome

    # Rent payments

    async def _payment_context(self, payment: RentPayment) -> tuple[Lease, Unit, Property, Landlord]:
        result = await self.db.execute(
            select(Lease, Unit, Property, Landlord)
            .join(Unit, Unit.id == Lease.unit_id)
            .join(Property, Property.id == Unit.property_id)
            .join(Landlord, Landlord.id == Property.landlord_id)
            .where(Lease.id == payment.lease_id)
        )
        return result.one()

    async def _charge_succeeded(self, charge: dict[str, Any], event_id: str) -> None:
        metadata = charge.get("metadata") or {}
        rent_payment_id = metadata.get("rent_payment_id")

        if not rent_payment_id:
            intent_id = charge.get("payment_intent")
            if not intent_id:
                logger.info("[STRIPE] Charge %s has no rent payment reference", charge.get("id"))
                return
            result = await self.db.execute(
                select(RentPayment).where(RentPayment.stripe_payment_intent_id == intent_id)
            )
            payment = result.scalar_one_or_none()
            if not payment:
                logger.info("[STRIPE] No rent payment for intent %s", intent_id)
                return
            payment.amount_paid_cents = payment.amount_cents
            payment.status = RentPaymentStatus.PAID
            payment.paid_at = datetime.utcnow()
            await self.db.flush()
            return

        payment = await self._get(RentPayment, rent_payment_id)
        if not payment:
            logger.error("[STRIPE] Charge %s references unknown rent payment %s", charge.get("id"), rent_payment_id)
            raise UnknownPaymentError(rent_payment_id)

        amount = int(charge.get("amount_captured") or charge.get("amount") or 0)
        method = (charge.get("payment_method_details") or {}).get("type")

        self.db.add(PaymentTransaction(
            rent_payment_id=payment.id,
            amount_cents=amount,
            status=TransactionStatus.SUCCEEDED,
            payment_method=method,
            reference_id=charge.get("id"),
        ))

        payment.amount_paid_cents = (payment.amount_paid_cents or 0) + amount
        payment.payment_method = method
        if charge.get("payment_intent"):
            payment.stripe_payment_intent_id = charge["payment_intent"]
        if payment.amount_paid_cents >= payment.amount_cents:
            payment.status = RentPaymentStatus.PAID
            payment.paid_at = datetime.utcnow()
        else:
            payment.status = RentPaymentStatus.PARTIALLY_PAID

        lease, unit, property, landlord = await self._payment_context(payment)
        outstanding = max(payment.amount_cents - payment.amount_paid_cents, 0)

        await self.notifications.create(
            user_id=landlord.owner_user_id,
            type=NotificationType.PAYMENT_RECEIVED,
            title="Payment received",
            message=f"{format_cents(amount)} received for {property.name}, unit {unit.name}.",
            action_url=f"/landlord/payments/{payment.id}",
            meta={"rent_payment_id": str(payment.id), "status": payment.status.value},
        )
        await self.audit.log(
            action=AuditAction.PAYMENT_RECORDED,
            resource_type="rent_payment",
            resource_id=payment.id,
            landlord_id=landlord.id,
            user_id=payment.tenant_id,
            details={"amount_cents": amount, "charge_id": charge.get("id"), "status": payment.status.value},
        )

        tenant = await self.db.get(User, payment.tenant_id)
        if tenant:
            await self.jobs.enqueue_email(
                template="rent_payment_received",
                to=tenant.email,
                context={
                    "amount": format_cents(amount),
                    "property_name": property.name,
                    "unit_name": unit.name,
                    "status": payment.status.value.replace("_", " "),
                    "outstanding": format_cents(outstanding) if outstanding else "",
                },
                scope=event_id,
            )
        await self.db.flush()

    async def _update_intent_status(self, intent: dict[str, Any], status: RentPaymentStatus) -> None:
        metadata = intent.get("metadata") or {}
        if metadata.get("type") != "rent_payment" or not metadata.get("rent_payment_id"):
            return
        payment = await self._get(RentPayment, metadata["rent_payment_id"])
        if not payment:
            logger.warning("[STRIPE] Intent %s references unknown rent payment", intent.get("id"))
            return
        if payment.status == RentPaymentStatus.PAID:
            return
        payment.status = status
        payment.stripe_payment_intent_id = intent.get("id")
        await self.db.flush()

    async def _payment_intent_processing(self, intent: dict[str, Any], event_id: str) -> None:
        await self._update_intent_status(intent, RentPaymentStatus.PROCESSING)

    async def _payment_intent_failed(self, intent: dict[str, Any], event_id: str) -> None:
        await self._update_intent_status(intent, RentPaymentStatus.FAILED)

    # Contractor subscriptions

    async def _contractor_for_subscription(self, subscription: dict[str, Any]) -> Optional[ContractorProfile]:
        contractor_id = (subscription.get("metadata") or {}).get("contractor_id")
        if contractor_id:
            return await self._get(ContractorProfile, contractor_id)
        result = await self.db.execute(
            select(ContractorProfile).where(
                ContractorProfile.stripe_subscription_id == subscription.get("id")
            )
        )
        return result.scalar_one_or_none()

    async def _subscription_changed(self, subscription: dict[str, Any], event_id: str) -> None:
        contractor = await self._contractor_for_subscription(subscription)
        if not contractor:
            logger.warning("[STRIPE] No contractor for subscription %s", subscription.get("id"))
            return

        previous = tiers.normalize_tier(contractor.subscription_tier)
        new_tier = tier_from_subscription(subscription)
        is_new = contractor.stripe_subscription_id != subscription.get("id")

        contractor.subscription_tier = new_tier
        contractor.subscription_status = subscription.get("status") or contractor.subscription_status
        contractor.stripe_customer_id = subscription.get("customer") or contractor.stripe_customer_id
        contractor.stripe_subscription_id = subscription.get("id")
        contractor.subscription_period_end = _from_epoch(subscription.get("current_period_end"))

        if tiers.is_higher_tier(new_tier, previous):
            event_type = "upgraded"
        elif tiers.is_higher_tier(previous, new_tier):
            event_type = "downgraded"
        elif is_new:
            event_type = "created"
        else:
            event_type = "renewed"

        self.db.add(SubscriptionEvent(
            contractor_id=contractor.id,
            event_type=event_type,
            from_tier=previous.value,
            to_tier=new_tier.value,
            stripe_event_id=event_id,
            details={"status": contractor.subscription_status},
        ))
        await self.audit.log_subscription_changed(
            contractor.id, previous.value, new_tier.value, contractor.subscription_status,
        )
        tier_cache.invalidate(contractor.id)

        if event_type == "upgraded":
            await UsageNotifier(self.db).upgrade_success(contractor, new_tier, previous)
        await self.db.flush()

    async def _subscription_deleted(self, subscription: dict[str, Any], event_id: str) -> None:
        contractor = await self._contractor_for_subscription(subscription)
        if not contractor:
            logger.warning("[STRIPE] No contractor for deleted subscription %s", subscription.get("id"))
            return

        previous = tiers.normalize_tier(contractor.subscription_tier)
        contractor.subscription_tier = SubscriptionTier.STARTER
        contractor.subscription_status = "canceled"
        contractor.stripe_subscription_id = None
        contractor.subscription_period_end = None

        self.db.add(SubscriptionEvent(
            contractor_id=contractor.id,
            event_type="canceled",
            from_tier=previous.value,
            to_tier=SubscriptionTier.STARTER.value,
            stripe_event_id=event_id,
        ))
        await self.audit.log_subscription_changed(
            contractor.id, previous.value, SubscriptionTier.STARTER.value, "canceled",
        )
        tier_cache.invalidate(contractor.id)
        await self.db.flush()

    async def _invoice_payment_failed(self, invoice: dict[str, Any], event_id: str) -> None:
        customer_id = invoice.get("customer")
        if not customer_id:
            return
        result = await self.db.execute(
            select(ContractorProfile).where(ContractorProfile.stripe_customer_id == customer_id)
        )
        contractor = result.scalar_one_or_none()
        if not contractor:
            logger.info("[STRIPE] Invoice failure for unknown customer %s", customer_id)
            return

        contractor.subscription_status = "past_due"
        self.db.add(SubscriptionEvent(
            contractor_id=contractor.id,
            event_type="payment_failed",
            from_tier=contractor.subscription_tier.value,
            to_tier=contractor.subscription_tier.value,
            stripe_event_id=event_id,
            details={"invoice_id": invoice.get("id")},
        ))
        await self.db.flush()

    # Connect

    async def _account_updated(self, account: dict[str, Any], event_id: str) -> None:
        account_id = account.get("id")
        details_submitted = bool(account.get("details_submitted"))
        payouts_enabled = bool(account.get("payouts_enabled"))

        result = await self.db.execute(
            select(Landlord).where(Landlord.stripe_connect_account_id == account_id)
        )
        landlord = result.scalar_one_or_none()
        if landlord:
            if details_submitted and payouts_enabled:
                landlord.stripe_onboarding_status = ConnectOnboardingStatus.ACTIVE
            elif details_submitted:
                landlord.stripe_onboarding_status = ConnectOnboardingStatus.PENDING_VERIFICATION
            else:
                landlord.stripe_onboarding_status = ConnectOnboardingStatus.PENDING

        result = await self.db.execute(
            select(ContractorProfile).where(ContractorProfile.stripe_connect_account_id == account_id)
        )
        contractor = result.scalar_one_or_none()
        if contractor:
            contractor.is_payment_ready = payouts_enabled

        if not landlord and not contractor:
            logger.info("[STRIPE] account.updated for unknown account %s", account_id)
        await self.db.flush()
