"""Tests for the Stripe, Checkr and Persona webhook receivers."""

import json
import time
from datetime import date, datetime

import pytest
from sqlalchemy import select

from propertyflow.core.errors import WebhookSignatureError
from propertyflow.core.security import compute_hmac_sha256
from propertyflow.models import (
    JobsOutbox,
    Lease,
    Notification,
    PaymentTransaction,
    ProcessedWebhookEvent,
    RentPayment,
    SubscriptionEvent,
)
from propertyflow.models.enums import (
    BackgroundCheckStatus,
    ConnectOnboardingStatus,
    IdentityVerificationStatus,
    LeaseStatus,
    NotificationType,
    RentPaymentStatus,
    SubscriptionTier,
    UserRole,
)
from propertyflow.services.background_check import BackgroundCheckService, add_one_year
from propertyflow.services.identity_verification import (
    IdentityVerificationService,
    verify_persona_signature,
)
from propertyflow.services.stripe_webhooks import (
    DUPLICATE,
    IGNORED,
    PROCESSED,
    StripeWebhookHandler,
    UnknownPaymentError,
    tier_from_subscription,
    verify_stripe_signature,
)

from conftest import create_contractor, create_landlord, create_unit, create_user


def _signed_header(payload: bytes, secret: str, timestamp: int = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = compute_hmac_sha256(secret, f"{timestamp}.".encode() + payload)
    return f"t={timestamp},v1={signature}"


async def _rent_payment(db, amount_cents=150000):
    owner, landlord = await create_landlord(db)
    _, unit = await create_unit(db, landlord)
    tenant = await create_user(db, UserRole.TENANT, full_name="Jane Doe")
    lease = Lease(
        unit_id=unit.id,
        tenant_id=tenant.id,
        start_date=date(2025, 1, 1),
        rent_amount_cents=amount_cents,
        billing_day_of_month=1,
        status=LeaseStatus.ACTIVE,
    )
    db.add(lease)
    await db.flush()
    payment = RentPayment(
        lease_id=lease.id,
        tenant_id=tenant.id,
        due_date=date(2025, 2, 1),
        amount_cents=amount_cents,
    )
    db.add(payment)
    await db.flush()
    return owner, landlord, payment


def _charge_event(payment_id, amount, event_id="evt_charge_1"):
    return {
        "id": event_id,
        "type": "charge.succeeded",
        "data": {"object": {
            "id": "ch_1",
            "amount": amount,
            "amount_captured": amount,
            "payment_intent": "pi_1",
            "payment_method_details": {"type": "card"},
            "metadata": {"rent_payment_id": str(payment_id), "type": "rent_payment"},
        }},
    }


class TestStripeSignature:
    """Stripe-Signature header verification."""

    def test_valid_signature(self):
        payload = b'{"id": "evt_1"}'
        verify_stripe_signature(payload, _signed_header(payload, "whsec_test"), "whsec_test")

    def test_any_matching_v1_is_accepted(self):
        payload = b'{"id": "evt_1"}'
        header = _signed_header(payload, "whsec_test") + ",v1=deadbeef"
        verify_stripe_signature(payload, header, "whsec_test")

    @pytest.mark.parametrize("header", [None, "", "v1=abc", "t=abc,v1=abc"])
    def test_missing_or_malformed(self, header):
        with pytest.raises(WebhookSignatureError):
            verify_stripe_signature(b"{}", header, "whsec_test")

    def test_wrong_secret(self):
        payload = b'{"id": "evt_1"}'
        with pytest.raises(WebhookSignatureError):
            verify_stripe_signature(payload, _signed_header(payload, "whsec_other"), "whsec_test")

    def test_stale_timestamp(self):
        payload = b'{"id": "evt_1"}'
        header = _signed_header(payload, "whsec_test", timestamp=1_700_000_000)
        with pytest.raises(WebhookSignatureError):
            verify_stripe_signature(payload, header, "whsec_test", now=1_700_000_000 + 301)


def test_tier_from_subscription():
    assert tier_from_subscription({"metadata": {"tier": "growth"}}) == SubscriptionTier.PRO
    by_price = {"items": {"data": [{"price": {"id": "price_enterprise"}}]}}
    assert tier_from_subscription(by_price) == SubscriptionTier.ENTERPRISE
    assert tier_from_subscription({}) == SubscriptionTier.STARTER


class TestStripeHandler:
    """Event effects on rent payments, subscriptions and payees."""

    async def test_charge_pays_rent(self, db_session):
        owner, _, payment = await _rent_payment(db_session)

        outcome = await StripeWebhookHandler(db_session).handle(_charge_event(payment.id, 150000))

        assert outcome == PROCESSED
        assert payment.status == RentPaymentStatus.PAID
        assert payment.amount_paid_cents == 150000
        assert payment.paid_at is not None
        assert payment.stripe_payment_intent_id == "pi_1"

        transactions = (await db_session.execute(select(PaymentTransaction))).scalars().all()
        assert [t.reference_id for t in transactions] == ["ch_1"]

        notifications = (await db_session.execute(
            select(Notification).where(Notification.user_id == owner.id)
        )).scalars().all()
        assert [n.type for n in notifications] == [NotificationType.PAYMENT_RECEIVED]

        jobs = (await db_session.execute(select(JobsOutbox))).scalars().all()
        assert jobs[0].payload["template"] == "rent_payment_received"

    async def test_partial_charge(self, db_session):
        _, _, payment = await _rent_payment(db_session)

        await StripeWebhookHandler(db_session).handle(_charge_event(payment.id, 50000))

        assert payment.status == RentPaymentStatus.PARTIALLY_PAID
        assert payment.outstanding_cents == 100000

    async def test_redelivery_is_not_applied_twice(self, db_session):
        _, _, payment = await _rent_payment(db_session)
        handler = StripeWebhookHandler(db_session)
        event = _charge_event(payment.id, 50000)

        assert await handler.handle(event) == PROCESSED
        assert await handler.handle(event) == DUPLICATE
        assert payment.amount_paid_cents == 50000

    async def test_unknown_rent_payment(self, db_session):
        with pytest.raises(UnknownPaymentError):
            await StripeWebhookHandler(db_session).handle(
                _charge_event("5a7c4c2e-4f0e-4d57-9a89-0c5a1c9f3c11", 1000)
            )

    async def test_unhandled_type_is_recorded(self, db_session):
        outcome = await StripeWebhookHandler(db_session).handle(
            {"id": "evt_misc", "type": "customer.created", "data": {"object": {}}}
        )
        assert outcome == IGNORED
        assert await db_session.get(ProcessedWebhookEvent, "evt_misc") is not None

    async def test_intent_failure_marks_payment(self, db_session):
        _, _, payment = await _rent_payment(db_session)
        await StripeWebhookHandler(db_session).handle({
            "id": "evt_fail",
            "type": "payment_intent.payment_failed",
            "data": {"object": {
                "id": "pi_9",
                "metadata": {"type": "rent_payment", "rent_payment_id": str(payment.id)},
            }},
        })
        assert payment.status == RentPaymentStatus.FAILED
        assert payment.stripe_payment_intent_id == "pi_9"

    async def test_intent_processing_marks_payment(self, db_session):
        _, _, payment = await _rent_payment(db_session)

        outcome = await StripeWebhookHandler(db_session).handle({
            "id": "evt_processing",
            "type": "payment_intent.processing",
            "data": {"object": {
                "id": "pi_ach",
                "metadata": {"type": "rent_payment", "rent_payment_id": str(payment.id)},
            }},
        })

        assert outcome == PROCESSED
        assert payment.status == RentPaymentStatus.PROCESSING
        assert payment.stripe_payment_intent_id == "pi_ach"

    async def test_intent_processing_leaves_paid_payment(self, db_session):
        _, _, payment = await _rent_payment(db_session)
        await StripeWebhookHandler(db_session).handle(_charge_event(payment.id, 150000))

        await StripeWebhookHandler(db_session).handle({
            "id": "evt_late_processing",
            "type": "payment_intent.processing",
            "data": {"object": {
                "id": "pi_1",
                "metadata": {"type": "rent_payment", "rent_payment_id": str(payment.id)},
            }},
        })
        assert payment.status == RentPaymentStatus.PAID

    async def test_subscription_upgrade(self, db_session):
        user, contractor = await create_contractor(db_session)

        await StripeWebhookHandler(db_session).handle({
            "id": "evt_sub",
            "type": "customer.subscription.updated",
            "data": {"object": {
                "id": "sub_1",
                "customer": "cus_1",
                "status": "active",
                "current_period_end": 1_800_000_000,
                "metadata": {"contractor_id": str(contractor.id), "tier": "pro"},
            }},
        })

        assert contractor.subscription_tier == SubscriptionTier.PRO
        assert contractor.stripe_subscription_id == "sub_1"
        assert contractor.stripe_customer_id == "cus_1"
        event = (await db_session.execute(select(SubscriptionEvent))).scalar_one()
        assert (event.event_type, event.from_tier, event.to_tier) == ("upgraded", "starter", "pro")

        notifications = (await db_session.execute(
            select(Notification).where(Notification.user_id == user.id)
        )).scalars().all()
        assert [n.type for n in notifications] == [NotificationType.UPGRADE_SUCCESS]

    async def test_subscription_deleted_reverts_to_starter(self, db_session):
        _, contractor = await create_contractor(db_session, SubscriptionTier.ENTERPRISE)
        contractor.stripe_subscription_id = "sub_2"
        await db_session.flush()

        await StripeWebhookHandler(db_session).handle({
            "id": "evt_del",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_2"}},
        })

        assert contractor.subscription_tier == SubscriptionTier.STARTER
        assert contractor.subscription_status == "canceled"
        assert contractor.stripe_subscription_id is None

    async def test_invoice_failure_marks_past_due(self, db_session):
        _, contractor = await create_contractor(db_session, SubscriptionTier.PRO)
        contractor.stripe_customer_id = "cus_9"
        await db_session.flush()

        await StripeWebhookHandler(db_session).handle({
            "id": "evt_inv",
            "type": "invoice.payment_failed",
            "data": {"object": {"id": "in_1", "customer": "cus_9"}},
        })
        assert contractor.subscription_status == "past_due"

    async def test_connect_account_updated(self, db_session):
        _, landlord = await create_landlord(db_session)
        landlord.stripe_connect_account_id = "acct_1"
        await db_session.flush()

        await StripeWebhookHandler(db_session).handle({
            "id": "evt_acct",
            "type": "account.updated",
            "data": {"object": {"id": "acct_1", "details_submitted": True, "payouts_enabled": False}},
        })
        assert landlord.stripe_onboarding_status == ConnectOnboardingStatus.PENDING_VERIFICATION

    async def test_connect_account_ready_for_payouts(self, db_session):
        _, landlord = await create_landlord(db_session)
        landlord.stripe_connect_account_id = "acct_2"
        _, contractor = await create_contractor(db_session)
        contractor.stripe_connect_account_id = "acct_3"
        await db_session.flush()
        handler = StripeWebhookHandler(db_session)

        for event_id, account_id in [("evt_acct_2", "acct_2"), ("evt_acct_3", "acct_3")]:
            await handler.handle({
                "id": event_id,
                "type": "account.updated",
                "data": {"object": {"id": account_id, "details_submitted": True, "payouts_enabled": True}},
            })

        assert landlord.stripe_onboarding_status == ConnectOnboardingStatus.ACTIVE
        assert contractor.is_payment_ready is True


class TestStripeEndpoint:

    async def test_processes_signed_event(self, client, db_session):
        _, _, payment = await _rent_payment(db_session)
        await db_session.commit()
        payload = json.dumps(_charge_event(payment.id, 150000)).encode()

        response = await client.post(
            "/v1/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": _signed_header(payload, "whsec_test")},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True, "status": "processed"}

    async def test_rejects_bad_signature(self, client):
        response = await client.post(
            "/v1/webhooks/stripe",
            content=b'{"id": "evt_1"}',
            headers={"stripe-signature": "t=1,v1=bad"},
        )
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid webhook signature"}

    async def test_unknown_payment_asks_for_redelivery(self, client):
        payload = json.dumps(_charge_event("5a7c4c2e-4f0e-4d57-9a89-0c5a1c9f3c11", 1000)).encode()
        response = await client.post(
            "/v1/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": _signed_header(payload, "whsec_test")},
        )
        assert response.status_code == 500
        assert response.json()["detail"] == "Rent payment not found"


class TestCheckr:
    """Background check report events."""

    async def test_clear_report(self, db_session):
        _, contractor = await create_contractor(db_session)
        contractor.background_check_report_id = "rpt_1"
        contractor.background_check_status = BackgroundCheckStatus.PENDING
        await db_session.flush()

        applied = await BackgroundCheckService(db_session).handle_webhook({
            "type": "report.completed",
            "data": {"object": {"id": "rpt_1", "result": "clear", "completed_at": "2025-03-01T12:00:00Z"}},
        })

        assert applied
        assert contractor.background_check_status == BackgroundCheckStatus.CLEAR
        assert contractor.background_check_date == datetime(2025, 3, 1, 12, 0)
        assert contractor.background_check_expires == datetime(2026, 3, 1, 12, 0)

    async def test_consider_report_matched_by_candidate(self, db_session):
        _, contractor = await create_contractor(db_session)
        contractor.background_check_candidate_id = "cand_1"
        await db_session.flush()

        await BackgroundCheckService(db_session).handle_webhook({
            "type": "report.completed",
            "data": {"object": {"id": "rpt_2", "candidate_id": "cand_1", "result": "consider"}},
        })

        assert contractor.background_check_report_id == "rpt_2"
        assert contractor.background_check_status == BackgroundCheckStatus.CONSIDER
        assert contractor.background_check_expires is None

    async def test_suspended_report_returns_to_pending(self, db_session):
        _, contractor = await create_contractor(db_session)
        contractor.background_check_report_id = "rpt_3"
        contractor.background_check_status = BackgroundCheckStatus.CLEAR
        await db_session.flush()

        await BackgroundCheckService(db_session).handle_webhook(
            {"type": "report.suspended", "data": {"object": {"id": "rpt_3"}}}
        )
        assert contractor.background_check_status == BackgroundCheckStatus.PENDING

    async def test_other_events_ignored(self, db_session):
        applied = await BackgroundCheckService(db_session).handle_webhook(
            {"type": "candidate.created", "data": {"object": {"id": "cand_9"}}}
        )
        assert not applied

    def test_leap_day_expiry(self):
        assert add_one_year(datetime(2024, 2, 29)) == datetime(2025, 2, 28)

    async def test_endpoint_checks_signature(self, client, db_session):
        _, contractor = await create_contractor(db_session)
        contractor.background_check_report_id = "rpt_4"
        await db_session.commit()
        payload = json.dumps({"type": "report.completed", "data": {"object": {"id": "rpt_4", "result": "clear"}}}).encode()

        rejected = await client.post("/v1/webhooks/checkr", content=payload, headers={"x-checkr-signature": "bad"})
        assert rejected.status_code == 400

        accepted = await client.post(
            "/v1/webhooks/checkr",
            content=payload,
            headers={"x-checkr-signature": compute_hmac_sha256("checkr_secret", payload)},
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "processed"


def _persona_event(name, inquiry_id, **attributes):
    return {"data": {"attributes": {
        "name": name,
        "payload": {"data": {"id": inquiry_id, "attributes": attributes}},
    }}}


class TestPersona:
    """Identity inquiry events."""

    def test_signature_with_rotated_secrets(self):
        payload = b'{"data": {}}'
        header = "t=1,v1=0000 " + _signed_header(payload, "persona_secret", timestamp=2)
        verify_persona_signature(payload, header, "persona_secret")

    def test_signature_mismatch(self):
        with pytest.raises(WebhookSignatureError):
            verify_persona_signature(b"{}", "t=1,v1=0000", "persona_secret")
        with pytest.raises(WebhookSignatureError):
            verify_persona_signature(b"{}", None, "persona_secret")

    async def test_completed_inquiry(self, db_session):
        _, contractor = await create_contractor(db_session)
        contractor.identity_inquiry_id = "inq_1"
        await db_session.flush()

        applied = await IdentityVerificationService(db_session).handle_webhook(
            _persona_event("inquiry.completed", "inq_1", completed_at="2025-05-01T08:30:00Z")
        )

        assert applied
        assert contractor.identity_status == IdentityVerificationStatus.VERIFIED
        assert contractor.identity_verified_at == datetime(2025, 5, 1, 8, 30)

    async def test_flat_event_shape(self, db_session):
        _, contractor = await create_contractor(db_session)
        contractor.identity_inquiry_id = "inq_2"
        await db_session.flush()

        await IdentityVerificationService(db_session).handle_webhook(
            {"type": "inquiry.failed", "data": {"id": "inq_2"}}
        )

        assert contractor.identity_status == IdentityVerificationStatus.FAILED
        assert contractor.identity_inquiry_id is None

    async def test_expired_inquiry_can_restart(self, db_session):
        _, contractor = await create_contractor(db_session)
        contractor.identity_inquiry_id = "inq_3"
        await db_session.flush()

        await IdentityVerificationService(db_session).handle_webhook(
            _persona_event("inquiry.expired", "inq_3")
        )
        assert contractor.identity_status == IdentityVerificationStatus.NOT_STARTED

    async def test_unknown_inquiry_ignored(self, db_session):
        applied = await IdentityVerificationService(db_session).handle_webhook(
            _persona_event("inquiry.completed", "inq_missing")
        )
        assert not applied

    async def test_endpoint(self, client, db_session):
        _, contractor = await create_contractor(db_session)
        contractor.identity_inquiry_id = "inq_5"
        await db_session.commit()
        payload = json.dumps(_persona_event("inquiry.completed", "inq_5")).encode()

        response = await client.post(
            "/v1/webhooks/persona",
            content=payload,
            headers={"persona-signature": _signed_header(payload, "persona_secret")},
        )
        assert response.status_code == 200
        assert response.json() == {"received": True, "status": "processed"}
