"""Tests for outbound provider clients, driven through httpx.MockTransport."""

import json
from datetime import date, datetime, timedelta
from urllib.parse import parse_qsl

import httpx
import pytest
from sqlalchemy import select

from propertyflow.core.errors import ProviderError
from propertyflow.models import JobsOutbox
from propertyflow.models.enums import LicenseStatus
from propertyflow.services.background_check import BackgroundCheckService, CheckrClient
from propertyflow.services.email import EmailService, format_cents
from propertyflow.services.identity_verification import PersonaClient
from propertyflow.services.license_verification import (
    LicenseVerificationClient,
    LicenseVerificationService,
    derive_license_status,
    needs_reverification,
)
from propertyflow.services.payments import StripeClient, encode_form

from conftest import create_contractor


def _transport(handler, calls=None):
    def _handle(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return handler(request)
    return httpx.MockTransport(_handle)


@pytest.mark.parametrize(
    "cents,expected",
    [(0, "$0.00"), (5, "$0.05"), (150000, "$1,500.00"), (1234567, "$12,345.67"), (-250, "-$2.50"), (None, "")],
)
def test_format_cents(cents, expected):
    assert format_cents(cents) == expected


class TestEmailService:
    """Template rendering and delivery."""

    def test_render_lease_signing(self):
        subject, html = EmailService(api_key="").render("lease_signing", {
            "tenant_name": "Jane Doe",
            "property_name": "Maple Court",
            "unit_name": "1A",
            "start_date": "January 01, 2025",
            "end_date": None,
            "rent": "$1,500.00",
            "signing_url": "http://localhost:3000/sign/abc",
            "expires_at": "January 31, 2025",
        })
        assert subject == "Your lease for Maple Court is ready to sign"
        assert "http://localhost:3000/sign/abc" in html
        assert "month-to-month" in html

    def test_render_escapes_html(self):
        _, html = EmailService(api_key="").render("application_rejected", {
            "applicant_name": "<script>x</script>",
            "property_name": "Maple Court",
        })
        assert "<script>x</script>" not in html

    def test_unknown_template(self):
        with pytest.raises(ValueError):
            EmailService(api_key="").render("birthday_card", {})

    async def test_send_posts_to_provider(self):
        calls = []
        transport = _transport(lambda r: httpx.Response(200, json={"id": "msg_1"}), calls)
        service = EmailService(api_key="re_key", api_url="https://mail.test/emails", transport=transport)

        message_id = await service.send("jane@example.com", "monthly_summary", {"business_name": "Casey Plumbing"})

        assert message_id == "msg_1"
        assert calls[0].headers["Authorization"] == "Bearer re_key"
        body = json.loads(calls[0].content)
        assert body["to"] == ["jane@example.com"]
        assert body["subject"] == "Your monthly usage summary"

    async def test_send_without_key_is_skipped(self):
        calls = []
        service = EmailService(api_key="", transport=_transport(lambda r: httpx.Response(200), calls))
        assert await service.send("jane@example.com", "monthly_summary", {}) is None
        assert calls == []

    async def test_provider_error(self):
        service = EmailService(
            api_key="re_key",
            transport=_transport(lambda r: httpx.Response(422, text="invalid recipient")),
        )
        with pytest.raises(ProviderError) as exc_info:
            await service.send("not-an-address", "monthly_summary", {})
        assert exc_info.value.status_code == 422


class TestLicenseLookup:
    """State licensing board lookups."""

    async def test_active_license(self):
        calls = []

        def handler(request):
            return httpx.Response(200, json={
                "status": "active",
                "expiration_date": "2030-06-30",
                "license_type": "C-36 Plumbing",
                "holder_name": "Casey Plumbing",
            })

        client = LicenseVerificationClient(transport=_transport(handler, calls))
        result = await client.verify("123456", "ca")

        assert result.is_valid
        assert result.status == LicenseStatus.ACTIVE
        assert result.expiration_date == date(2030, 6, 30)
        assert result.license_type == "C-36 Plumbing"
        assert calls[0].url.path == "/licenses/123456"
        assert calls[0].headers["Authorization"] == "Bearer ca-key"

    async def test_active_but_past_expiry_is_expired(self):
        client = LicenseVerificationClient(transport=_transport(
            lambda r: httpx.Response(200, json={"status": "active", "expirationDate": "2020-01-01"})
        ))
        result = await client.verify("123456", "CA")
        assert result.status == LicenseStatus.EXPIRED
        assert not result.is_valid

    async def test_not_found(self):
        client = LicenseVerificationClient(transport=_transport(lambda r: httpx.Response(404)))
        result = await client.verify("000", "CA")
        assert result.status == LicenseStatus.NOT_FOUND
        assert not result.retryable

    async def test_board_outage_is_retryable(self):
        client = LicenseVerificationClient(transport=_transport(lambda r: httpx.Response(503)))
        result = await client.verify("123456", "CA")
        assert result.status == LicenseStatus.NOT_FOUND
        assert result.retryable

    async def test_unsupported_state(self):
        calls = []
        client = LicenseVerificationClient(transport=_transport(lambda r: httpx.Response(200), calls))
        result = await client.verify("123456", "WY")
        assert "not supported" in result.message
        assert calls == []

    async def test_unconfigured_state_needs_manual_review(self):
        client = LicenseVerificationClient(transport=_transport(lambda r: httpx.Response(200)))
        result = await client.verify("123456", "TX")
        assert "manual verification" in result.message

    async def test_service_stores_result_and_schedules_recheck(self, db_session):
        _, contractor = await create_contractor(db_session)
        client = LicenseVerificationClient(transport=_transport(
            lambda r: httpx.Response(200, json={"status": "active", "expiration_date": "2030-06-30"})
        ))

        await LicenseVerificationService(db_session, client).verify(contractor, "123456", "ca")

        assert contractor.license_state == "CA"
        assert contractor.license_status == LicenseStatus.ACTIVE
        assert contractor.license_verified_at is not None
        status = LicenseVerificationService.status(contractor)
        assert status["is_verified"]
        assert not status["needs_reverification"]

        job = (await db_session.execute(select(JobsOutbox))).scalar_one()
        assert job.type == "reverify_license"
        assert job.run_after > datetime.utcnow() + timedelta(days=29)

    async def test_not_found_clears_verification(self, db_session):
        _, contractor = await create_contractor(db_session)
        client = LicenseVerificationClient(transport=_transport(lambda r: httpx.Response(404)))

        await LicenseVerificationService(db_session, client).verify(contractor, "000", "CA")

        assert contractor.license_verified_at is None
        assert LicenseVerificationService.status(contractor)["status"] == LicenseStatus.NOT_FOUND
        assert (await db_session.execute(select(JobsOutbox))).first() is None


def test_derive_license_status():
    today = date(2025, 6, 1)
    verified = datetime(2025, 5, 1)
    assert derive_license_status(verified, date(2026, 1, 1), "active", today) == LicenseStatus.ACTIVE
    assert derive_license_status(verified, date(2025, 1, 1), "active", today) == LicenseStatus.EXPIRED
    assert derive_license_status(None, None, "suspended", today) == LicenseStatus.SUSPENDED
    assert derive_license_status(None, None, None, today) == LicenseStatus.PENDING


def test_needs_reverification_after_thirty_days():
    now = datetime(2025, 6, 1)
    assert needs_reverification(datetime(2025, 4, 1), now)
    assert not needs_reverification(datetime(2025, 5, 15), now)
    assert not needs_reverification(None, now)


class TestStripeClient:
    """Form-encoded Stripe REST calls."""

    def test_encode_form_nested(self):
        pairs = encode_form({
            "amount": 1000,
            "metadata": {"rent_payment_id": "rp_1"},
            "line_items": [{"price": "price_pro", "quantity": 1}],
            "automatic_payment_methods": {"enabled": True},
            "receipt_email": None,
        })
        assert pairs == [
            ("amount", "1000"),
            ("metadata[rent_payment_id]", "rp_1"),
            ("line_items[0][price]", "price_pro"),
            ("line_items[0][quantity]", "1"),
            ("automatic_payment_methods[enabled]", "true"),
        ]

    async def test_payment_intent_with_destination(self):
        calls = []
        transport = _transport(lambda r: httpx.Response(200, json={"id": "pi_1", "client_secret": "cs"}), calls)
        client = StripeClient(secret_key="sk_test_123", transport=transport)

        intent = await client.create_payment_intent(
            150000,
            {"rent_payment_id": "rp_1", "type": "rent_payment"},
            destination_account="acct_1",
            idempotency_key="rent_payment:rp_1:150000:0",
        )

        assert intent["id"] == "pi_1"
        request = calls[0]
        assert request.url.path == "/v1/payment_intents"
        assert request.headers["Idempotency-Key"] == "rent_payment:rp_1:150000:0"
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        form = dict(parse_qsl(request.content.decode()))
        assert form["transfer_data[destination]"] == "acct_1"
        assert form["currency"] == "usd"

    async def test_subscription_checkout_has_trial_for_new_customers(self):
        calls = []
        transport = _transport(
            lambda r: httpx.Response(200, json={"id": "cs_1", "url": "https://checkout.stripe.test/cs_1"}),
            calls,
        )
        client = StripeClient(secret_key="sk_test_123", transport=transport)

        session_id, url = await client.create_subscription_checkout(
            "price_pro", "contractor-1", "pro", customer_email="casey@example.com",
        )

        assert (session_id, url) == ("cs_1", "https://checkout.stripe.test/cs_1")
        form = dict(parse_qsl(calls[0].content.decode()))
        assert form["subscription_data[trial_period_days]"] == "7"
        assert form["metadata[tier]"] == "pro"

    async def test_error_message_surfaces(self):
        transport = _transport(lambda r: httpx.Response(402, json={"error": {"message": "Card declined"}}))
        client = StripeClient(secret_key="sk_test_123", transport=transport)

        with pytest.raises(ProviderError) as exc_info:
            await client.create_express_account("casey@example.com", {})
        assert "Card declined" in str(exc_info.value)

    async def test_unconfigured(self):
        with pytest.raises(ProviderError):
            await StripeClient(secret_key="").create_account_link("acct_1", "r", "s")


class TestCheckrClient:

    async def test_sandbox_without_key(self, db_session):
        _, contractor = await create_contractor(db_session)
        result = await BackgroundCheckService(db_session, CheckrClient(api_key="")).initiate(
            contractor, "Casey", "Jones",
        )
        assert result["candidate_id"].startswith("sandbox_candidate_")
        assert result["invitation_url"].startswith("https://checkr.com/invitation/")
        assert contractor.background_check_candidate_id == result["candidate_id"]

    async def test_live_invitation(self, db_session):
        _, contractor = await create_contractor(db_session)

        def handler(request):
            if request.url.path.endswith("/candidates"):
                return httpx.Response(201, json={"id": "cand_1"})
            return httpx.Response(201, json={
                "id": "inv_1",
                "invitation_url": "https://apply.checkr.com/invite/inv_1",
                "report_id": "rpt_1",
            })

        client = CheckrClient(api_key="checkr_key", transport=_transport(handler))
        result = await BackgroundCheckService(db_session, client).initiate(contractor, "Casey", "Jones")

        assert result["invitation_id"] == "inv_1"
        assert contractor.background_check_report_id == "rpt_1"

    async def test_provider_failure(self, db_session):
        _, contractor = await create_contractor(db_session)
        client = CheckrClient(api_key="checkr_key", transport=_transport(lambda r: httpx.Response(500, text="down")))
        with pytest.raises(ProviderError):
            await BackgroundCheckService(db_session, client).initiate(contractor, "Casey", "Jones")


class TestPersonaClient:

    async def test_live_inquiry(self):
        calls = []
        transport = _transport(lambda r: httpx.Response(201, json={"data": {
            "id": "inq_1",
            "attributes": {"session_token": "tok", "inquiry_url": "https://withpersona.test/inq_1"},
        }}), calls)

        inquiry = await PersonaClient(api_key="persona_key", transport=transport).create_inquiry(
            "contractor-1", "Casey Jones", "casey@example.com",
        )

        assert inquiry == {
            "inquiry_id": "inq_1",
            "session_token": "tok",
            "inquiry_url": "https://withpersona.test/inq_1",
        }
        body = json.loads(calls[0].content)
        assert body["data"]["attributes"]["fields"]["name_last"] == "Jones"
        assert calls[0].headers["Persona-Version"] == "2023-01-05"

    async def test_sandbox_without_key(self):
        inquiry = await PersonaClient(api_key="").create_inquiry("c", "Casey", "casey@example.com")
        assert inquiry["inquiry_id"].startswith("sandbox_inquiry_")
