"""Tests for application approval, payment schedules and lease signing."""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from propertyflow.core.errors import ApprovalError, SigningError
from propertyflow.models import JobsOutbox, Lease, Notification, RentPayment, SignatureRequest
from propertyflow.models.enums import (
    ApplicationStatus,
    LeaseStatus,
    PaymentKind,
    SignatureStatus,
    SignerRole,
    UserRole,
)
from propertyflow.schemas.application import ApproveApplicationRequest
from propertyflow.services.application_approval import (
    ApplicationApprovalService,
    build_payment_schedule,
    resolve_template,
)
from propertyflow.services.audit import AuditService
from propertyflow.services.lease_signing import LeaseSigningService

from conftest import create_application, create_landlord, create_template, create_unit, create_user


class TestPaymentSchedule:
    """Deposit plus monthly rent on the billing day."""

    def test_fixed_term_starts_on_next_billing_day(self):
        schedule = build_payment_schedule(date(2024, 1, 15), date(2024, 4, 30), 100000, 1, 1)
        assert schedule[0].kind == PaymentKind.DEPOSIT
        assert schedule[0].due_date == date(2024, 1, 15)
        assert schedule[0].amount_cents == 100000
        assert [p.due_date for p in schedule[1:]] == [
            date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1),
        ]

    def test_start_on_billing_day_includes_first_month(self):
        schedule = build_payment_schedule(date(2024, 1, 1), date(2024, 3, 31), 100000, 1, 0)
        assert [p.due_date for p in schedule] == [
            date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1),
        ]
        assert all(p.kind == PaymentKind.RENT for p in schedule)

    def test_month_to_month_gets_twelve_months(self):
        schedule = build_payment_schedule(date(2024, 11, 1), None, 120000, 5, 2)
        rents = [p for p in schedule if p.kind == PaymentKind.RENT]
        assert len(rents) == 12
        assert rents[0].due_date == date(2024, 11, 5)
        assert rents[-1].due_date == date(2025, 10, 5)
        assert schedule[0].amount_cents == 240000

    def test_billing_day_clamped_to_month_end(self):
        schedule = build_payment_schedule(date(2024, 1, 31), date(2024, 3, 31), 100000, 31, 0)
        assert [p.due_date for p in schedule] == [
            date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31),
        ]


async def _approval_setup(db):
    owner, landlord = await create_landlord(db)
    prop, unit = await create_unit(db, landlord, rent_amount_cents=150000)
    tenant = await create_user(db, UserRole.TENANT, full_name="Jane Doe")
    application = await create_application(db, unit, tenant)
    return owner, landlord, prop, unit, tenant, application


def _request(unit, **overrides):
    values = {
        "unit_id": unit.id,
        "lease_start_date": date(2025, 1, 1),
        "lease_end_date": date(2025, 12, 31),
        "billing_day_of_month": 1,
    }
    values.update(overrides)
    return ApproveApplicationRequest(**values)


class TestApprove:
    """Lease generation on approval."""

    async def test_approve_creates_lease_and_schedule(self, db_session, storage, storage_provider):
        owner, landlord, prop, unit, tenant, application = await _approval_setup(db_session)
        await create_template(db_session, landlord)

        result = await ApplicationApprovalService(db_session, storage).approve(
            application.id, landlord.id, owner.id, _request(unit)
        )

        assert result.application.status == ApplicationStatus.APPROVED
        assert result.lease.status == LeaseStatus.PENDING_SIGNATURE
        assert result.signing_url.endswith(f"/sign/{result.signing_token}")
        assert unit.is_available is False

        lease = await db_session.get(Lease, result.lease.id)
        assert lease.document_path in storage_provider.objects
        assert storage_provider.objects[lease.document_path][0].startswith(b"%PDF")

        requests = (await db_session.execute(
            select(SignatureRequest).where(SignatureRequest.lease_id == lease.id)
        )).scalars().all()
        assert {r.role for r in requests} == {SignerRole.TENANT, SignerRole.LANDLORD}
        assert all(r.status == SignatureStatus.SENT for r in requests)
        assert result.signing_token not in {r.token_hash for r in requests}

        payments = (await db_session.execute(
            select(RentPayment).where(RentPayment.lease_id == lease.id)
        )).scalars().all()
        assert len([p for p in payments if p.kind == PaymentKind.RENT]) == 12
        assert len([p for p in payments if p.kind == PaymentKind.DEPOSIT]) == 1

        jobs = (await db_session.execute(select(JobsOutbox))).scalars().all()
        assert [job.payload["template"] for job in jobs] == ["lease_signing"]
        assert jobs[0].payload["to"] == tenant.email

    async def test_requested_rent_overrides_unit_rent(self, db_session, storage):
        owner, landlord, _, unit, _, application = await _approval_setup(db_session)
        await create_template(db_session, landlord)

        result = await ApplicationApprovalService(db_session, storage).approve(
            application.id, landlord.id, owner.id, _request(unit, rent_amount_cents=99000)
        )
        assert result.lease.rent_amount_cents == 99000

    async def test_failure_after_upload_removes_document(
        self, db_session, storage, storage_provider, monkeypatch,
    ):
        owner, landlord, _, unit, _, application = await _approval_setup(db_session)
        await create_template(db_session, landlord)

        async def failing_audit(self, *args, **kwargs):
            raise RuntimeError("audit log unavailable")

        monkeypatch.setattr(AuditService, "log_application_decision", failing_audit)

        with pytest.raises(RuntimeError):
            await ApplicationApprovalService(db_session, storage).approve(
                application.id, landlord.id, owner.id, _request(unit)
            )
        assert storage_provider.objects == {}

    async def test_discard_missing_object(self, storage, storage_provider):
        await storage.discard("landlords/none/leases/none/lease.pdf")
        assert storage_provider.objects == {}

    async def test_requires_template(self, db_session, storage):
        owner, landlord, _, unit, _, application = await _approval_setup(db_session)

        with pytest.raises(ApprovalError) as exc_info:
            await ApplicationApprovalService(db_session, storage).approve(
                application.id, landlord.id, owner.id, _request(unit)
            )
        assert exc_info.value.code == "NO_LEASE_TEMPLATE"
        assert exc_info.value.status_code == 400

    async def test_rejects_non_pending(self, db_session, storage):
        owner, landlord, _, unit, _, application = await _approval_setup(db_session)
        await create_template(db_session, landlord)
        application.status = ApplicationStatus.REJECTED

        with pytest.raises(ApprovalError) as exc_info:
            await ApplicationApprovalService(db_session, storage).approve(
                application.id, landlord.id, owner.id, _request(unit)
            )
        assert exc_info.value.code == "APPLICATION_NOT_PENDING"
        assert exc_info.value.status_code == 409

    async def test_rejects_unavailable_unit(self, db_session, storage):
        owner, landlord, _, unit, _, application = await _approval_setup(db_session)
        await create_template(db_session, landlord)
        unit.is_available = False

        with pytest.raises(ApprovalError) as exc_info:
            await ApplicationApprovalService(db_session, storage).approve(
                application.id, landlord.id, owner.id, _request(unit)
            )
        assert exc_info.value.code == "UNIT_UNAVAILABLE"

    async def test_rejects_other_landlords_unit(self, db_session, storage):
        _, _, _, unit, _, application = await _approval_setup(db_session)
        other_owner, other_landlord = await create_landlord(db_session, name="Elm Holdings")
        await create_template(db_session, other_landlord)

        with pytest.raises(ApprovalError) as exc_info:
            await ApplicationApprovalService(db_session, storage).approve(
                application.id, other_landlord.id, other_owner.id, _request(unit)
            )
        assert exc_info.value.code == "VALIDATION_ERROR"

    async def test_broken_template_fails_generation(self, db_session, storage):
        owner, landlord, _, unit, _, application = await _approval_setup(db_session)
        await create_template(db_session, landlord, body="Hello {{ no_such_placeholder }} and welcome")

        with pytest.raises(ApprovalError) as exc_info:
            await ApplicationApprovalService(db_session, storage).approve(
                application.id, landlord.id, owner.id, _request(unit)
            )
        assert exc_info.value.code == "LEASE_GENERATION_FAILED"

    async def test_property_template_preferred(self, db_session):
        _, landlord, prop, _, _, _ = await _approval_setup(db_session)
        await create_template(db_session, landlord)
        specific = await create_template(db_session, landlord, property_id=prop.id, is_default=False)

        assert (await resolve_template(db_session, prop.id, landlord.id)).id == specific.id


class TestRejectAndWithdraw:

    async def test_reject_queues_email(self, db_session, storage):
        owner, landlord, _, _, tenant, application = await _approval_setup(db_session)

        result = await ApplicationApprovalService(db_session, storage).reject(
            application.id, landlord.id, owner.id, reason="Income below requirement"
        )

        assert result.application.status == ApplicationStatus.REJECTED
        assert application.admin_response == "Income below requirement"
        jobs = (await db_session.execute(select(JobsOutbox))).scalars().all()
        assert jobs[0].payload["template"] == "application_rejected"
        assert jobs[0].payload["to"] == tenant.email

    async def test_withdraw_only_by_applicant(self, db_session, storage):
        owner, _, _, _, tenant, application = await _approval_setup(db_session)
        service = ApplicationApprovalService(db_session, storage)

        with pytest.raises(ApprovalError):
            await service.withdraw(application.id, owner.id)

        withdrawn = await service.withdraw(application.id, tenant.id)
        assert withdrawn.status == ApplicationStatus.WITHDRAWN


async def _approved_lease(db, storage):
    owner, landlord, prop, unit, tenant, application = await _approval_setup(db)
    await create_template(db, landlord)
    result = await ApplicationApprovalService(db, storage).approve(
        application.id, landlord.id, owner.id, _request(unit)
    )
    return owner, result


async def _countersign_token(db) -> str:
    job = (await db.execute(
        select(JobsOutbox).where(JobsOutbox.unique_scope.like("send_email:lease_countersign:%"))
    )).scalar_one()
    return job.payload["context"]["signing_url"].rsplit("/", 1)[1]


class TestSigning:
    """Tenant signs, landlord countersigns, lease activates."""

    async def test_full_signing_flow(self, db_session, storage):
        owner, result = await _approved_lease(db_session, storage)
        service = LeaseSigningService(db_session, storage)

        view = await service.view(result.signing_token)
        assert view.role == SignerRole.TENANT
        assert view.document_url.startswith("https://storage.test/download/")

        tenant_signed = await service.sign(result.signing_token, "Jane Doe", "203.0.113.7")
        assert not tenant_signed.fully_signed
        assert tenant_signed.lease_status == LeaseStatus.PENDING_SIGNATURE

        landlord_token = await _countersign_token(db_session)
        landlord_signed = await service.sign(landlord_token, "Lena Landlord")
        assert landlord_signed.fully_signed
        assert landlord_signed.lease_status == LeaseStatus.ACTIVE

        lease = await db_session.get(Lease, result.lease.id)
        assert lease.signed_at is not None

        notifications = (await db_session.execute(
            select(Notification).where(Notification.user_id == owner.id)
        )).scalars().all()
        assert [n.title for n in notifications].count("Lease Activated") == 1

    async def test_sign_twice(self, db_session, storage):
        _, result = await _approved_lease(db_session, storage)
        service = LeaseSigningService(db_session)
        await service.sign(result.signing_token, "Jane Doe")

        with pytest.raises(SigningError) as exc_info:
            await service.sign(result.signing_token, "Jane Doe")
        assert exc_info.value.code == "ALREADY_SIGNED"

    async def test_unknown_token(self, db_session):
        with pytest.raises(SigningError) as exc_info:
            await LeaseSigningService(db_session).view("not-a-token")
        assert exc_info.value.status_code == 404

    async def test_expired_link(self, db_session, storage):
        _, result = await _approved_lease(db_session, storage)
        requests = (await db_session.execute(select(SignatureRequest))).scalars().all()
        for request in requests:
            request.expires_at = datetime.utcnow() - timedelta(minutes=1)
        await db_session.flush()

        with pytest.raises(SigningError) as exc_info:
            await LeaseSigningService(db_session).sign(result.signing_token, "Jane Doe")
        assert exc_info.value.code == "EXPIRED"
        assert exc_info.value.status_code == 410

    async def test_terminated_lease_cannot_be_signed(self, db_session, storage):
        _, result = await _approved_lease(db_session, storage)
        lease = await db_session.get(Lease, result.lease.id)
        lease.status = LeaseStatus.TERMINATED
        await db_session.flush()

        with pytest.raises(SigningError) as exc_info:
            await LeaseSigningService(db_session).sign(result.signing_token, "Jane Doe")
        assert exc_info.value.code == "LEASE_NOT_SIGNABLE"


class TestApprovalEndpoints:
    """Approval and signing over HTTP."""

    async def test_approve_and_sign(self, client, db_session, login, auth_headers):
        owner, landlord, _, unit, _, application = await _approval_setup(db_session)
        await create_template(db_session, landlord)
        await db_session.commit()
        login(owner)

        response = await client.post(
            f"/v1/applications/{application.id}/approve",
            json={
                "unit_id": str(unit.id),
                "lease_start_date": "2025-01-01",
                "lease_end_date": "2025-12-31",
            },
            headers=auth_headers,
        )
        assert response.status_code == 200
        token = response.json()["signing_token"]

        # Signing links need no login
        view = await client.get(f"/v1/sign/{token}")
        assert view.status_code == 200
        assert view.json()["role"] == "tenant"

        signed = await client.post(f"/v1/sign/{token}", json={"signer_name": "Jane Doe"})
        assert signed.status_code == 200
        assert signed.json()["fully_signed"] is False

        again = await client.post(f"/v1/sign/{token}", json={"signer_name": "Jane Doe"})
        assert again.status_code == 400
        assert again.json()["error"] == "ALREADY_SIGNED"

    async def test_approve_without_template_is_400(self, client, db_session, login, auth_headers):
        owner, _, _, unit, _, application = await _approval_setup(db_session)
        await db_session.commit()
        login(owner)

        response = await client.post(
            f"/v1/applications/{application.id}/approve",
            json={"unit_id": str(unit.id), "lease_start_date": "2025-01-01"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "NO_LEASE_TEMPLATE",
            "message": (
                "No lease template configured for this property. "
                "Please configure a lease template before approving applications."
            ),
        }

    async def test_tenant_cannot_approve(self, client, db_session, login, auth_headers):
        _, _, _, unit, tenant, application = await _approval_setup(db_session)
        await db_session.commit()
        login(tenant)

        response = await client.post(
            f"/v1/applications/{application.id}/approve",
            json={"unit_id": str(unit.id), "lease_start_date": "2025-01-01"},
            headers=auth_headers,
        )
        assert response.status_code == 403
