"""Tests for the landlord, contractor and admin dashboards."""

from datetime import date, datetime, timedelta

from propertyflow.models import ContractorJob, Invoice, Lease, RentPayment
from propertyflow.models.enums import (
    ContractorJobStatus,
    InvoiceStatus,
    LeaseStatus,
    RentPaymentStatus,
    SubscriptionTier,
    UserRole,
)

from conftest import (
    create_application,
    create_contractor,
    create_landlord,
    create_unit,
    create_user,
)


async def _occupied_unit_with_rent(db, landlord, paid_cents):
    _, unit = await create_unit(db, landlord, is_available=False)
    tenant = await create_user(db, UserRole.TENANT)
    lease = Lease(
        unit_id=unit.id,
        tenant_id=tenant.id,
        start_date=date.today() - timedelta(days=60),
        rent_amount_cents=150000,
        billing_day_of_month=1,
        status=LeaseStatus.ACTIVE,
    )
    db.add(lease)
    await db.flush()
    db.add(RentPayment(
        lease_id=lease.id,
        tenant_id=tenant.id,
        due_date=datetime.utcnow().date().replace(day=1),
        amount_cents=150000,
        amount_paid_cents=paid_cents,
        status=RentPaymentStatus.PAID if paid_cents >= 150000 else RentPaymentStatus.PARTIALLY_PAID,
    ))
    await db.flush()
    return unit


class TestLandlordDashboard:

    async def test_portfolio_stats(self, client, db_session, login, auth_headers):
        owner, landlord = await create_landlord(db_session)
        await _occupied_unit_with_rent(db_session, landlord, paid_cents=150000)
        await _occupied_unit_with_rent(db_session, landlord, paid_cents=50000)
        _, vacant = await create_unit(db_session, landlord)
        applicant = await create_user(db_session, UserRole.TENANT)
        await create_application(db_session, vacant, applicant)
        await db_session.commit()
        login(owner)

        response = await client.get("/v1/dashboard/landlord", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["properties"]["total"] == 3
        assert body["units"] == {"total": 3, "available": 1, "occupied": 2, "occupancy_rate": 66.7}
        assert body["applications"]["pending"] == 1
        assert body["leases"] == {"active": 2, "pending_signature": 0}
        assert body["rent"] == {
            "due_this_month_cents": 300000,
            "collected_this_month_cents": 200000,
            "outstanding_cents": 100000,
        }

    async def test_other_landlords_are_excluded(self, client, db_session, login, auth_headers):
        owner, _ = await create_landlord(db_session)
        _, other = await create_landlord(db_session, name="Elm Holdings")
        await _occupied_unit_with_rent(db_session, other, paid_cents=0)
        await db_session.commit()
        login(owner)

        body = (await client.get("/v1/dashboard/landlord", headers=auth_headers)).json()
        assert body["units"]["total"] == 0
        assert body["rent"]["due_this_month_cents"] == 0


class TestContractorDashboard:

    async def test_usage_jobs_and_invoices(self, client, db_session, login, auth_headers):
        user, contractor = await create_contractor(db_session, SubscriptionTier.PRO, active_jobs_count=2)
        db_session.add_all([
            ContractorJob(contractor_id=contractor.id, title="Fix leak", status=ContractorJobStatus.SCHEDULED),
            ContractorJob(contractor_id=contractor.id, title="Install sink", status=ContractorJobStatus.SCHEDULED),
            ContractorJob(contractor_id=contractor.id, title="Old job", status=ContractorJobStatus.COMPLETED),
            Invoice(
                contractor_id=contractor.id,
                invoice_number="INV-000001",
                status=InvoiceStatus.SENT,
                line_items=[],
                total_cents=42000,
            ),
            Invoice(
                contractor_id=contractor.id,
                invoice_number="INV-000002",
                status=InvoiceStatus.PAID,
                line_items=[],
                total_cents=1000,
            ),
        ])
        await db_session.commit()
        login(user)

        body = (await client.get("/v1/dashboard/contractor", headers=auth_headers)).json()

        assert body["tier"] == "pro"
        assert body["upgrade_tier"] == "enterprise"
        assert body["usage"]["active_jobs"]["current"] == 2
        assert body["usage"]["active_jobs"]["limit"] == 50
        assert body["jobs"] == {"scheduled": 2, "completed": 1}
        assert body["invoices"] == {"unpaid_count": 1, "unpaid_total_cents": 42000}


class TestAdminOverview:

    async def test_platform_counts(self, client, db_session, login, auth_headers):
        admin = await create_user(db_session, UserRole.ADMIN)
        _, landlord = await create_landlord(db_session)
        await create_unit(db_session, landlord)
        await create_contractor(db_session)
        await create_contractor(db_session, SubscriptionTier.ENTERPRISE)
        await db_session.commit()
        login(admin)

        body = (await client.get("/v1/admin/overview", headers=auth_headers)).json()

        assert body["users"] == {"landlord": 1, "tenant": 0, "contractor": 2, "admin": 1}
        assert body["landlords"] == 1
        assert body["units"] == 1
        assert body["contractors_by_tier"] == {"starter": 1, "enterprise": 1}
