"""Dashboard router - aggregate stats for landlords, contractors and admins."""

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func, case, and_
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import (
    require_admin,
    require_contractor,
    require_landlord,
    AuthenticatedUser,
)
from propertyflow.models.application import RentalApplication
from propertyflow.models.contractor import ContractorProfile
from propertyflow.models.contractor_ops import ContractorJob, Invoice
from propertyflow.models.enums import (
    ApplicationStatus,
    InvoiceStatus,
    LeaseStatus,
    RentPaymentStatus,
    UserRole,
)
from propertyflow.models.landlord import Landlord
from propertyflow.models.lease import Lease
from propertyflow.models.payment import RentPayment
from propertyflow.models.property import Property, Unit
from propertyflow.models.user import User
from propertyflow.services.feature_gate import FeatureGate

router = APIRouter(tags=["dashboard"])


def _month_bounds(today: date) -> tuple[date, date]:
    start = today.replace(day=1)
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)


@router.get("/dashboard/landlord")
async def get_landlord_dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Portfolio overview for the landlord.

    Returns:
    - Property and unit counts (available vs occupied)
    - Pending applications and active leases
    - Rent due and collected this month, plus the outstanding balance
    """
    landlord_id = current_user.landlord_id
    month_start, next_month = _month_bounds(datetime.utcnow().date())

    property_count = await db.scalar(
        select(func.count(Property.id)).where(Property.landlord_id == landlord_id)
    )

    unit_query = await db.execute(
        select(
            func.count(Unit.id).label("total"),
            func.sum(case((Unit.is_available.is_(True), 1), else_=0)).label("available"),
        )
        .join(Property, Unit.property_id == Property.id)
        .where(Property.landlord_id == landlord_id)
    )
    unit_stats = unit_query.one()
    total_units = unit_stats.total or 0
    available_units = unit_stats.available or 0
    occupied_units = total_units - available_units

    pending_applications = await db.scalar(
        select(func.count(RentalApplication.id))
        .join(Unit, RentalApplication.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .where(
            Property.landlord_id == landlord_id,
            RentalApplication.status == ApplicationStatus.PENDING,
        )
    )

    lease_query = await db.execute(
        select(
            func.sum(case((Lease.status == LeaseStatus.ACTIVE, 1), else_=0)).label("active"),
            func.sum(case((Lease.status == LeaseStatus.PENDING_SIGNATURE, 1), else_=0)).label("pending_signature"),
        )
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .where(Property.landlord_id == landlord_id)
    )
    lease_stats = lease_query.one()

    # Rent for the current month
    rent_query = await db.execute(
        select(
            func.coalesce(func.sum(RentPayment.amount_cents), 0).label("due"),
            func.coalesce(func.sum(RentPayment.amount_paid_cents), 0).label("collected"),
        )
        .join(Lease, RentPayment.lease_id == Lease.id)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .where(
            Property.landlord_id == landlord_id,
            RentPayment.due_date >= month_start,
            RentPayment.due_date < next_month,
        )
    )
    rent_stats = rent_query.one()

    # Everything due so far that is not settled
    outstanding = await db.scalar(
        select(
            func.coalesce(func.sum(RentPayment.amount_cents - RentPayment.amount_paid_cents), 0)
        )
        .join(Lease, RentPayment.lease_id == Lease.id)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .where(
            Property.landlord_id == landlord_id,
            RentPayment.due_date < next_month,
            RentPayment.status != RentPaymentStatus.PAID,
        )
    )

    return {
        "properties": {
            "total": property_count or 0,
        },
        "units": {
            "total": total_units,
            "available": available_units,
            "occupied": occupied_units,
            "occupancy_rate": round(occupied_units / max(total_units, 1) * 100, 1),
        },
        "applications": {
            "pending": pending_applications or 0,
        },
        "leases": {
            "active": lease_stats.active or 0,
            "pending_signature": lease_stats.pending_signature or 0,
        },
        "rent": {
            "due_this_month_cents": rent_stats.due or 0,
            "collected_this_month_cents": rent_stats.collected or 0,
            "outstanding_cents": outstanding or 0,
        },
    }


@router.get("/dashboard/contractor")
async def get_contractor_dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Tier, usage against limits, jobs by status and unpaid invoices."""
    contractor = await db.get(ContractorProfile, current_user.contractor_id)
    if not contractor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contractor profile not found")

    overview = await FeatureGate(db).usage_overview(contractor)

    job_rows = await db.execute(
        select(ContractorJob.status, func.count(ContractorJob.id))
        .where(ContractorJob.contractor_id == contractor.id)
        .group_by(ContractorJob.status)
    )
    jobs_by_status = {job_status.value: count for job_status, count in job_rows.all()}

    invoice_query = await db.execute(
        select(
            func.count(Invoice.id).label("count"),
            func.coalesce(func.sum(Invoice.total_cents), 0).label("total"),
        ).where(
            Invoice.contractor_id == contractor.id,
            Invoice.status == InvoiceStatus.SENT,
        )
    )
    unpaid = invoice_query.one()

    # usage_overview may have created the usage row
    await db.commit()

    return {
        "tier": overview.tier.value,
        "tier_name": overview.tier_name,
        "subscription_status": overview.subscription_status,
        "usage": overview.model_dump(mode="json")["limits"],
        "upgrade_tier": overview.upgrade_tier.value if overview.upgrade_tier else None,
        "jobs": jobs_by_status,
        "invoices": {
            "unpaid_count": unpaid.count or 0,
            "unpaid_total_cents": unpaid.total or 0,
        },
    }


@router.get("/admin/overview")
async def get_admin_overview(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_admin),
):
    """Platform-wide counts for administrators."""
    user_rows = await db.execute(
        select(User.role, func.count(User.id)).group_by(User.role)
    )
    users_by_role = {role.value: 0 for role in UserRole}
    for role, count in user_rows.all():
        users_by_role[role.value] = count

    tier_rows = await db.execute(
        select(ContractorProfile.subscription_tier, func.count(ContractorProfile.id))
        .group_by(ContractorProfile.subscription_tier)
    )
    contractors_by_tier = {tier.value: count for tier, count in tier_rows.all()}

    landlords = await db.scalar(select(func.count(Landlord.id)))
    properties = await db.scalar(select(func.count(Property.id)))
    units = await db.scalar(select(func.count(Unit.id)))
    active_leases = await db.scalar(
        select(func.count(Lease.id)).where(Lease.status == LeaseStatus.ACTIVE)
    )
    pending_applications = await db.scalar(
        select(func.count(RentalApplication.id)).where(
            RentalApplication.status == ApplicationStatus.PENDING
        )
    )
    collected = await db.scalar(
        select(func.coalesce(func.sum(RentPayment.amount_paid_cents), 0))
    )
    overdue = await db.scalar(
        select(func.count(RentPayment.id)).where(
            and_(
                RentPayment.due_date < datetime.utcnow().date(),
                RentPayment.status != RentPaymentStatus.PAID,
            )
        )
    )

    return {
        "users": users_by_role,
        "landlords": landlords or 0,
        "properties": properties or 0,
        "units": units or 0,
        "active_leases": active_leases or 0,
        "pending_applications": pending_applications or 0,
        "contractors_by_tier": contractors_by_tier,
        "rent": {
            "collected_cents": collected or 0,
            "overdue_payments": overdue or 0,
        },
    }
