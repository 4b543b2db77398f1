"""Contractor operations router: customers, jobs, team, inventory and invoices.

Every create goes through the feature gate first and is counted by the
usage tracker afterwards.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import require_contractor, AuthenticatedUser
from propertyflow.models.contractor import ContractorProfile
from propertyflow.models.contractor_ops import (
    Customer,
    ContractorJob,
    Employee,
    InventoryItem,
    Invoice,
)
from propertyflow.models.enums import ContractorJobStatus, InvoiceStatus
from propertyflow.schemas.contractor_ops import (
    CustomerCreate,
    CustomerUpdate,
    CustomerResponse,
    JobCreate,
    JobStatusUpdate,
    JobResponse,
    EmployeeCreate,
    EmployeeResponse,
    InventoryItemCreate,
    InventoryAdjust,
    InventoryItemResponse,
    InvoiceCreate,
    InvoiceStatusUpdate,
    InvoiceResponse,
)
from propertyflow.services.contractor_ops import (
    FINAL_JOB_STATUSES,
    can_transition_invoice,
    can_transition_job,
    claim_invoice_number,
    invoice_total_cents,
)
from propertyflow.services.feature_gate import FeatureGate

router = APIRouter(prefix="/contractor", tags=["contractor-operations"])


async def _get_owned(db: AsyncSession, model, item_id: UUID, contractor_id: UUID, label: str):
    result = await db.execute(
        select(model).where(model.id == item_id, model.contractor_id == contractor_id)
    )
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return item


# --- Customers ---

@router.post("/customers", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
async def create_customer(
    data: CustomerCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    gate = FeatureGate(db)
    await gate.enforce_limit(current_user.contractor_id, "customers")

    customer = Customer(contractor_id=current_user.contractor_id, **data.model_dump())
    db.add(customer)
    await db.flush()
    await gate.tracker.increment(current_user.contractor_id, "customers")

    await db.commit()
    await db.refresh(customer)
    return CustomerResponse.model_validate(customer)


@router.get("/customers", response_model=List[CustomerResponse])
async def list_customers(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    result = await db.execute(
        select(Customer)
        .where(Customer.contractor_id == current_user.contractor_id)
        .order_by(Customer.name)
    )
    return [CustomerResponse.model_validate(c) for c in result.scalars().all()]


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    customer = await _get_owned(db, Customer, customer_id, current_user.contractor_id, "Customer")
    return CustomerResponse.model_validate(customer)


@router.patch("/customers/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: UUID,
    data: CustomerUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    customer = await _get_owned(db, Customer, customer_id, current_user.contractor_id, "Customer")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(customer, field, value)

    await db.commit()
    await db.refresh(customer)
    return CustomerResponse.model_validate(customer)


# --- Jobs ---

@router.post("/jobs", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def create_job(
    data: JobCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    gate = FeatureGate(db)
    await gate.enforce_limit(current_user.contractor_id, "active_jobs")

    if data.customer_id:
        await _get_owned(db, Customer, data.customer_id, current_user.contractor_id, "Customer")

    job = ContractorJob(
        contractor_id=current_user.contractor_id,
        status=ContractorJobStatus.QUOTED,
        **data.model_dump(),
    )
    db.add(job)
    await db.flush()
    await gate.tracker.increment(current_user.contractor_id, "active_jobs")

    await db.commit()
    await db.refresh(job)
    return JobResponse.model_validate(job)


@router.get("/jobs", response_model=List[JobResponse])
async def list_jobs(
    job_status: Optional[ContractorJobStatus] = None,
    customer_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    query = select(ContractorJob).where(ContractorJob.contractor_id == current_user.contractor_id)
    if job_status:
        query = query.where(ContractorJob.status == job_status)
    if customer_id:
        query = query.where(ContractorJob.customer_id == customer_id)

    result = await db.execute(query.order_by(ContractorJob.created_at.desc()))
    return [JobResponse.model_validate(j) for j in result.scalars().all()]


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    job = await _get_owned(db, ContractorJob, job_id, current_user.contractor_id, "Job")
    return JobResponse.model_validate(job)


@router.post("/jobs/{job_id}/status", response_model=JobResponse)
async def update_job_status(
    job_id: UUID,
    data: JobStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Move a job along quoted -> scheduled -> in_progress -> completed, or cancel it."""
    job = await _get_owned(db, ContractorJob, job_id, current_user.contractor_id, "Job")

    if not can_transition_job(job.status, data.status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot move job from {job.status.value} to {data.status.value}",
        )

    job.status = data.status
    if data.status == ContractorJobStatus.COMPLETED:
        job.completed_at = datetime.utcnow()
    if data.status in FINAL_JOB_STATUSES:
        await FeatureGate(db).tracker.decrement(current_user.contractor_id, "active_jobs")

    await db.commit()
    await db.refresh(job)
    return JobResponse.model_validate(job)


# --- Team ---

@router.post("/employees", response_model=EmployeeResponse, status_code=status.HTTP_201_CREATED)
async def create_employee(
    data: EmployeeCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    gate = FeatureGate(db)
    await gate.enforce_feature(current_user.contractor_id, "team_management")
    await gate.enforce_limit(current_user.contractor_id, "team_members")

    employee = Employee(contractor_id=current_user.contractor_id, is_active=True, **data.model_dump())
    db.add(employee)
    await db.flush()
    await gate.tracker.increment(current_user.contractor_id, "team_members")

    await db.commit()
    await db.refresh(employee)
    return EmployeeResponse.model_validate(employee)


@router.get("/employees", response_model=List[EmployeeResponse])
async def list_employees(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    query = select(Employee).where(Employee.contractor_id == current_user.contractor_id)
    if not include_inactive:
        query = query.where(Employee.is_active.is_(True))

    result = await db.execute(query.order_by(Employee.name))
    return [EmployeeResponse.model_validate(e) for e in result.scalars().all()]


@router.post("/employees/{employee_id}/deactivate", response_model=EmployeeResponse)
async def deactivate_employee(
    employee_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    employee = await _get_owned(db, Employee, employee_id, current_user.contractor_id, "Employee")

    if employee.is_active:
        employee.is_active = False
        await FeatureGate(db).tracker.decrement(current_user.contractor_id, "team_members")

    await db.commit()
    await db.refresh(employee)
    return EmployeeResponse.model_validate(employee)


# --- Inventory ---

@router.post("/inventory", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    data: InventoryItemCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    gate = FeatureGate(db)
    await gate.enforce_feature(current_user.contractor_id, "inventory")
    await gate.enforce_limit(current_user.contractor_id, "inventory_items")

    item = InventoryItem(contractor_id=current_user.contractor_id, **data.model_dump())
    db.add(item)
    await db.flush()
    await gate.tracker.increment(current_user.contractor_id, "inventory_items")

    await db.commit()
    await db.refresh(item)
    return InventoryItemResponse.model_validate(item)


@router.get("/inventory", response_model=List[InventoryItemResponse])
async def list_inventory(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    await FeatureGate(db).enforce_feature(current_user.contractor_id, "inventory")

    result = await db.execute(
        select(InventoryItem)
        .where(InventoryItem.contractor_id == current_user.contractor_id)
        .order_by(InventoryItem.name)
    )
    return [InventoryItemResponse.model_validate(i) for i in result.scalars().all()]


@router.post("/inventory/{item_id}/adjust", response_model=InventoryItemResponse)
async def adjust_inventory(
    item_id: UUID,
    data: InventoryAdjust,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Add or consume stock. Quantity never drops below zero."""
    item = await _get_owned(db, InventoryItem, item_id, current_user.contractor_id, "Inventory item")

    if item.quantity + data.delta < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only {item.quantity} in stock",
        )
    item.quantity += data.delta

    await db.commit()
    await db.refresh(item)
    return InventoryItemResponse.model_validate(item)


@router.delete("/inventory/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_inventory_item(
    item_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    item = await _get_owned(db, InventoryItem, item_id, current_user.contractor_id, "Inventory item")

    await db.delete(item)
    await FeatureGate(db).tracker.decrement(current_user.contractor_id, "inventory_items")
    await db.commit()


# --- Invoices ---

@router.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    data: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    gate = FeatureGate(db)
    await gate.enforce_limit(current_user.contractor_id, "invoices_per_month")

    if data.customer_id:
        await _get_owned(db, Customer, data.customer_id, current_user.contractor_id, "Customer")
    if data.job_id:
        await _get_owned(db, ContractorJob, data.job_id, current_user.contractor_id, "Job")

    result = await db.execute(
        select(ContractorProfile)
        .where(ContractorProfile.id == current_user.contractor_id)
        .with_for_update()
    )
    contractor = result.scalar_one()

    line_items = [item.model_dump() for item in data.line_items]
    invoice = Invoice(
        contractor_id=contractor.id,
        customer_id=data.customer_id,
        job_id=data.job_id,
        invoice_number=claim_invoice_number(contractor),
        status=InvoiceStatus.DRAFT,
        line_items=line_items,
        total_cents=invoice_total_cents(line_items),
        due_date=data.due_date,
    )
    db.add(invoice)
    await db.flush()
    await gate.tracker.increment(contractor.id, "invoices_per_month")

    await db.commit()
    await db.refresh(invoice)
    return InvoiceResponse.model_validate(invoice)


@router.get("/invoices", response_model=List[InvoiceResponse])
async def list_invoices(
    invoice_status: Optional[InvoiceStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    query = select(Invoice).where(Invoice.contractor_id == current_user.contractor_id)
    if invoice_status:
        query = query.where(Invoice.status == invoice_status)

    result = await db.execute(query.order_by(Invoice.created_at.desc()))
    return [InvoiceResponse.model_validate(i) for i in result.scalars().all()]


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    invoice = await _get_owned(db, Invoice, invoice_id, current_user.contractor_id, "Invoice")
    return InvoiceResponse.model_validate(invoice)


@router.post("/invoices/{invoice_id}/status", response_model=InvoiceResponse)
async def update_invoice_status(
    invoice_id: UUID,
    data: InvoiceStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """draft -> sent -> paid; draft or sent -> void."""
    invoice = await _get_owned(db, Invoice, invoice_id, current_user.contractor_id, "Invoice")

    if not can_transition_invoice(invoice.status, data.status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot move invoice from {invoice.status.value} to {data.status.value}",
        )

    now = datetime.utcnow()
    invoice.status = data.status
    if data.status == InvoiceStatus.SENT:
        invoice.sent_at = now
    elif data.status == InvoiceStatus.PAID:
        invoice.paid_at = now

    await db.commit()
    await db.refresh(invoice)
    return InvoiceResponse.model_validate(invoice)
