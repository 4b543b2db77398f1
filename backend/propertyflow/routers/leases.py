"""Leases and lease templates router."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import require_landlord, require_registered, AuthenticatedUser
from propertyflow.models.enums import AuditAction, LeaseStatus, UserRole
from propertyflow.models.lease import Lease, LeaseTemplate
from propertyflow.models.property import Property, Unit
from propertyflow.schemas.lease import (
    LeaseResponse,
    LeaseListResponse,
    LeaseTerminateRequest,
    LeaseTemplateCreate,
    LeaseTemplateResponse,
)
from propertyflow.services.audit import AuditService
from propertyflow.services.storage import StorageService, get_storage_service

router = APIRouter(prefix="/leases", tags=["leases"])


def _lease_response(lease: Lease, unit: Unit, prop: Property, document_url: Optional[str] = None) -> LeaseResponse:
    response = LeaseResponse.model_validate(lease)
    response.property_name = prop.name
    response.unit_name = unit.name
    response.document_url = document_url
    return response


def _lease_query():
    return (
        select(Lease, Unit, Property)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
    )


# --- Templates ---

@router.post("/templates", response_model=LeaseTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: LeaseTemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Create a lease template. A new default replaces the previous default."""
    if data.property_id:
        prop = await db.get(Property, data.property_id)
        if not prop or prop.landlord_id != current_user.landlord_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    if data.is_default:
        await db.execute(
            update(LeaseTemplate)
            .where(
                LeaseTemplate.landlord_id == current_user.landlord_id,
                LeaseTemplate.is_default.is_(True),
            )
            .values(is_default=False)
        )

    template = LeaseTemplate(landlord_id=current_user.landlord_id, **data.model_dump())
    db.add(template)
    await db.commit()
    await db.refresh(template)

    return LeaseTemplateResponse.model_validate(template)


@router.get("/templates", response_model=List[LeaseTemplateResponse])
async def list_templates(
    property_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """List the landlord's active lease templates."""
    query = select(LeaseTemplate).where(
        LeaseTemplate.landlord_id == current_user.landlord_id,
        LeaseTemplate.is_active.is_(True),
    )
    if property_id:
        query = query.where(LeaseTemplate.property_id == property_id)

    result = await db.execute(query.order_by(LeaseTemplate.created_at.desc()))
    return [LeaseTemplateResponse.model_validate(t) for t in result.scalars().all()]


# --- Leases ---

@router.get("", response_model=LeaseListResponse)
async def list_leases(
    unit_id: Optional[UUID] = None,
    lease_status: Optional[LeaseStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """List leases: a landlord's whole portfolio, or a tenant's own leases."""
    query = _lease_query()
    if current_user.role == UserRole.LANDLORD:
        query = query.where(Property.landlord_id == current_user.landlord_id)
    else:
        query = query.where(Lease.tenant_id == current_user.db_user_id)

    if unit_id:
        query = query.where(Lease.unit_id == unit_id)
    if lease_status:
        query = query.where(Lease.status == lease_status)

    result = await db.execute(query.order_by(Lease.created_at.desc()))
    leases = [_lease_response(lease, unit, prop) for lease, unit, prop in result.all()]

    return LeaseListResponse(leases=leases, total=len(leases))


@router.get("/{lease_id}", response_model=LeaseResponse)
async def get_lease(
    lease_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Get a lease with a short-lived link to its generated document."""
    result = await db.execute(_lease_query().where(Lease.id == lease_id))
    row = result.one_or_none()

    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lease not found")

    lease, unit, prop = row
    is_owner = current_user.role == UserRole.LANDLORD and prop.landlord_id == current_user.landlord_id
    if not is_owner and lease.tenant_id != current_user.db_user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lease not found")

    document_url = None
    if lease.document_path:
        document_url = await storage.get_download_url(lease.document_path)

    return _lease_response(lease, unit, prop, document_url)


@router.post("/{lease_id}/terminate", response_model=LeaseResponse)
async def terminate_lease(
    lease_id: UUID,
    request: Request,
    data: Optional[LeaseTerminateRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Terminate an active lease and put the unit back on the market."""
    result = await db.execute(
        _lease_query().where(
            Lease.id == lease_id,
            Property.landlord_id == current_user.landlord_id,
        )
    )
    row = result.one_or_none()

    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lease not found")

    lease, unit, prop = row
    if lease.status != LeaseStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Only active leases can be terminated (lease is {lease.status.value})",
        )

    lease.status = LeaseStatus.TERMINATED
    lease.terminated_at = datetime.utcnow()
    if data and data.notes:
        lease.notes = data.notes
    unit.is_available = True

    audit = AuditService(db)
    await audit.log(
        action=AuditAction.LEASE_TERMINATED,
        resource_type="lease",
        resource_id=lease.id,
        landlord_id=current_user.landlord_id,
        user_id=current_user.db_user_id,
        details={"notes": data.notes if data else None},
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    await db.commit()
    await db.refresh(lease)

    return _lease_response(lease, unit, prop)
