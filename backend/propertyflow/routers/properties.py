"""Properties and Units router."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import require_landlord, AuthenticatedUser
from propertyflow.models.enums import LeaseStatus
from propertyflow.models.lease import Lease
from propertyflow.models.property import Property, Unit
from propertyflow.schemas.property import (
    PropertyCreate,
    PropertyUpdate,
    PropertyResponse,
    UnitCreate,
    UnitUpdate,
    UnitResponse,
)
from propertyflow.services.slugs import unique_slug

router = APIRouter(prefix="/properties", tags=["properties"])


def _with_unit_counts():
    return (
        select(
            Property,
            func.count(Unit.id).label("unit_count"),
            func.coalesce(func.sum(case((Unit.is_available.is_(True), 1), else_=0)), 0).label("available"),
        )
        .outerjoin(Unit, Property.id == Unit.property_id)
        .group_by(Property.id)
    )


def _property_response(prop: Property, unit_count: int = 0, available: int = 0) -> PropertyResponse:
    response = PropertyResponse.model_validate(prop)
    response.unit_count = unit_count
    response.available_unit_count = available
    return response


async def _get_owned_property(db: AsyncSession, property_id: UUID, landlord_id: UUID) -> Property:
    result = await db.execute(
        select(Property).where(
            Property.id == property_id,
            Property.landlord_id == landlord_id,
        )
    )
    prop = result.scalar_one_or_none()
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return prop


@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
async def create_property(
    data: PropertyCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Create a new property (landlord-scoped)."""
    prop = Property(
        landlord_id=current_user.landlord_id,
        slug=await unique_slug(
            db, Property.slug, data.name, Property.landlord_id == current_user.landlord_id,
        ),
        **data.model_dump(),
    )
    db.add(prop)
    await db.commit()
    await db.refresh(prop)

    return _property_response(prop)


@router.get("", response_model=List[PropertyResponse])
async def list_properties(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """List the landlord's properties with unit counts."""
    result = await db.execute(
        _with_unit_counts()
        .where(Property.landlord_id == current_user.landlord_id)
        .order_by(Property.name)
    )
    return [_property_response(row[0], row[1], row[2]) for row in result.all()]


@router.get("/{property_id}", response_model=PropertyResponse)
async def get_property(
    property_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Get a property by ID."""
    result = await db.execute(
        _with_unit_counts().where(
            Property.id == property_id,
            Property.landlord_id == current_user.landlord_id,
        )
    )
    row = result.one_or_none()

    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")

    return _property_response(row[0], row[1], row[2])


@router.patch("/{property_id}", response_model=PropertyResponse)
async def update_property(
    property_id: UUID,
    data: PropertyUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Update a property."""
    prop = await _get_owned_property(db, property_id, current_user.landlord_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(prop, field, value)

    await db.commit()

    result = await db.execute(_with_unit_counts().where(Property.id == property_id))
    row = result.one()
    return _property_response(row[0], row[1], row[2])


@router.delete("/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_property(
    property_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Delete a property. Refused while any unit has an open lease."""
    prop = await _get_owned_property(db, property_id, current_user.landlord_id)

    open_lease = await db.execute(
        select(Lease.id)
        .join(Unit, Lease.unit_id == Unit.id)
        .where(
            Unit.property_id == prop.id,
            Lease.status.in_([LeaseStatus.ACTIVE, LeaseStatus.PENDING_SIGNATURE]),
        )
        .limit(1)
    )
    if open_lease.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Property has active or pending leases",
        )

    await db.delete(prop)
    await db.commit()


# --- Units ---

@router.post("/{property_id}/units", response_model=UnitResponse, status_code=status.HTTP_201_CREATED)
async def create_unit(
    property_id: UUID,
    data: UnitCreate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Create a unit within a property. Unit names are unique per property."""
    await _get_owned_property(db, property_id, current_user.landlord_id)

    unit = Unit(property_id=property_id, **data.model_dump())
    db.add(unit)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Unit '{data.name}' already exists in this property",
        )
    await db.refresh(unit)

    return UnitResponse.model_validate(unit)


@router.get("/{property_id}/units", response_model=List[UnitResponse])
async def list_units(
    property_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """List all units for a property."""
    await _get_owned_property(db, property_id, current_user.landlord_id)

    result = await db.execute(
        select(Unit)
        .where(Unit.property_id == property_id)
        .order_by(Unit.name)
    )
    return [UnitResponse.model_validate(u) for u in result.scalars().all()]


@router.patch("/{property_id}/units/{unit_id}", response_model=UnitResponse)
async def update_unit(
    property_id: UUID,
    unit_id: UUID,
    data: UnitUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Update a unit."""
    result = await db.execute(
        select(Unit)
        .join(Property)
        .where(
            Unit.id == unit_id,
            Unit.property_id == property_id,
            Property.landlord_id == current_user.landlord_id,
        )
    )
    unit = result.scalar_one_or_none()

    if not unit:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unit not found")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(unit, field, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A unit with that name already exists in this property",
        )
    await db.refresh(unit)

    return UnitResponse.model_validate(unit)
