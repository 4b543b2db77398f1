"""Property and Unit schemas."""

from typing import Optional
from uuid import UUID

from pydantic import Field

from propertyflow.schemas.base import BaseSchema, IDMixin, TimestampMixin
from propertyflow.models.enums import PropertyType


class PropertyCreate(BaseSchema):
    """Create a new property."""

    name: str = Field(..., min_length=2, max_length=255)
    property_type: PropertyType
    address_line1: str = Field(..., min_length=5, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=50)
    zip_code: str = Field(..., min_length=5, max_length=20)
    description: Optional[str] = None


class PropertyUpdate(BaseSchema):
    """Update property."""

    name: Optional[str] = Field(None, min_length=2, max_length=255)
    property_type: Optional[PropertyType] = None
    address_line1: Optional[str] = Field(None, min_length=5, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, min_length=2, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=50)
    zip_code: Optional[str] = Field(None, min_length=5, max_length=20)
    description: Optional[str] = None


class PropertyResponse(BaseSchema, IDMixin, TimestampMixin):
    """Property response."""

    landlord_id: UUID
    name: str
    slug: str
    property_type: PropertyType
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    zip_code: str
    description: Optional[str] = None
    unit_count: int = 0
    available_unit_count: int = 0


class UnitCreate(BaseSchema):
    """Create a new unit."""

    name: str = Field(..., min_length=1, max_length=100)
    unit_type: Optional[str] = Field(None, max_length=50)
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)  # stored as int (15 = 1.5)
    sq_ft: Optional[int] = Field(None, gt=0)
    rent_amount_cents: int = Field(..., gt=0)
    is_available: bool = True


class UnitUpdate(BaseSchema):
    """Update unit."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    unit_type: Optional[str] = Field(None, max_length=50)
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    sq_ft: Optional[int] = Field(None, gt=0)
    rent_amount_cents: Optional[int] = Field(None, gt=0)
    is_available: Optional[bool] = None


class UnitResponse(BaseSchema, IDMixin, TimestampMixin):
    """Unit response."""

    property_id: UUID
    name: str
    unit_type: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    sq_ft: Optional[int] = None
    rent_amount_cents: int
    is_available: bool
