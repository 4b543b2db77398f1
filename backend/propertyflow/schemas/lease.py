"""Lease, lease template and signing schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from propertyflow.schemas.base import BaseSchema, IDMixin, TimestampMixin
from propertyflow.models.enums import (
    LeaseGeneratedFrom,
    LeaseStatus,
    SignatureStatus,
    SignerRole,
)


class LeaseSummary(BaseSchema):
    id: UUID
    status: LeaseStatus
    start_date: date
    end_date: Optional[date] = None
    rent_amount_cents: int


class LeaseResponse(BaseSchema, IDMixin, TimestampMixin):
    """Lease response."""

    unit_id: UUID
    tenant_id: UUID
    application_id: Optional[UUID] = None
    template_id: Optional[UUID] = None
    start_date: date
    end_date: Optional[date] = None
    rent_amount_cents: int
    billing_day_of_month: int
    status: LeaseStatus
    generated_from: LeaseGeneratedFrom
    generated_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    terminated_at: Optional[datetime] = None
    notes: Optional[str] = None

    # Denormalized
    property_name: Optional[str] = None
    unit_name: Optional[str] = None
    document_url: Optional[str] = None


class LeaseListResponse(BaseSchema):
    leases: list[LeaseResponse]
    total: int


class LeaseTerminateRequest(BaseSchema):
    notes: Optional[str] = Field(None, max_length=2000)


class LeaseTemplateCreate(BaseSchema):
    """Create a lease template. The body may use {{ placeholder }} fields."""

    name: str = Field(..., min_length=2, max_length=255)
    body: str = Field(..., min_length=10)
    property_id: Optional[UUID] = None
    is_default: bool = False


class LeaseTemplateResponse(BaseSchema, IDMixin, TimestampMixin):
    landlord_id: UUID
    property_id: Optional[UUID] = None
    name: str
    body: str
    is_default: bool
    is_active: bool


class SigningView(BaseSchema):
    """What a signer sees before signing."""

    role: SignerRole
    status: SignatureStatus
    recipient_name: Optional[str] = None
    expires_at: datetime
    property_name: str
    unit_name: str
    start_date: date
    end_date: Optional[date] = None
    rent_amount_cents: int
    document_url: Optional[str] = None


class SignRequest(BaseSchema):
    signer_name: str = Field(..., min_length=2, max_length=255)


class SignResult(BaseSchema):
    success: bool = True
    lease_id: UUID
    lease_status: LeaseStatus
    fully_signed: bool
