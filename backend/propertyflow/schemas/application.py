"""Rental application and approval schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field, model_validator

from propertyflow.schemas.base import BaseSchema, IDMixin
from propertyflow.schemas.lease import LeaseSummary
from propertyflow.schemas.verification import VerificationStatusResponse
from propertyflow.models.enums import ApplicationStatus


class ApplicationCreate(BaseSchema):
    """Submit a rental application for a unit."""

    unit_id: UUID
    full_name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    desired_move_in_date: Optional[date] = None
    stated_monthly_income_cents: Optional[int] = Field(None, ge=0)
    employer_name: Optional[str] = Field(None, max_length=255)
    job_title: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=5000)


class ApplicationResponse(BaseSchema, IDMixin):
    applicant_id: Optional[UUID] = None
    unit_id: UUID
    full_name: str
    email: str
    phone: Optional[str] = None
    desired_move_in_date: Optional[date] = None
    stated_monthly_income_cents: Optional[int] = None
    employer_name: Optional[str] = None
    job_title: Optional[str] = None
    notes: Optional[str] = None
    status: ApplicationStatus
    admin_response: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    # Denormalized for list views
    property_name: Optional[str] = None
    unit_name: Optional[str] = None


class ApplicationDetailResponse(ApplicationResponse):
    verification: Optional[VerificationStatusResponse] = None


class ApplicationListResponse(BaseSchema):
    applications: list[ApplicationResponse]
    total: int


class ApproveApplicationRequest(BaseSchema):
    """Approve an application and generate its lease."""

    unit_id: UUID
    lease_start_date: date
    lease_end_date: Optional[date] = None  # None = month-to-month
    rent_amount_cents: Optional[int] = Field(None, gt=0)
    billing_day_of_month: int = Field(1, ge=1, le=28)

    @model_validator(mode="after")
    def validate_dates(self):
        if self.lease_end_date and self.lease_end_date <= self.lease_start_date:
            raise ValueError("lease_end_date must be after lease_start_date")
        return self


class RejectApplicationRequest(BaseSchema):
    reason: Optional[str] = Field(None, max_length=2000)


class ApplicationSummary(BaseSchema):
    id: UUID
    status: ApplicationStatus
    full_name: str
    email: str


class ApprovalResult(BaseSchema):
    success: bool = True
    application: ApplicationSummary
    lease: LeaseSummary
    signing_url: str
    signing_token: str


class RejectionResult(BaseSchema):
    success: bool = True
    application: ApplicationSummary


class TemplateInfo(BaseSchema):
    id: UUID
    name: str
    is_default: bool
    property_id: Optional[UUID] = None


class TemplateResolution(BaseSchema):
    has_template: bool
    template: Optional[TemplateInfo] = None
    message: str
