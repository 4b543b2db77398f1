"""Contractor verification schemas."""

from datetime import date, datetime
from typing import Optional

from pydantic import Field, field_validator

from propertyflow.schemas.base import BaseSchema
from propertyflow.models.enums import (
    BackgroundCheckStatus,
    IdentityVerificationStatus,
    LicenseStatus,
)


class LicenseVerifyRequest(BaseSchema):
    license_number: str = Field(..., min_length=3, max_length=100)
    state: str = Field(..., min_length=2, max_length=2)
    license_type: str = Field("general", max_length=100)

    @field_validator("state")
    @classmethod
    def upper_state(cls, value: str) -> str:
        return value.upper()


class LicenseStatusResponse(BaseSchema):
    is_verified: bool
    license_number: Optional[str] = None
    license_state: Optional[str] = None
    license_type: Optional[str] = None
    status: LicenseStatus
    verified_at: Optional[datetime] = None
    expires_at: Optional[date] = None
    needs_reverification: bool
    message: Optional[str] = None
    retryable: bool = False


class BackgroundCheckRequest(BaseSchema):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)


class BackgroundCheckInitiated(BaseSchema):
    candidate_id: str
    invitation_id: str
    invitation_url: str
    expires_at: datetime


class BackgroundCheckStatusResponse(BaseSchema):
    is_verified: bool
    status: BackgroundCheckStatus
    candidate_id: Optional[str] = None
    report_id: Optional[str] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    needs_renewal: bool


class IdentityInquiryResponse(BaseSchema):
    inquiry_id: str
    session_token: Optional[str] = None
    inquiry_url: Optional[str] = None


class IdentityStatusResponse(BaseSchema):
    is_verified: bool
    status: IdentityVerificationStatus
    inquiry_id: Optional[str] = None
    verified_at: Optional[datetime] = None


class VerificationSummary(BaseSchema):
    """Badge summary shown on a contractor's profile."""

    license: LicenseStatusResponse
    background_check: BackgroundCheckStatusResponse
    identity: IdentityStatusResponse
    is_fully_verified: bool
