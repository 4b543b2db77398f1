"""Auth and registration schemas."""

from typing import Optional
from uuid import UUID

from pydantic import Field, model_validator

from propertyflow.schemas.base import BaseSchema
from propertyflow.models.enums import UserRole


class RegisterRequest(BaseSchema):
    """Create the user record and role profile for a Firebase identity."""

    role: UserRole
    full_name: str = Field(..., min_length=2, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    company_name: Optional[str] = Field(None, min_length=2, max_length=255)
    business_name: Optional[str] = Field(None, min_length=2, max_length=255)

    @model_validator(mode="after")
    def validate_role_profile(self):
        if self.role == UserRole.ADMIN:
            raise ValueError("admin accounts cannot be self-registered")
        if self.role == UserRole.LANDLORD and not self.company_name:
            raise ValueError("company_name is required for landlords")
        if self.role == UserRole.CONTRACTOR and not self.business_name:
            raise ValueError("business_name is required for contractors")
        return self


class CurrentUserResponse(BaseSchema):
    """Current authenticated user info."""

    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    db_user_id: Optional[UUID] = None
    role: Optional[UserRole] = None
    full_name: Optional[str] = None
    landlord_id: Optional[UUID] = None
    contractor_id: Optional[UUID] = None
