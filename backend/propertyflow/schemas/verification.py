"""Verification document and screening schemas."""

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import Field, model_validator

from propertyflow.schemas.base import BaseSchema
from propertyflow.models.enums import (
    CategoryVerificationStatus,
    DocumentCategory,
    DocumentStatus,
    DocumentType,
    OverallVerificationStatus,
    VerificationMethod,
)

IDENTITY_DOC_TYPES = {DocumentType.DRIVERS_LICENSE, DocumentType.STATE_ID, DocumentType.PASSPORT}


class DocumentUploadUrlRequest(BaseSchema):
    """Request a presigned upload URL for a verification document."""

    category: DocumentCategory
    doc_type: DocumentType
    file_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., max_length=100)
    file_size_bytes: int = Field(..., gt=0)

    @model_validator(mode="after")
    def validate_doc_type_matches_category(self):
        is_identity_type = self.doc_type in IDENTITY_DOC_TYPES
        if self.category == DocumentCategory.IDENTITY and not is_identity_type:
            raise ValueError("Identity documents must be a driver's license, state ID or passport")
        if self.category == DocumentCategory.EMPLOYMENT and is_identity_type:
            raise ValueError("Employment documents cannot be identity document types")
        return self


class DocumentUploadUrlResponse(BaseSchema):
    upload_url: str
    object_path: str
    expires_at: datetime


class DocumentConfirmRequest(BaseSchema):
    """Confirm an upload finished; creates the document record."""

    category: DocumentCategory
    doc_type: DocumentType
    object_path: str = Field(..., min_length=1, max_length=500)
    file_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., max_length=100)
    file_size_bytes: int = Field(..., gt=0)


class DocumentReviewRequest(BaseSchema):
    decision: Literal["verify", "reject"]
    reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_reason(self):
        if self.decision == "reject" and not self.reason:
            raise ValueError("A reason is required when rejecting a document")
        return self


class VerificationDocumentResponse(BaseSchema):
    id: UUID
    application_id: UUID
    category: DocumentCategory
    doc_type: DocumentType
    original_file_name: str
    mime_type: str
    file_size_bytes: int
    status: DocumentStatus
    ocr_confidence: Optional[int] = None
    ocr_processed_at: Optional[datetime] = None
    extracted_data: Optional[dict[str, Any]] = None
    verification_method: Optional[VerificationMethod] = None
    rejection_reason: Optional[str] = None
    verified_at: Optional[datetime] = None
    uploaded_at: datetime


class CategoryRequirement(BaseSchema):
    required: bool
    uploaded: bool
    verified: bool
    count: int
    verified_count: int
    required_count: int


class RequiredDocuments(BaseSchema):
    identity: CategoryRequirement
    employment: CategoryRequirement


class VerificationStatusResponse(BaseSchema):
    application_id: UUID
    identity_status: CategoryVerificationStatus
    employment_status: CategoryVerificationStatus
    overall_status: OverallVerificationStatus
    can_submit: bool
    identity_verified_at: Optional[datetime] = None
    employment_verified_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    monthly_income_cents: Optional[int] = None
    required_documents: RequiredDocuments


class IncomeDetails(BaseSchema):
    monthly_income_cents: Optional[int] = None
    rent_amount_cents: int
    required_income_cents: int
    income_to_rent_ratio: Optional[float] = None
    meets_income_requirement: bool


class VerificationReport(BaseSchema):
    status: VerificationStatusResponse
    documents: list[VerificationDocumentResponse]
    income: IncomeDetails
