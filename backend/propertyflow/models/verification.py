"""Tenant screening: uploaded verification documents and per-application status."""

import uuid
from datetime import datetime
from typing import Optional, Any

from sqlalchemy import String, DateTime, ForeignKey, Enum as SQLEnum, Text, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from propertyflow.core.database import Base, JSONType
from propertyflow.models.enums import (
    DocumentCategory,
    DocumentType,
    DocumentStatus,
    VerificationMethod,
    CategoryVerificationStatus,
    OverallVerificationStatus,
)


class VerificationDocument(Base):
    """An identity or employment document uploaded for an application."""

    __tablename__ = "verification_documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rental_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    landlord_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("landlords.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    category: Mapped[DocumentCategory] = mapped_column(SQLEnum(DocumentCategory), nullable=False)
    doc_type: Mapped[DocumentType] = mapped_column(SQLEnum(DocumentType), nullable=False)

    # Storage
    object_path: Mapped[str] = mapped_column(String(500), nullable=False)
    original_file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(
        SQLEnum(DocumentStatus),
        default=DocumentStatus.PENDING,
        nullable=False,
        index=True,
    )

    # OCR output
    ocr_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ocr_confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 0-100
    ocr_processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    extracted_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Review outcome
    verification_method: Mapped[Optional[VerificationMethod]] = mapped_column(
        SQLEnum(VerificationMethod), nullable=True
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    uploaded_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ApplicationVerification(Base):
    """Aggregated screening status for one application."""

    __tablename__ = "application_verifications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rental_applications.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    identity_status: Mapped[CategoryVerificationStatus] = mapped_column(
        SQLEnum(CategoryVerificationStatus),
        default=CategoryVerificationStatus.PENDING,
        nullable=False,
    )
    identity_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    identity_document_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("verification_documents.id", ondelete="SET NULL"),
        nullable=True,
    )

    employment_status: Mapped[CategoryVerificationStatus] = mapped_column(
        SQLEnum(CategoryVerificationStatus),
        default=CategoryVerificationStatus.PENDING,
        nullable=False,
    )
    employment_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    overall_status: Mapped[OverallVerificationStatus] = mapped_column(
        SQLEnum(OverallVerificationStatus),
        default=OverallVerificationStatus.INCOMPLETE,
        nullable=False,
        index=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    monthly_income_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
