"""Lease, LeaseTemplate and SignatureRequest models."""

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    String, DateTime, Date, ForeignKey, Enum as SQLEnum, Text, Integer, Boolean,
    CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propertyflow.core.database import Base
from propertyflow.models.enums import (
    LeaseStatus,
    LeaseGeneratedFrom,
    SignerRole,
    SignatureStatus,
)

if TYPE_CHECKING:
    from propertyflow.models.landlord import Landlord
    from propertyflow.models.property import Unit


class LeaseTemplate(Base):
    """Lease body with {{ placeholders }} rendered at approval time.

    A template with a property_id applies to that property only; otherwise
    the landlord's default template is used.
    """

    __tablename__ = "lease_templates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    landlord_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("landlords.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("properties.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    landlord: Mapped["Landlord"] = relationship("Landlord", back_populates="lease_templates")


class Lease(Base):
    """A lease agreement between a landlord and a tenant for one unit."""

    __tablename__ = "leases"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    unit_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("units.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    application_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rental_applications.id", ondelete="SET NULL"),
        nullable=True,
    )
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("lease_templates.id", ondelete="SET NULL"),
        nullable=True,
    )

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)  # NULL = month-to-month

    rent_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    billing_day_of_month: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    status: Mapped[LeaseStatus] = mapped_column(
        SQLEnum(LeaseStatus),
        default=LeaseStatus.DRAFT,
        nullable=False,
        index=True,
    )

    # Generated document
    document_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    generated_from: Mapped[LeaseGeneratedFrom] = mapped_column(
        SQLEnum(LeaseGeneratedFrom),
        default=LeaseGeneratedFrom.MANUAL,
        nullable=False,
    )
    generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    terminated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    unit: Mapped["Unit"] = relationship("Unit", back_populates="leases")
    signature_requests: Mapped[list["SignatureRequest"]] = relationship(
        "SignatureRequest", back_populates="lease", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("rent_amount_cents > 0", name="ck_lease_rent_positive"),
        CheckConstraint(
            "billing_day_of_month BETWEEN 1 AND 28",
            name="ck_lease_billing_day",
        ),
        CheckConstraint(
            "end_date IS NULL OR end_date > start_date",
            name="ck_lease_dates",
        ),
    )


class SignatureRequest(Base):
    """A one-time signing link for one party of a lease.

    Only the SHA-256 hash of the token is stored; the raw token lives in
    the emailed link.
    """

    __tablename__ = "signature_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    lease_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("leases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[SignerRole] = mapped_column(SQLEnum(SignerRole), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    status: Mapped[SignatureStatus] = mapped_column(
        SQLEnum(SignatureStatus),
        default=SignatureStatus.SENT,
        nullable=False,
    )
    signer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    signer_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    lease: Mapped["Lease"] = relationship("Lease", back_populates="signature_requests")
