"""Contractor profile, usage counters and subscription history."""

import uuid
from datetime import date, datetime
from typing import Optional, Any

from sqlalchemy import String, DateTime, Date, ForeignKey, Enum as SQLEnum, Integer, Boolean
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from propertyflow.core.database import Base, JSONType
from propertyflow.models.enums import (
    SubscriptionTier,
    LicenseStatus,
    BackgroundCheckStatus,
    IdentityVerificationStatus,
)


class ContractorProfile(Base):
    """A contractor business operating under a subscription tier."""

    __tablename__ = "contractor_profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Subscription
    subscription_tier: Mapped[SubscriptionTier] = mapped_column(
        SQLEnum(SubscriptionTier),
        default=SubscriptionTier.STARTER,
        nullable=False,
    )
    # Raw Stripe subscription status (trialing, active, past_due, canceled, ...)
    subscription_status: Mapped[str] = mapped_column(String(50), default="trialing", nullable=False)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subscription_period_end: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Stripe Connect payouts
    stripe_connect_account_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )
    is_payment_ready: Mapped[bool] = mapped_column(Boolean, default=False)

    # License
    license_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    license_state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    license_status: Mapped[LicenseStatus] = mapped_column(
        SQLEnum(LicenseStatus),
        default=LicenseStatus.PENDING,
        nullable=False,
    )
    license_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    license_expires_at: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    license_details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    # Background check (Checkr)
    background_check_candidate_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    background_check_invitation_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    background_check_report_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, index=True
    )
    background_check_status: Mapped[BackgroundCheckStatus] = mapped_column(
        SQLEnum(BackgroundCheckStatus),
        default=BackgroundCheckStatus.NOT_STARTED,
        nullable=False,
    )
    background_check_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    background_check_expires: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Identity (Persona)
    identity_inquiry_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    identity_status: Mapped[IdentityVerificationStatus] = mapped_column(
        SQLEnum(IdentityVerificationStatus),
        default=IdentityVerificationStatus.NOT_STARTED,
        nullable=False,
    )
    identity_verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Invoice numbering
    next_invoice_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class ContractorUsage(Base):
    """Running counters checked against tier limits. One row per contractor."""

    __tablename__ = "contractor_usage"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contractor_profiles.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    active_jobs_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    invoices_this_month: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_customers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    team_members_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    inventory_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    equipment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active_leads_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Monthly counters reset when this passes
    billing_period_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class SubscriptionEvent(Base):
    """History of tier and status changes received from Stripe."""

    __tablename__ = "subscription_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contractor_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)  # created, upgraded, downgraded, canceled, renewed, payment_failed
    from_tier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_tier: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    stripe_event_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
