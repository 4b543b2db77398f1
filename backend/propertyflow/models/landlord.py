"""Landlord profile model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propertyflow.core.database import Base
from propertyflow.models.enums import ConnectOnboardingStatus

if TYPE_CHECKING:
    from propertyflow.models.property import Property
    from propertyflow.models.lease import LeaseTemplate


class Landlord(Base):
    """A landlord business. Every property belongs to exactly one landlord."""

    __tablename__ = "landlords"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    subdomain: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    company_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    company_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Number of monthly rents collected as deposit at approval time
    security_deposit_months: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Stripe Connect payouts
    stripe_connect_account_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stripe_onboarding_status: Mapped[ConnectOnboardingStatus] = mapped_column(
        SQLEnum(ConnectOnboardingStatus),
        default=ConnectOnboardingStatus.NOT_STARTED,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    properties: Mapped[list["Property"]] = relationship(
        "Property", back_populates="landlord", cascade="all, delete-orphan"
    )
    lease_templates: Mapped[list["LeaseTemplate"]] = relationship(
        "LeaseTemplate", back_populates="landlord", cascade="all, delete-orphan"
    )
