"""Rent payment and Stripe Connect schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from propertyflow.schemas.base import BaseSchema, IDMixin
from propertyflow.models.enums import ConnectOnboardingStatus, PaymentKind, RentPaymentStatus


class RentPaymentResponse(BaseSchema, IDMixin):
    lease_id: UUID
    tenant_id: UUID
    kind: PaymentKind
    due_date: date
    amount_cents: int
    amount_paid_cents: int
    status: RentPaymentStatus
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    created_at: datetime

    # Denormalized
    property_name: Optional[str] = None
    unit_name: Optional[str] = None


class RentPaymentListResponse(BaseSchema):
    payments: list[RentPaymentResponse]
    total: int


class CheckoutResponse(BaseSchema):
    """Client secret for confirming the PaymentIntent in the browser."""

    payment_intent_id: str
    client_secret: str
    amount_cents: int


class ConnectOnboardingResponse(BaseSchema):
    account_id: str
    onboarding_url: str
    status: ConnectOnboardingStatus


class WebhookAck(BaseSchema):
    received: bool = True
    status: str
