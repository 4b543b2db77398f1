"""Contractor CRM schemas: customers, jobs, employees, inventory, invoices."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field, computed_field

from propertyflow.schemas.base import BaseSchema, IDMixin, TimestampMixin
from propertyflow.models.enums import ContractorJobStatus, InvoiceStatus


# Customers

class CustomerCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    notes: Optional[str] = None


class CustomerUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    notes: Optional[str] = None


class CustomerResponse(BaseSchema, IDMixin, TimestampMixin):
    contractor_id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


# Jobs

class JobCreate(BaseSchema):
    title: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = None
    address: Optional[str] = None
    customer_id: Optional[UUID] = None
    scheduled_date: Optional[date] = None
    estimated_cost_cents: Optional[int] = Field(None, ge=0)


class JobStatusUpdate(BaseSchema):
    status: ContractorJobStatus


class JobResponse(BaseSchema, IDMixin, TimestampMixin):
    contractor_id: UUID
    customer_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    address: Optional[str] = None
    status: ContractorJobStatus
    scheduled_date: Optional[date] = None
    estimated_cost_cents: Optional[int] = None
    completed_at: Optional[datetime] = None


# Employees

class EmployeeCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    role: Optional[str] = Field(None, max_length=100)
    hourly_rate_cents: Optional[int] = Field(None, ge=0)


class EmployeeResponse(BaseSchema, IDMixin, TimestampMixin):
    contractor_id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    hourly_rate_cents: Optional[int] = None
    is_active: bool


# Inventory

class InventoryItemCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=100)
    quantity: int = Field(0, ge=0)
    unit_cost_cents: Optional[int] = Field(None, ge=0)
    reorder_level: Optional[int] = Field(None, ge=0)


class InventoryAdjust(BaseSchema):
    """Relative quantity change; negative values consume stock."""

    delta: int


class InventoryItemResponse(BaseSchema, IDMixin, TimestampMixin):
    contractor_id: UUID
    name: str
    sku: Optional[str] = None
    quantity: int
    unit_cost_cents: Optional[int] = None
    reorder_level: Optional[int] = None


# Invoices

class InvoiceLineItem(BaseSchema):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(..., gt=0)
    unit_price_cents: int = Field(..., ge=0)

    @computed_field
    @property
    def amount_cents(self) -> int:
        return self.quantity * self.unit_price_cents


class InvoiceCreate(BaseSchema):
    customer_id: Optional[UUID] = None
    job_id: Optional[UUID] = None
    line_items: list[InvoiceLineItem] = Field(..., min_length=1)
    due_date: Optional[date] = None


class InvoiceStatusUpdate(BaseSchema):
    status: InvoiceStatus


class InvoiceResponse(BaseSchema, IDMixin, TimestampMixin):
    contractor_id: UUID
    customer_id: Optional[UUID] = None
    job_id: Optional[UUID] = None
    invoice_number: str
    status: InvoiceStatus
    line_items: list[dict]
    total_cents: int
    due_date: Optional[date] = None
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
