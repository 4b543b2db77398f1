"""SQLAlchemy models for PropertyFlow."""

from propertyflow.models.user import User
from propertyflow.models.landlord import Landlord
from propertyflow.models.property import Property, Unit
from propertyflow.models.application import RentalApplication
from propertyflow.models.lease import Lease, LeaseTemplate, SignatureRequest
from propertyflow.models.verification import VerificationDocument, ApplicationVerification
from propertyflow.models.payment import RentPayment, PaymentTransaction, ProcessedWebhookEvent
from propertyflow.models.contractor import ContractorProfile, ContractorUsage, SubscriptionEvent
from propertyflow.models.contractor_ops import (
    Customer,
    ContractorJob,
    Employee,
    InventoryItem,
    Invoice,
)
from propertyflow.models.notification import Notification
from propertyflow.models.audit import AuditLog
from propertyflow.models.jobs import JobsOutbox

__all__ = [
    "User",
    "Landlord",
    "Property",
    "Unit",
    "RentalApplication",
    "Lease",
    "LeaseTemplate",
    "SignatureRequest",
    "VerificationDocument",
    "ApplicationVerification",
    "RentPayment",
    "PaymentTransaction",
    "ProcessedWebhookEvent",
    "ContractorProfile",
    "ContractorUsage",
    "SubscriptionEvent",
    "Customer",
    "ContractorJob",
    "Employee",
    "InventoryItem",
    "Invoice",
    "Notification",
    "AuditLog",
    "JobsOutbox",
]
