"""Enumeration types for the PropertyFlow domain model."""

from enum import Enum


class UserRole(str, Enum):
    """Account type of a user."""
    ADMIN = "admin"
    LANDLORD = "landlord"
    CONTRACTOR = "contractor"
    TENANT = "tenant"


class PropertyType(str, Enum):
    """Type of property."""
    SINGLE_FAMILY = "single_family"
    MULTI_FAMILY = "multi_family"
    APARTMENT = "apartment"
    CONDO = "condo"
    COMMERCIAL = "commercial"


class ConnectOnboardingStatus(str, Enum):
    """Stripe Connect onboarding state of a payee."""
    NOT_STARTED = "not_started"
    PENDING = "pending"
    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"


class LeaseStatus(str, Enum):
    """Status of a lease."""
    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    ACTIVE = "active"
    TERMINATED = "terminated"
    ENDED = "ended"


class LeaseGeneratedFrom(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class SignerRole(str, Enum):
    TENANT = "tenant"
    LANDLORD = "landlord"


class SignatureStatus(str, Enum):
    SENT = "sent"
    SIGNED = "signed"
    EXPIRED = "expired"


class ApplicationStatus(str, Enum):
    """Lifecycle of a rental application."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class DocumentCategory(str, Enum):
    IDENTITY = "identity"
    EMPLOYMENT = "employment"


class DocumentType(str, Enum):
    """Kind of uploaded verification document."""
    DRIVERS_LICENSE = "drivers_license"
    STATE_ID = "state_id"
    PASSPORT = "passport"
    PAY_STUB = "pay_stub"
    BANK_STATEMENT = "bank_statement"
    W2 = "w2"
    OFFER_LETTER = "offer_letter"
    OTHER = "other"


class DocumentStatus(str, Enum):
    """Processing status of a verification document."""
    PENDING = "pending"
    PROCESSING = "processing"
    NEEDS_REVIEW = "needs_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


class VerificationMethod(str, Enum):
    OCR = "ocr"
    MANUAL = "manual"


class CategoryVerificationStatus(str, Enum):
    """Aggregated status of one document category."""
    PENDING = "pending"
    NEEDS_REVIEW = "needs_review"
    VERIFIED = "verified"
    REJECTED = "rejected"


class OverallVerificationStatus(str, Enum):
    """Aggregated status across identity and employment."""
    INCOMPLETE = "incomplete"
    IN_PROGRESS = "in_progress"
    DOCUMENTS_SUBMITTED = "documents_submitted"
    COMPLETE = "complete"


class PaymentKind(str, Enum):
    RENT = "rent"
    DEPOSIT = "deposit"


class RentPaymentStatus(str, Enum):
    """Status of a scheduled rent payment."""
    PENDING = "pending"
    PROCESSING = "processing"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    FAILED = "failed"


class TransactionStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class SubscriptionTier(str, Enum):
    """Contractor subscription tier, ordered starter < pro < enterprise."""
    STARTER = "starter"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class LicenseStatus(str, Enum):
    """Result of a state license lookup."""
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    REVOKED = "revoked"
    NOT_FOUND = "not_found"


class BackgroundCheckStatus(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    CLEAR = "clear"
    CONSIDER = "consider"
    EXPIRED = "expired"


class IdentityVerificationStatus(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class JobStatus(str, Enum):
    """Status of an outbox job."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    DEAD_LETTER = "DEAD_LETTER"


class ContractorJobStatus(str, Enum):
    """Status of a contractor job."""
    QUOTED = "quoted"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELED = "canceled"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    VOID = "void"


class NotificationType(str, Enum):
    """In-app notification types."""
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    LEASE_SIGNED = "lease_signed"
    PAYMENT_RECEIVED = "payment_received"
    VERIFICATION_UPDATE = "verification_update"
    LIMIT_WARNING = "limit_warning"
    LIMIT_REACHED = "limit_reached"
    FEATURE_LOCKED = "feature_locked"
    UPGRADE_PROMPT = "upgrade_prompt"
    UPGRADE_SUCCESS = "upgrade_success"


class AuditAction(str, Enum):
    """Audited actions."""
    APPLICATION_SUBMITTED = "APPLICATION_SUBMITTED"
    APPLICATION_APPROVED = "APPLICATION_APPROVED"
    APPLICATION_REJECTED = "APPLICATION_REJECTED"
    APPLICATION_WITHDRAWN = "APPLICATION_WITHDRAWN"
    LEASE_SIGNED = "LEASE_SIGNED"
    LEASE_TERMINATED = "LEASE_TERMINATED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_REVIEWED = "DOCUMENT_REVIEWED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    SUBSCRIPTION_CHANGED = "SUBSCRIPTION_CHANGED"
    LICENSE_VERIFIED = "LICENSE_VERIFIED"
    BACKGROUND_CHECK_UPDATED = "BACKGROUND_CHECK_UPDATED"
    IDENTITY_VERIFICATION_UPDATED = "IDENTITY_VERIFICATION_UPDATED"
