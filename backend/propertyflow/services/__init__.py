"""Services for PropertyFlow."""

from propertyflow.services.storage import StorageService, get_storage_service
from propertyflow.services.audit import AuditService
from propertyflow.services.jobs import JobsService
from propertyflow.services.email import EmailService
from propertyflow.services.notifications import NotificationService

__all__ = [
    "StorageService",
    "get_storage_service",
    "AuditService",
    "JobsService",
    "EmailService",
    "NotificationService",
]
