"""Audit logging service."""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.models.audit import AuditLog
from propertyflow.models.enums import AuditAction


class AuditService:
    """Service for creating audit log entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: AuditAction,
        resource_type: str,
        resource_id: UUID,
        landlord_id: Optional[UUID] = None,
        contractor_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """Create an audit log entry in the caller's transaction."""
        entry = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            landlord_id=landlord_id,
            contractor_id=contractor_id,
            user_id=user_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def log_application_decision(
        self,
        action: AuditAction,
        application_id: UUID,
        landlord_id: UUID,
        user_id: Optional[UUID],
        details: Optional[dict[str, Any]] = None,
    ) -> AuditLog:
        """Log an approve/reject/withdraw decision on an application."""
        return await self.log(
            action=action,
            resource_type="rental_application",
            resource_id=application_id,
            landlord_id=landlord_id,
            user_id=user_id,
            details=details,
        )

    async def log_document_reviewed(
        self,
        document_id: UUID,
        landlord_id: UUID,
        user_id: Optional[UUID],
        decision: str,
        reason: Optional[str] = None,
    ) -> AuditLog:
        return await self.log(
            action=AuditAction.DOCUMENT_REVIEWED,
            resource_type="verification_document",
            resource_id=document_id,
            landlord_id=landlord_id,
            user_id=user_id,
            details={"decision": decision, "reason": reason},
        )

    async def log_subscription_changed(
        self,
        contractor_id: UUID,
        from_tier: Optional[str],
        to_tier: str,
        status: str,
    ) -> AuditLog:
        return await self.log(
            action=AuditAction.SUBSCRIPTION_CHANGED,
            resource_type="contractor_profile",
            resource_id=contractor_id,
            contractor_id=contractor_id,
            details={"from_tier": from_tier, "to_tier": to_tier, "status": status},
        )
