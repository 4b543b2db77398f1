"""Public signing links for generated leases.

Each party signs through its own one-time link. The tenant's link goes out
at approval time; once the tenant has signed, the landlord's request gets a
fresh token and a countersign email. A lease becomes active when every
request on it is signed.
"""

import logging
from datetime import datetime, timedelta
from typing import NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.errors import SigningError
from propertyflow.core.security import generate_signing_token, hash_token
from propertyflow.models.enums import (
    AuditAction,
    LeaseStatus,
    NotificationType,
    SignatureStatus,
    SignerRole,
)
from propertyflow.models.landlord import Landlord
from propertyflow.models.lease import Lease, SignatureRequest
from propertyflow.models.property import Property, Unit
from propertyflow.schemas.lease import SigningView, SignResult
from propertyflow.services.application_approval import SIGNING_LINK_DAYS, signing_url
from propertyflow.services.audit import AuditService
from propertyflow.services.email import format_cents
from propertyflow.services.jobs import JobsService
from propertyflow.services.notifications import NotificationService
from propertyflow.services.storage import StorageService

logger = logging.getLogger(__name__)


class SigningContext(NamedTuple):
    request: SignatureRequest
    lease: Lease
    unit: Unit
    property: Property


class LeaseSigningService:

    def __init__(self, db: AsyncSession, storage: Optional[StorageService] = None):
        self.db = db
        self.storage = storage
        self.jobs = JobsService(db)
        self.audit = AuditService(db)
        self.notifications = NotificationService(db)

    async def _load(self, token: str) -> SigningContext:
        result = await self.db.execute(
            select(SignatureRequest, Lease, Unit, Property)
            .join(Lease, SignatureRequest.lease_id == Lease.id)
            .join(Unit, Lease.unit_id == Unit.id)
            .join(Property, Unit.property_id == Property.id)
            .where(SignatureRequest.token_hash == hash_token(token))
        )
        row = result.one_or_none()
        if not row:
            raise SigningError("NOT_FOUND", "Signing link not found")
        return SigningContext(*row)

    @staticmethod
    def _ensure_not_expired(request: SignatureRequest, now: datetime) -> None:
        if request.status == SignatureStatus.EXPIRED or request.expires_at < now:
            raise SigningError("EXPIRED", "Link expired")

    async def view(self, token: str) -> SigningView:
        ctx = await self._load(token)
        now = datetime.utcnow()
        if ctx.request.status != SignatureStatus.SIGNED:
            self._ensure_not_expired(ctx.request, now)

        document_url = None
        if self.storage and ctx.lease.document_path:
            document_url = await self.storage.get_download_url(ctx.lease.document_path)

        return SigningView(
            role=ctx.request.role,
            status=ctx.request.status,
            recipient_name=ctx.request.recipient_name,
            expires_at=ctx.request.expires_at,
            property_name=ctx.property.name,
            unit_name=ctx.unit.name,
            start_date=ctx.lease.start_date,
            end_date=ctx.lease.end_date,
            rent_amount_cents=ctx.lease.rent_amount_cents,
            document_url=document_url,
        )

    async def sign(self, token: str, signer_name: str, signer_ip: Optional[str] = None) -> SignResult:
        ctx = await self._load(token)
        request, lease = ctx.request, ctx.lease
        now = datetime.utcnow()

        if request.status == SignatureStatus.SIGNED:
            raise SigningError("ALREADY_SIGNED", "This document has already been signed")
        self._ensure_not_expired(request, now)
        if lease.status != LeaseStatus.PENDING_SIGNATURE:
            raise SigningError(
                "LEASE_NOT_SIGNABLE",
                f"Lease is {lease.status.value} and can no longer be signed",
            )

        request.status = SignatureStatus.SIGNED
        request.signer_name = signer_name
        request.signer_ip = signer_ip
        request.signed_at = now
        await self.db.flush()

        landlord = await self.db.get(Landlord, ctx.property.landlord_id)

        result = await self.db.execute(
            select(SignatureRequest).where(SignatureRequest.lease_id == lease.id)
        )
        requests = result.scalars().all()
        fully_signed = all(r.status == SignatureStatus.SIGNED for r in requests)

        if fully_signed:
            lease.status = LeaseStatus.ACTIVE
            lease.signed_at = now
            ctx.unit.is_available = False
        elif request.role == SignerRole.TENANT:
            landlord_request = next(
                (r for r in requests if r.role == SignerRole.LANDLORD and r.status != SignatureStatus.SIGNED),
                None,
            )
            if landlord_request and landlord:
                await self._send_countersign(landlord_request, ctx, landlord, signer_name, now)
        await self.db.flush()

        if landlord:
            await self.notifications.create(
                user_id=landlord.owner_user_id,
                type=NotificationType.LEASE_SIGNED,
                title="Lease Activated" if fully_signed else "Lease Signed",
                message=(
                    f"{signer_name} signed the lease for {ctx.property.name} - {ctx.unit.name}."
                    + (" The lease is now active." if fully_signed else "")
                ),
                action_url=f"/landlord/leases/{lease.id}",
                feature="leases",
                meta={"lease_id": str(lease.id), "role": request.role.value},
            )
        await self.audit.log(
            action=AuditAction.LEASE_SIGNED,
            resource_type="lease",
            resource_id=lease.id,
            landlord_id=ctx.property.landlord_id,
            details={
                "role": request.role.value,
                "signer_name": signer_name,
                "fully_signed": fully_signed,
            },
            ip_address=signer_ip,
        )

        logger.info(
            "Lease %s signed by %s (fully signed: %s)", lease.id, request.role.value, fully_signed
        )
        return SignResult(lease_id=lease.id, lease_status=lease.status, fully_signed=fully_signed)

    async def _send_countersign(
        self,
        landlord_request: SignatureRequest,
        ctx: SigningContext,
        landlord: Landlord,
        tenant_name: str,
        now: datetime,
    ) -> None:
        """Rotate the landlord's token and email them the countersign link."""
        token = generate_signing_token()
        landlord_request.token_hash = hash_token(token)
        landlord_request.expires_at = now + timedelta(days=SIGNING_LINK_DAYS)
        landlord_request.status = SignatureStatus.SENT

        await self.jobs.enqueue_email(
            template="lease_countersign",
            to=landlord_request.recipient_email,
            context={
                "landlord_name": landlord_request.recipient_name or landlord.name,
                "tenant_name": tenant_name,
                "property_name": ctx.property.name,
                "unit_name": ctx.unit.name,
                "rent": format_cents(ctx.lease.rent_amount_cents),
                "signing_url": signing_url(token),
                "expires_at": landlord_request.expires_at.strftime("%B %d, %Y"),
            },
            scope=str(ctx.lease.id),
        )
