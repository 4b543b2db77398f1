"""Application approval workflow.

Approving an application generates the lease from the landlord's template,
creates the signature requests and payment schedule, takes the unit off
the market, and queues the signing invitation. Everything is flushed into
the caller's transaction; the router commits once.
"""

import calendar
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.config import get_settings
from propertyflow.core.errors import ApprovalError
from propertyflow.core.security import generate_signing_token, hash_token
from propertyflow.models.application import RentalApplication
from propertyflow.models.enums import (
    ApplicationStatus,
    AuditAction,
    LeaseGeneratedFrom,
    LeaseStatus,
    NotificationType,
    PaymentKind,
    RentPaymentStatus,
    SignatureStatus,
    SignerRole,
)
from propertyflow.models.landlord import Landlord
from propertyflow.models.lease import Lease, LeaseTemplate, SignatureRequest
from propertyflow.models.payment import RentPayment
from propertyflow.models.property import Property, Unit
from propertyflow.models.user import User
from propertyflow.schemas.application import (
    ApplicationSummary,
    ApprovalResult,
    ApproveApplicationRequest,
    RejectionResult,
    TemplateInfo,
    TemplateResolution,
)
from propertyflow.schemas.lease import LeaseSummary
from propertyflow.services.audit import AuditService
from propertyflow.services.email import format_cents
from propertyflow.services.jobs import JobsService
from propertyflow.services.lease_documents import (
    LeaseRenderError,
    build_lease_context,
    generate_lease_pdf,
)
from propertyflow.services.notifications import NotificationService
from propertyflow.services.storage import StorageService

logger = logging.getLogger(__name__)
settings = get_settings()

SIGNING_LINK_DAYS = 30
MONTH_TO_MONTH_SCHEDULE_MONTHS = 12
OPEN_LEASE_STATUSES = (LeaseStatus.ACTIVE, LeaseStatus.PENDING_SIGNATURE)


class ScheduledPayment(NamedTuple):
    kind: PaymentKind
    due_date: date
    amount_cents: int


def _add_months(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def _billing_date(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def build_payment_schedule(
    start_date: date,
    end_date: Optional[date],
    rent_amount_cents: int,
    billing_day_of_month: int,
    security_deposit_months: int,
) -> list[ScheduledPayment]:
    """Deposit on the start date, then monthly rent on the billing day.

    Rent runs from the first billing day on or after the start date through
    the end date. Month-to-month leases get the first 12 months.
    """
    schedule = []
    deposit = rent_amount_cents * security_deposit_months
    if deposit > 0:
        schedule.append(ScheduledPayment(PaymentKind.DEPOSIT, start_date, deposit))

    year, month = start_date.year, start_date.month
    if start_date.day > billing_day_of_month:
        year, month = _add_months(year, month, 1)

    count = 0
    while True:
        due = _billing_date(year, month, billing_day_of_month)
        if end_date is not None and due > end_date:
            break
        if end_date is None and count >= MONTH_TO_MONTH_SCHEDULE_MONTHS:
            break
        schedule.append(ScheduledPayment(PaymentKind.RENT, due, rent_amount_cents))
        count += 1
        year, month = _add_months(year, month, 1)

    return schedule


def signing_url(token: str) -> str:
    return f"{settings.app_url.rstrip('/')}/sign/{token}"


async def resolve_template(
    db: AsyncSession,
    property_id: UUID,
    landlord_id: UUID,
) -> Optional[LeaseTemplate]:
    """Property-specific active template first, then the landlord's default."""
    result = await db.execute(
        select(LeaseTemplate)
        .where(
            LeaseTemplate.landlord_id == landlord_id,
            LeaseTemplate.property_id == property_id,
            LeaseTemplate.is_active.is_(True),
        )
        .order_by(LeaseTemplate.updated_at.desc())
        .limit(1)
    )
    template = result.scalar_one_or_none()
    if template:
        return template

    result = await db.execute(
        select(LeaseTemplate)
        .where(
            LeaseTemplate.landlord_id == landlord_id,
            LeaseTemplate.is_default.is_(True),
            LeaseTemplate.is_active.is_(True),
        )
        .order_by(LeaseTemplate.updated_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


class ApplicationApprovalService:
    """Approve, reject and withdraw rental applications."""

    def __init__(self, db: AsyncSession, storage: StorageService):
        self.db = db
        self.storage = storage
        self.jobs = JobsService(db)
        self.audit = AuditService(db)
        self.notifications = NotificationService(db)

    async def _get_application(self, application_id: UUID) -> RentalApplication:
        application = await self.db.get(RentalApplication, application_id)
        if not application:
            raise ApprovalError("APPLICATION_NOT_FOUND", "Application not found")
        return application

    @staticmethod
    def _ensure_pending(application: RentalApplication) -> None:
        if application.status != ApplicationStatus.PENDING:
            raise ApprovalError(
                "APPLICATION_NOT_PENDING",
                f"Application is already {application.status.value}",
            )

    async def _unit_with_property(self, unit_id: UUID) -> Optional[tuple[Unit, Property]]:
        result = await self.db.execute(
            select(Unit, Property)
            .join(Property, Unit.property_id == Property.id)
            .where(Unit.id == unit_id)
        )
        row = result.one_or_none()
        return (row[0], row[1]) if row else None

    async def _has_open_lease(self, unit_id: UUID) -> bool:
        result = await self.db.execute(
            select(Lease.id)
            .where(Lease.unit_id == unit_id, Lease.status.in_(OPEN_LEASE_STATUSES))
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def template_for_application(
        self,
        application_id: UUID,
        landlord_id: UUID,
    ) -> TemplateResolution:
        application = await self._get_application(application_id)
        row = await self._unit_with_property(application.unit_id)
        if not row or row[1].landlord_id != landlord_id:
            raise ApprovalError("APPLICATION_NOT_FOUND", "Application not found")

        template = await resolve_template(self.db, row[1].id, landlord_id)
        if not template:
            return TemplateResolution(
                has_template=False,
                message="No lease template configured for this property",
            )
        return TemplateResolution(
            has_template=True,
            template=TemplateInfo.model_validate(template),
            message=(
                "Using property-specific lease template"
                if template.property_id else "Using default lease template"
            ),
        )

    async def approve(
        self,
        application_id: UUID,
        landlord_id: UUID,
        reviewer_id: UUID,
        data: ApproveApplicationRequest,
    ) -> ApprovalResult:
        application = await self._get_application(application_id)
        self._ensure_pending(application)

        tenant = await self.db.get(User, application.applicant_id) if application.applicant_id else None
        if not tenant:
            raise ApprovalError("TENANT_NOT_FOUND", "Applicant user not found")

        row = await self._unit_with_property(data.unit_id)
        if not row:
            raise ApprovalError("UNIT_UNAVAILABLE", "Unit not found")
        unit, prop = row
        if not unit.is_available:
            raise ApprovalError("UNIT_UNAVAILABLE", "Unit is not available for rent")
        if await self._has_open_lease(unit.id):
            raise ApprovalError("UNIT_UNAVAILABLE", "Unit already has an active or pending lease")

        landlord = await self.db.get(Landlord, prop.landlord_id)
        if not landlord:
            raise ApprovalError("PROPERTY_NOT_FOUND", "Property not found for this unit")
        if landlord.id != landlord_id:
            raise ApprovalError("VALIDATION_ERROR", "Unauthorized: You do not own this property")

        template = await resolve_template(self.db, prop.id, landlord_id)
        if not template:
            raise ApprovalError(
                "NO_LEASE_TEMPLATE",
                "No lease template configured for this property. "
                "Please configure a lease template before approving applications.",
            )

        rent_cents = data.rent_amount_cents or unit.rent_amount_cents
        tenant_name = tenant.full_name or application.full_name
        tenant_email = tenant.email or application.email
        lease_id = uuid.uuid4()

        context = build_lease_context(
            landlord=landlord,
            property=prop,
            unit=unit,
            tenant_name=tenant_name,
            tenant_email=tenant_email,
            start_date=data.lease_start_date,
            end_date=data.lease_end_date,
            rent_amount_cents=rent_cents,
            billing_day_of_month=data.billing_day_of_month,
        )
        try:
            pdf = generate_lease_pdf(template.name, template.body, context)
            document_path = await self.storage.put(
                self.storage.lease_document_path(landlord.id, lease_id),
                pdf,
                "application/pdf",
            )
        except LeaseRenderError as e:
            logger.error("Lease generation failed for application %s: %s", application_id, e)
            raise ApprovalError("LEASE_GENERATION_FAILED", str(e))
        except Exception as e:
            logger.exception("Lease upload failed for application %s", application_id)
            raise ApprovalError("LEASE_GENERATION_FAILED", f"Failed to store lease document: {e}")

        try:
            now = datetime.utcnow()
            lease = Lease(
                id=lease_id,
                unit_id=unit.id,
                tenant_id=tenant.id,
                application_id=application.id,
                template_id=template.id,
                start_date=data.lease_start_date,
                end_date=data.lease_end_date,
                rent_amount_cents=rent_cents,
                billing_day_of_month=data.billing_day_of_month,
                status=LeaseStatus.PENDING_SIGNATURE,
                document_path=document_path,
                generated_from=LeaseGeneratedFrom.AUTO,
                generated_at=now,
            )
            self.db.add(lease)

            expires_at = now + timedelta(days=SIGNING_LINK_DAYS)
            tenant_token = generate_signing_token()
            landlord_token = generate_signing_token()
            owner = await self.db.get(User, landlord.owner_user_id)
            self.db.add_all([
                SignatureRequest(
                    lease_id=lease_id,
                    role=SignerRole.TENANT,
                    recipient_email=tenant_email,
                    recipient_name=tenant_name,
                    token_hash=hash_token(tenant_token),
                    expires_at=expires_at,
                    status=SignatureStatus.SENT,
                ),
                SignatureRequest(
                    lease_id=lease_id,
                    role=SignerRole.LANDLORD,
                    recipient_email=landlord.company_email or (owner.email if owner else ""),
                    recipient_name=owner.full_name if owner else landlord.name,
                    token_hash=hash_token(landlord_token),
                    expires_at=expires_at,
                    status=SignatureStatus.SENT,
                ),
            ])

            for payment in build_payment_schedule(
                data.lease_start_date,
                data.lease_end_date,
                rent_cents,
                data.billing_day_of_month,
                landlord.security_deposit_months,
            ):
                self.db.add(RentPayment(
                    lease_id=lease_id,
                    tenant_id=tenant.id,
                    kind=payment.kind,
                    due_date=payment.due_date,
                    amount_cents=payment.amount_cents,
                    amount_paid_cents=0,
                    status=RentPaymentStatus.PENDING,
                ))

            application.status = ApplicationStatus.APPROVED
            application.unit_id = unit.id
            application.reviewed_at = now
            application.reviewed_by_id = reviewer_id
            unit.is_available = False
            await self.db.flush()

            await self.notifications.create(
                user_id=landlord.owner_user_id,
                type=NotificationType.APPLICATION_APPROVED,
                title="Application Approved",
                message=(
                    f"Lease generated for {tenant_name} at {prop.name} - {unit.name}. "
                    "Waiting for tenant signature."
                ),
                action_url=f"/landlord/leases/{lease_id}",
                feature="applications",
                meta={"lease_id": str(lease_id), "application_id": str(application.id)},
            )
            await self.audit.log_application_decision(
                application_id=application.id,
                action=AuditAction.APPLICATION_APPROVED,
                landlord_id=landlord.id,
                user_id=reviewer_id,
                details={"lease_id": str(lease_id), "unit_id": str(unit.id), "rent_amount_cents": rent_cents},
            )

            tenant_url = signing_url(tenant_token)
            await self.jobs.enqueue_email(
                template="lease_signing",
                to=tenant_email,
                context={
                    "tenant_name": tenant_name,
                    "property_name": prop.name,
                    "unit_name": unit.name,
                    "start_date": context["start_date"],
                    "end_date": context["end_date"],
                    "rent": format_cents(rent_cents),
                    "signing_url": tenant_url,
                    "expires_at": expires_at.strftime("%B %d, %Y"),
                },
                scope=str(lease_id),
            )

            logger.info("Approved application %s, lease %s created", application.id, lease_id)
            return ApprovalResult(
                application=ApplicationSummary.model_validate(application),
                lease=LeaseSummary.model_validate(lease),
                signing_url=tenant_url,
                signing_token=tenant_token,
            )
        except Exception:
            await self.storage.discard(document_path)
            raise

    async def reject(
        self,
        application_id: UUID,
        landlord_id: UUID,
        reviewer_id: UUID,
        reason: Optional[str] = None,
    ) -> RejectionResult:
        application = await self._get_application(application_id)
        self._ensure_pending(application)

        row = await self._unit_with_property(application.unit_id)
        if not row or row[1].landlord_id != landlord_id:
            raise ApprovalError("VALIDATION_ERROR", "Unauthorized: You do not own this property")
        prop = row[1]

        application.status = ApplicationStatus.REJECTED
        application.admin_response = reason or "Application rejected"
        application.reviewed_at = datetime.utcnow()
        application.reviewed_by_id = reviewer_id
        await self.db.flush()

        await self.audit.log_application_decision(
            application_id=application.id,
            action=AuditAction.APPLICATION_REJECTED,
            landlord_id=landlord_id,
            user_id=reviewer_id,
            details={"reason": application.admin_response},
        )
        await self.jobs.enqueue_email(
            template="application_rejected",
            to=application.email,
            context={
                "applicant_name": application.full_name,
                "property_name": prop.name,
                "reason": reason,
            },
            scope=str(application.id),
        )

        return RejectionResult(application=ApplicationSummary.model_validate(application))

    async def withdraw(self, application_id: UUID, applicant_id: UUID) -> RentalApplication:
        application = await self._get_application(application_id)
        if application.applicant_id != applicant_id:
            raise ApprovalError("APPLICATION_NOT_FOUND", "Application not found")
        self._ensure_pending(application)

        application.status = ApplicationStatus.WITHDRAWN
        await self.db.flush()
        await self.audit.log(
            action=AuditAction.APPLICATION_WITHDRAWN,
            resource_type="rental_application",
            resource_id=application.id,
            user_id=applicant_id,
        )
        return application
