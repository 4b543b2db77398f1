"""Tenant screening status, aggregated from an application's documents."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.models.enums import (
    CategoryVerificationStatus,
    DocumentCategory,
    DocumentStatus,
    DocumentType,
    OverallVerificationStatus,
    VerificationMethod,
)
from propertyflow.models.verification import ApplicationVerification, VerificationDocument
from propertyflow.schemas.verification import (
    CategoryRequirement,
    IncomeDetails,
    RequiredDocuments,
    VerificationDocumentResponse,
    VerificationReport,
    VerificationStatusResponse,
)

logger = logging.getLogger(__name__)

REQUIRED_IDENTITY_DOCUMENTS = 1
REQUIRED_EMPLOYMENT_DOCUMENTS = 3
VERIFICATION_VALID_DAYS = 90
INCOME_TO_RENT_MULTIPLIER = 3


@dataclass
class Aggregate:
    identity_status: CategoryVerificationStatus
    employment_status: CategoryVerificationStatus
    overall_status: OverallVerificationStatus
    identity_document_id: Optional[UUID] = None


def _category_status(docs: list[VerificationDocument], required: int) -> CategoryVerificationStatus:
    statuses = [d.status for d in docs]
    if statuses.count(DocumentStatus.VERIFIED) >= required:
        return CategoryVerificationStatus.VERIFIED
    if DocumentStatus.REJECTED in statuses:
        return CategoryVerificationStatus.REJECTED
    if DocumentStatus.NEEDS_REVIEW in statuses:
        return CategoryVerificationStatus.NEEDS_REVIEW
    return CategoryVerificationStatus.PENDING


def aggregate(documents: Iterable[VerificationDocument]) -> Aggregate:
    """Derive category and overall status from the current documents."""
    documents = list(documents)
    identity = [d for d in documents if d.category == DocumentCategory.IDENTITY]
    employment = [d for d in documents if d.category == DocumentCategory.EMPLOYMENT]

    identity_status = _category_status(identity, REQUIRED_IDENTITY_DOCUMENTS)
    employment_status = _category_status(employment, REQUIRED_EMPLOYMENT_DOCUMENTS)
    identity_document_id = next(
        (d.id for d in identity if d.status == DocumentStatus.VERIFIED), None
    )

    has_identity = any(d.status != DocumentStatus.REJECTED for d in identity)
    has_employment = any(d.status != DocumentStatus.REJECTED for d in employment)

    if (
        identity_status == CategoryVerificationStatus.VERIFIED
        and employment_status == CategoryVerificationStatus.VERIFIED
    ):
        overall = OverallVerificationStatus.COMPLETE
    elif has_identity and has_employment:
        overall = OverallVerificationStatus.DOCUMENTS_SUBMITTED
    elif has_identity or has_employment:
        overall = OverallVerificationStatus.IN_PROGRESS
    else:
        overall = OverallVerificationStatus.INCOMPLETE

    return Aggregate(identity_status, employment_status, overall, identity_document_id)


def _pay_periods_per_month(start: Optional[str], end: Optional[str]) -> float:
    if not start or not end:
        return 1.0
    try:
        days = (date.fromisoformat(end) - date.fromisoformat(start)).days + 1
    except ValueError:
        return 1.0
    if days <= 8:
        return 52 / 12
    if days <= 14:
        return 26 / 12
    if days <= 16:
        return 2.0
    return 1.0


def estimate_monthly_income_cents(documents: Iterable[VerificationDocument]) -> Optional[int]:
    """Monthly income from pay stubs, falling back to bank deposits.

    Pay stub gross is scaled by the pay frequency implied by the pay period
    length. Bank statements contribute the average of their deposit totals.
    Rejected documents are ignored.
    """
    stub_estimates = []
    deposit_totals = []
    for doc in documents:
        if doc.category != DocumentCategory.EMPLOYMENT or doc.status == DocumentStatus.REJECTED:
            continue
        data = doc.extracted_data or {}
        if doc.doc_type == DocumentType.PAY_STUB and data.get("gross_pay"):
            periods = _pay_periods_per_month(data.get("pay_period_start"), data.get("pay_period_end"))
            stub_estimates.append(float(data["gross_pay"]) * periods)
        elif doc.doc_type == DocumentType.BANK_STATEMENT and data.get("total_deposits"):
            deposit_totals.append(float(data["total_deposits"]))

    if stub_estimates:
        monthly = sum(stub_estimates) / len(stub_estimates)
    elif deposit_totals:
        monthly = sum(deposit_totals) / len(deposit_totals)
    else:
        return None
    return int(round(monthly * 100))


def meets_income_requirement(monthly_income_cents: Optional[int], rent_cents: int) -> bool:
    if not monthly_income_cents:
        return False
    return monthly_income_cents >= rent_cents * INCOME_TO_RENT_MULTIPLIER


def required_documents(documents: Iterable[VerificationDocument]) -> RequiredDocuments:
    documents = list(documents)
    requirements = {}
    for category, required in (
        (DocumentCategory.IDENTITY, REQUIRED_IDENTITY_DOCUMENTS),
        (DocumentCategory.EMPLOYMENT, REQUIRED_EMPLOYMENT_DOCUMENTS),
    ):
        docs = [d for d in documents if d.category == category]
        uploaded = [d for d in docs if d.status != DocumentStatus.REJECTED]
        verified = [d for d in docs if d.status == DocumentStatus.VERIFIED]
        requirements[category.value] = CategoryRequirement(
            required=True,
            uploaded=bool(uploaded),
            verified=len(verified) >= required,
            count=len(uploaded),
            verified_count=len(verified),
            required_count=required,
        )
    return RequiredDocuments(**requirements)


class VerificationService:
    """Reads and refreshes an application's screening status."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create(self, application_id: UUID) -> ApplicationVerification:
        result = await self.db.execute(
            select(ApplicationVerification).where(
                ApplicationVerification.application_id == application_id
            )
        )
        verification = result.scalar_one_or_none()
        if verification:
            return verification

        verification = ApplicationVerification(
            application_id=application_id,
            identity_status=CategoryVerificationStatus.PENDING,
            employment_status=CategoryVerificationStatus.PENDING,
            overall_status=OverallVerificationStatus.INCOMPLETE,
        )
        self.db.add(verification)
        await self.db.flush()
        return verification

    async def documents(self, application_id: UUID) -> list[VerificationDocument]:
        result = await self.db.execute(
            select(VerificationDocument)
            .where(VerificationDocument.application_id == application_id)
            .order_by(VerificationDocument.uploaded_at.desc())
        )
        return list(result.scalars().all())

    async def refresh(self, application_id: UUID) -> ApplicationVerification:
        """Recompute the aggregate and income from the current documents."""
        verification = await self.get_or_create(application_id)
        documents = await self.documents(application_id)
        result = aggregate(documents)
        now = datetime.utcnow()

        if (
            result.identity_status == CategoryVerificationStatus.VERIFIED
            and verification.identity_status != CategoryVerificationStatus.VERIFIED
        ):
            verification.identity_verified_at = now
        if (
            result.employment_status == CategoryVerificationStatus.VERIFIED
            and verification.employment_status != CategoryVerificationStatus.VERIFIED
        ):
            verification.employment_verified_at = now

        verification.identity_status = result.identity_status
        verification.employment_status = result.employment_status
        verification.identity_document_id = result.identity_document_id

        if result.overall_status == OverallVerificationStatus.COMPLETE:
            if verification.overall_status != OverallVerificationStatus.COMPLETE:
                verification.completed_at = now
                verification.expires_at = now + timedelta(days=VERIFICATION_VALID_DAYS)
        else:
            verification.completed_at = None
            verification.expires_at = None
        verification.overall_status = result.overall_status

        verification.monthly_income_cents = estimate_monthly_income_cents(documents)
        await self.db.flush()

        logger.info(
            "Verification for application %s: identity=%s employment=%s overall=%s",
            application_id,
            result.identity_status.value,
            result.employment_status.value,
            result.overall_status.value,
        )
        return verification

    async def status(self, application_id: UUID) -> VerificationStatusResponse:
        verification = await self.get_or_create(application_id)
        requirements = required_documents(await self.documents(application_id))
        return VerificationStatusResponse(
            application_id=application_id,
            identity_status=verification.identity_status,
            employment_status=verification.employment_status,
            overall_status=verification.overall_status,
            can_submit=requirements.identity.uploaded and requirements.employment.uploaded,
            identity_verified_at=verification.identity_verified_at,
            employment_verified_at=verification.employment_verified_at,
            completed_at=verification.completed_at,
            expires_at=verification.expires_at,
            monthly_income_cents=verification.monthly_income_cents,
            required_documents=requirements,
        )

    async def report(self, application_id: UUID, rent_cents: int) -> VerificationReport:
        """Landlord-facing report: status, documents and income check."""
        status = await self.status(application_id)
        documents = await self.documents(application_id)
        income = status.monthly_income_cents
        return VerificationReport(
            status=status,
            documents=[VerificationDocumentResponse.model_validate(d) for d in documents],
            income=IncomeDetails(
                monthly_income_cents=income,
                rent_amount_cents=rent_cents,
                required_income_cents=rent_cents * INCOME_TO_RENT_MULTIPLIER,
                income_to_rent_ratio=round(income / rent_cents, 2) if income and rent_cents else None,
                meets_income_requirement=meets_income_requirement(income, rent_cents),
            ),
        )

    async def review(
        self,
        document: VerificationDocument,
        verified: bool,
        reviewer_id: UUID,
        reason: Optional[str] = None,
    ) -> VerificationDocument:
        """Apply a landlord's manual decision and re-aggregate."""
        now = datetime.utcnow()
        document.reviewed_by_id = reviewer_id
        document.verification_method = VerificationMethod.MANUAL
        if verified:
            document.status = DocumentStatus.VERIFIED
            document.verified_at = now
            document.rejection_reason = None
        else:
            document.status = DocumentStatus.REJECTED
            document.verified_at = None
            document.rejection_reason = reason or "Rejected during manual review"
        await self.db.flush()

        await self.refresh(document.application_id)
        return document
