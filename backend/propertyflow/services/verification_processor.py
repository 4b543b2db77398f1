"""Worker-side processing of uploaded verification documents.

A document moves pending -> processing -> needs_review | rejected here.
Nothing is verified automatically: the landlord confirms every document
that passes the automated checks.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.errors import ProviderError
from propertyflow.models.enums import (
    DocumentCategory,
    DocumentStatus,
    DocumentType,
    NotificationType,
    VerificationMethod,
)
from propertyflow.models.landlord import Landlord
from propertyflow.models.verification import VerificationDocument
from propertyflow.services.jobs import JobsService
from propertyflow.services.notifications import NotificationService
from propertyflow.services.ocr import OCRError, OCRResult, OCRService
from propertyflow.services.storage import StorageService
from propertyflow.services.verification import VerificationService

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 50
MAX_RETRY_ATTEMPTS = 3
MAX_DOCUMENT_AGE_DAYS = 90
RETRY_DELAY_SECONDS = 60

ID_FIELDS = ("full_name", "id_number", "date_of_birth", "expiration_date", "issuing_state")


def _days_since(iso_date: Optional[str], today: date) -> Optional[int]:
    if not iso_date:
        return None
    try:
        return (today - date.fromisoformat(iso_date)).days
    except ValueError:
        return None


def check_extracted_fields(
    category: DocumentCategory,
    doc_type: DocumentType,
    extracted: dict[str, Any],
    today: Optional[date] = None,
) -> Optional[str]:
    """Return a rejection reason when extracted fields disqualify a document."""
    today = today or datetime.utcnow().date()

    if category == DocumentCategory.IDENTITY:
        if not any(extracted.get(name) for name in ID_FIELDS):
            return (
                "This does not appear to be a valid government-issued ID. Please upload a "
                "driver's license, state ID, passport, or other official government ID."
            )
        expiration = extracted.get("expiration_date")
        expired_days = _days_since(expiration, today)
        if expired_days is not None and expired_days > 0:
            return (
                f"This ID appears to be expired ({expiration}). "
                "Please upload a valid, unexpired government ID."
            )
        return None

    if doc_type == DocumentType.PAY_STUB:
        age = _days_since(extracted.get("pay_period_end"), today)
    elif doc_type == DocumentType.BANK_STATEMENT:
        age = _days_since(extracted.get("statement_period_end"), today)
    else:
        age = None
    if age is not None and age > MAX_DOCUMENT_AGE_DAYS:
        return (
            f"Document is {age} days old. Employment documents must be dated "
            f"within the last {MAX_DOCUMENT_AGE_DAYS} days."
        )
    return None


class VerificationProcessor:
    """Runs OCR and the automated checks for one document at a time."""

    def __init__(self, db: AsyncSession, storage: StorageService, ocr: OCRService):
        self.db = db
        self.storage = storage
        self.ocr = ocr
        self.jobs = JobsService(db)
        self.verification = VerificationService(db)

    async def process(self, document_id: UUID) -> Optional[VerificationDocument]:
        document = await self.db.get(VerificationDocument, document_id)
        if not document:
            logger.warning("[OCR] Verification document %s not found", document_id)
            return None
        if document.status not in (DocumentStatus.PENDING, DocumentStatus.PROCESSING):
            logger.info("[OCR] Document %s already %s, skipping", document_id, document.status.value)
            return document

        document.status = DocumentStatus.PROCESSING
        await self.db.flush()

        if document.mime_type == "application/pdf":
            self._needs_review(document, "PDF documents are reviewed manually.")
        else:
            try:
                content = await self.storage.get(document.object_path)
                result = await self.ocr.process(content, document.doc_type.value)
            except (OCRError, ProviderError) as e:
                logger.error("[OCR] Processing failed for document %s: %s", document_id, e)
                await self._retry_or_give_up(document)
            else:
                self._apply_result(document, result)

        await self.db.flush()
        await self.verification.refresh(document.application_id)
        if document.status == DocumentStatus.NEEDS_REVIEW:
            await self._notify_landlord(document)
        return document

    def _apply_result(self, document: VerificationDocument, result: OCRResult) -> None:
        now = datetime.utcnow()
        document.ocr_text = result.text
        document.ocr_confidence = result.confidence
        document.ocr_processed_at = now
        document.extracted_data = result.extracted

        reason = check_extracted_fields(document.category, document.doc_type, result.extracted)
        if reason:
            document.status = DocumentStatus.REJECTED
            document.rejection_reason = reason
            logger.info("[OCR] Document %s rejected: %s", document.id, reason)
            return

        if result.confidence < LOW_CONFIDENCE_THRESHOLD:
            self._needs_review(
                document,
                f"Low OCR confidence ({result.confidence}%). Manual review required.",
            )
            return

        document.status = DocumentStatus.NEEDS_REVIEW
        document.verification_method = VerificationMethod.OCR
        document.rejection_reason = None

    @staticmethod
    def _needs_review(document: VerificationDocument, reason: str) -> None:
        document.status = DocumentStatus.NEEDS_REVIEW
        document.rejection_reason = reason

    async def _retry_or_give_up(self, document: VerificationDocument) -> None:
        if document.retry_count < MAX_RETRY_ATTEMPTS:
            document.retry_count += 1
            document.status = DocumentStatus.PENDING
            delay = timedelta(seconds=RETRY_DELAY_SECONDS * 2 ** (document.retry_count - 1))
            await self.jobs.enqueue_document_processing(
                document.id,
                attempt=document.retry_count,
                run_after=datetime.utcnow() + delay,
            )
            return

        self._needs_review(
            document,
            f"OCR processing failed after {MAX_RETRY_ATTEMPTS} attempts. Manual review required.",
        )

    async def _notify_landlord(self, document: VerificationDocument) -> None:
        landlord = await self.db.get(Landlord, document.landlord_id)
        if not landlord:
            return
        await NotificationService(self.db).create(
            user_id=landlord.owner_user_id,
            type=NotificationType.VERIFICATION_UPDATE,
            title="Document ready for review",
            message=f"{document.original_file_name} needs your review.",
            action_url=f"/landlord/applications/{document.application_id}",
            feature="verification",
            meta={"document_id": str(document.id)},
        )
