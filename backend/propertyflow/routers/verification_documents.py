"""Manual review of screening documents."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import require_landlord, AuthenticatedUser
from propertyflow.models.enums import DocumentStatus
from propertyflow.models.verification import VerificationDocument
from propertyflow.schemas.verification import DocumentReviewRequest, VerificationDocumentResponse
from propertyflow.services.audit import AuditService
from propertyflow.services.verification import VerificationService

router = APIRouter(prefix="/verification-documents", tags=["verification"])


@router.post("/{document_id}/review", response_model=VerificationDocumentResponse)
async def review_document(
    document_id: UUID,
    data: DocumentReviewRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Verify or reject a document, then re-aggregate the application's status."""
    result = await db.execute(
        select(VerificationDocument).where(
            VerificationDocument.id == document_id,
            VerificationDocument.landlord_id == current_user.landlord_id,
        )
    )
    document = result.scalar_one_or_none()

    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")

    if document.status == DocumentStatus.PROCESSING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Document is still being processed",
        )

    await VerificationService(db).review(
        document,
        verified=data.decision == "verify",
        reviewer_id=current_user.db_user_id,
        reason=data.reason,
    )

    audit = AuditService(db)
    await audit.log_document_reviewed(
        document_id=document.id,
        landlord_id=current_user.landlord_id,
        user_id=current_user.db_user_id,
        decision=data.decision,
        reason=data.reason,
    )

    await db.commit()
    await db.refresh(document)

    return VerificationDocumentResponse.model_validate(document)
