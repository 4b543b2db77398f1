"""Rental applications router: submission, review, approval and screening documents."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import require_landlord, require_registered, AuthenticatedUser
from propertyflow.models.application import RentalApplication
from propertyflow.models.enums import (
    ApplicationStatus,
    AuditAction,
    DocumentStatus,
    NotificationType,
    UserRole,
)
from propertyflow.models.landlord import Landlord
from propertyflow.models.property import Property, Unit
from propertyflow.models.verification import VerificationDocument
from propertyflow.schemas.application import (
    ApplicationCreate,
    ApplicationResponse,
    ApplicationDetailResponse,
    ApplicationListResponse,
    ApproveApplicationRequest,
    RejectApplicationRequest,
    ApprovalResult,
    RejectionResult,
    TemplateResolution,
)
from propertyflow.schemas.verification import (
    DocumentUploadUrlRequest,
    DocumentUploadUrlResponse,
    DocumentConfirmRequest,
    VerificationDocumentResponse,
    VerificationStatusResponse,
    VerificationReport,
)
from propertyflow.services.application_approval import ApplicationApprovalService
from propertyflow.services.audit import AuditService
from propertyflow.services.jobs import JobsService
from propertyflow.services.notifications import NotificationService
from propertyflow.services.storage import StorageService, get_storage_service
from propertyflow.services.verification import VerificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/applications", tags=["applications"])


def _application_response(application: RentalApplication, unit: Unit, prop: Property) -> ApplicationResponse:
    response = ApplicationResponse.model_validate(application)
    response.property_name = prop.name
    response.unit_name = unit.name
    return response


async def _load_application(
    db: AsyncSession,
    application_id: UUID,
) -> tuple[RentalApplication, Unit, Property]:
    result = await db.execute(
        select(RentalApplication, Unit, Property)
        .join(Unit, RentalApplication.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .where(RentalApplication.id == application_id)
    )
    row = result.one_or_none()
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")
    return row[0], row[1], row[2]


def _is_landlord_of(current_user: AuthenticatedUser, prop: Property) -> bool:
    return current_user.role == UserRole.LANDLORD and prop.landlord_id == current_user.landlord_id


async def _get_visible_application(
    db: AsyncSession,
    application_id: UUID,
    current_user: AuthenticatedUser,
) -> tuple[RentalApplication, Unit, Property]:
    """The application, if the caller is its applicant or the landlord who owns the unit."""
    application, unit, prop = await _load_application(db, application_id)
    if not _is_landlord_of(current_user, prop) and application.applicant_id != current_user.db_user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")
    return application, unit, prop


async def _get_owned_application(
    db: AsyncSession,
    application_id: UUID,
    current_user: AuthenticatedUser,
) -> tuple[RentalApplication, Unit, Property]:
    application, unit, prop = await _load_application(db, application_id)
    if not _is_landlord_of(current_user, prop):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")
    return application, unit, prop


async def _get_own_application(
    db: AsyncSession,
    application_id: UUID,
    current_user: AuthenticatedUser,
) -> tuple[RentalApplication, Unit, Property]:
    application, unit, prop = await _load_application(db, application_id)
    if application.applicant_id != current_user.db_user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Application not found")
    return application, unit, prop


@router.post("", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
async def submit_application(
    data: ApplicationCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Submit a rental application for an available unit."""
    result = await db.execute(
        select(Unit, Property, Landlord)
        .join(Property, Unit.property_id == Property.id)
        .join(Landlord, Property.landlord_id == Landlord.id)
        .where(Unit.id == data.unit_id)
    )
    row = result.one_or_none()
    if not row:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unit not found")
    unit, prop, landlord = row
    if not unit.is_available:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unit is not available for rent")

    existing = await db.execute(
        select(RentalApplication.id).where(
            RentalApplication.applicant_id == current_user.db_user_id,
            RentalApplication.unit_id == unit.id,
            RentalApplication.status == ApplicationStatus.PENDING,
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You already have a pending application for this unit",
        )

    application = RentalApplication(
        applicant_id=current_user.db_user_id,
        status=ApplicationStatus.PENDING,
        **data.model_dump(),
    )
    db.add(application)
    await db.flush()

    notifications = NotificationService(db)
    await notifications.create(
        user_id=landlord.owner_user_id,
        type=NotificationType.APPLICATION_SUBMITTED,
        title="New Rental Application",
        message=f"{application.full_name} applied for {prop.name} - {unit.name}.",
        action_url=f"/landlord/applications/{application.id}",
        feature="applications",
        meta={"application_id": str(application.id), "unit_id": str(unit.id)},
    )

    audit = AuditService(db)
    await audit.log(
        action=AuditAction.APPLICATION_SUBMITTED,
        resource_type="rental_application",
        resource_id=application.id,
        landlord_id=landlord.id,
        user_id=current_user.db_user_id,
        details={"unit_id": str(unit.id)},
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    await db.commit()
    await db.refresh(application)

    return _application_response(application, unit, prop)


@router.get("", response_model=ApplicationListResponse)
async def list_applications(
    application_status: Optional[ApplicationStatus] = None,
    property_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Landlords see applications for their units; everyone else sees their own."""
    query = (
        select(RentalApplication, Unit, Property)
        .join(Unit, RentalApplication.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
    )
    if current_user.role == UserRole.LANDLORD:
        query = query.where(Property.landlord_id == current_user.landlord_id)
    else:
        query = query.where(RentalApplication.applicant_id == current_user.db_user_id)

    if application_status:
        query = query.where(RentalApplication.status == application_status)
    if property_id:
        query = query.where(Property.id == property_id)

    result = await db.execute(query.order_by(RentalApplication.created_at.desc()))
    applications = [_application_response(a, u, p) for a, u, p in result.all()]

    return ApplicationListResponse(applications=applications, total=len(applications))


@router.get("/{application_id}", response_model=ApplicationDetailResponse)
async def get_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Get an application with its verification summary."""
    application, unit, prop = await _get_visible_application(db, application_id, current_user)

    verification = await VerificationService(db).status(application.id)
    await db.commit()

    response = ApplicationDetailResponse.model_validate(application)
    response.property_name = prop.name
    response.unit_name = unit.name
    response.verification = verification
    return response


@router.post("/{application_id}/withdraw", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Withdraw your own pending application."""
    service = ApplicationApprovalService(db, storage)
    application = await service.withdraw(application_id, current_user.db_user_id)
    await db.commit()

    _, unit, prop = await _load_application(db, application.id)
    return _application_response(application, unit, prop)


@router.get("/{application_id}/template", response_model=TemplateResolution)
async def get_application_template(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Which lease template approving this application would use."""
    service = ApplicationApprovalService(db, storage)
    return await service.template_for_application(application_id, current_user.landlord_id)


@router.post("/{application_id}/approve", response_model=ApprovalResult)
async def approve_application(
    application_id: UUID,
    data: ApproveApplicationRequest,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Approve an application: generate the lease, signature requests and payment schedule."""
    service = ApplicationApprovalService(db, storage)
    result = await service.approve(
        application_id=application_id,
        landlord_id=current_user.landlord_id,
        reviewer_id=current_user.db_user_id,
        data=data,
    )
    await db.commit()
    return result


@router.post("/{application_id}/reject", response_model=RejectionResult)
async def reject_application(
    application_id: UUID,
    data: Optional[RejectApplicationRequest] = None,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Reject a pending application and queue the rejection email."""
    service = ApplicationApprovalService(db, storage)
    result = await service.reject(
        application_id=application_id,
        landlord_id=current_user.landlord_id,
        reviewer_id=current_user.db_user_id,
        reason=data.reason if data else None,
    )
    await db.commit()
    return result


# --- Verification documents ---

@router.post("/{application_id}/documents/upload-url", response_model=DocumentUploadUrlResponse)
async def create_document_upload_url(
    application_id: UUID,
    data: DocumentUploadUrlRequest,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Presigned PUT URL for uploading a screening document."""
    application, _, prop = await _get_own_application(db, application_id, current_user)

    object_path = storage.verification_document_path(prop.landlord_id, application.id, data.file_name)
    try:
        upload_url, expires_at = await storage.create_presigned_upload(
            object_path=object_path,
            mime_type=data.mime_type,
            file_size_bytes=data.file_size_bytes,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return DocumentUploadUrlResponse(
        upload_url=upload_url,
        object_path=object_path,
        expires_at=expires_at,
    )


@router.post(
    "/{application_id}/documents",
    response_model=VerificationDocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def confirm_document_upload(
    application_id: UUID,
    data: DocumentConfirmRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Record an uploaded document and queue it for OCR processing."""
    application, _, prop = await _get_own_application(db, application_id, current_user)

    expected_prefix = f"landlords/{prop.landlord_id}/applications/{application.id}/verification/"
    if not data.object_path.startswith(expected_prefix):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid object path")

    try:
        storage.validate_upload(data.mime_type, data.file_size_bytes)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not await storage.verify_upload(data.object_path):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File not found in storage. Please upload first.",
        )

    document = VerificationDocument(
        application_id=application.id,
        landlord_id=prop.landlord_id,
        category=data.category,
        doc_type=data.doc_type,
        object_path=data.object_path,
        original_file_name=data.file_name,
        mime_type=data.mime_type,
        file_size_bytes=data.file_size_bytes,
        status=DocumentStatus.PENDING,
    )
    db.add(document)
    await db.flush()

    jobs = JobsService(db)
    await jobs.enqueue_document_processing(document.id)

    audit = AuditService(db)
    await audit.log(
        action=AuditAction.DOCUMENT_UPLOADED,
        resource_type="verification_document",
        resource_id=document.id,
        landlord_id=prop.landlord_id,
        user_id=current_user.db_user_id,
        details={
            "application_id": str(application.id),
            "category": data.category.value,
            "doc_type": data.doc_type.value,
        },
        ip_address=request.client.host if request.client else None,
    )

    await VerificationService(db).refresh(application.id)
    await db.commit()
    await db.refresh(document)

    logger.info("Document %s uploaded for application %s", document.id, application.id)
    return VerificationDocumentResponse.model_validate(document)


@router.get("/{application_id}/verification", response_model=VerificationStatusResponse)
async def get_verification_status(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_registered),
):
    """Screening status and required-document counters."""
    application, _, _ = await _get_visible_application(db, application_id, current_user)
    status_response = await VerificationService(db).status(application.id)
    await db.commit()
    return status_response


@router.get("/{application_id}/verification/report", response_model=VerificationReport)
async def get_verification_report(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_landlord),
):
    """Landlord report: status, documents and the income-to-rent check."""
    application, unit, _ = await _get_owned_application(db, application_id, current_user)
    report = await VerificationService(db).report(application.id, unit.rent_amount_cents)
    await db.commit()
    return report
