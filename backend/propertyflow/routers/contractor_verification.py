"""Contractor verification router: state license, background check, identity."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import require_contractor, AuthenticatedUser
from propertyflow.models.contractor import ContractorProfile
from propertyflow.models.user import User
from propertyflow.schemas.contractor import (
    LicenseVerifyRequest,
    LicenseStatusResponse,
    BackgroundCheckRequest,
    BackgroundCheckInitiated,
    BackgroundCheckStatusResponse,
    IdentityInquiryResponse,
    IdentityStatusResponse,
    VerificationSummary,
)
from propertyflow.services.background_check import BackgroundCheckService, CheckrClient, get_checkr_client
from propertyflow.services.identity_verification import (
    IdentityVerificationService,
    PersonaClient,
    get_persona_client,
)
from propertyflow.services.license_verification import (
    LicenseVerificationClient,
    LicenseVerificationService,
    get_license_client,
)

router = APIRouter(prefix="/contractor/verification", tags=["contractor-verification"])


async def _get_contractor(db: AsyncSession, current_user: AuthenticatedUser) -> ContractorProfile:
    contractor = await db.get(ContractorProfile, current_user.contractor_id)
    if not contractor:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contractor profile not found")
    return contractor


@router.get("", response_model=VerificationSummary)
async def get_verification_summary(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Badge summary across license, background check and identity."""
    contractor = await _get_contractor(db, current_user)

    license_status = LicenseStatusResponse(**LicenseVerificationService.status(contractor))
    background = BackgroundCheckStatusResponse(**BackgroundCheckService.status(contractor))
    identity = IdentityStatusResponse(**IdentityVerificationService.status(contractor))

    return VerificationSummary(
        license=license_status,
        background_check=background,
        identity=identity,
        is_fully_verified=(
            license_status.is_verified and background.is_verified and identity.is_verified
        ),
    )


# --- License ---

@router.post("/license", response_model=LicenseStatusResponse)
async def verify_license(
    data: LicenseVerifyRequest,
    db: AsyncSession = Depends(get_db),
    client: LicenseVerificationClient = Depends(get_license_client),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Look the license up with the state board and store the result."""
    contractor = await _get_contractor(db, current_user)

    service = LicenseVerificationService(db, client)
    result = await service.verify(contractor, data.license_number, data.state, data.license_type)
    await db.commit()

    return LicenseStatusResponse(**LicenseVerificationService.status(contractor, result))


@router.get("/license", response_model=LicenseStatusResponse)
async def get_license_status(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    contractor = await _get_contractor(db, current_user)
    return LicenseStatusResponse(**LicenseVerificationService.status(contractor))


# --- Background check ---

@router.post(
    "/background-check",
    response_model=BackgroundCheckInitiated,
    status_code=status.HTTP_201_CREATED,
)
async def initiate_background_check(
    data: BackgroundCheckRequest,
    db: AsyncSession = Depends(get_db),
    client: CheckrClient = Depends(get_checkr_client),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Create a Checkr candidate and invitation for the contractor."""
    contractor = await _get_contractor(db, current_user)

    service = BackgroundCheckService(db, client)
    initiated = await service.initiate(contractor, data.first_name, data.last_name, data.phone)
    await db.commit()

    return BackgroundCheckInitiated(**initiated)


@router.get("/background-check", response_model=BackgroundCheckStatusResponse)
async def get_background_check_status(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    contractor = await _get_contractor(db, current_user)
    return BackgroundCheckStatusResponse(**BackgroundCheckService.status(contractor))


# --- Identity ---

@router.post(
    "/identity",
    response_model=IdentityInquiryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_identity_inquiry(
    db: AsyncSession = Depends(get_db),
    client: PersonaClient = Depends(get_persona_client),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    """Start a Persona inquiry; the client completes it in the hosted flow."""
    contractor = await _get_contractor(db, current_user)
    user = await db.get(User, current_user.db_user_id)
    name = (user.full_name if user else None) or contractor.business_name

    service = IdentityVerificationService(db, client)
    inquiry = await service.create_inquiry(contractor, name)
    await db.commit()

    return IdentityInquiryResponse(**inquiry)


@router.get("/identity", response_model=IdentityStatusResponse)
async def get_identity_status(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(require_contractor),
):
    contractor = await _get_contractor(db, current_user)
    return IdentityStatusResponse(**IdentityVerificationService.status(contractor))
