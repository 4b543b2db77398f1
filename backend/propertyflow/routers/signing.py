"""Public lease signing links. The token in the URL is the only credential."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.schemas.lease import SigningView, SignRequest, SignResult
from propertyflow.services.lease_signing import LeaseSigningService
from propertyflow.services.storage import StorageService, get_storage_service

router = APIRouter(prefix="/sign", tags=["signing"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.get("/{token}", response_model=SigningView)
async def view_signing_request(
    token: str,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
):
    """Lease terms and document link for the holder of a signing link."""
    return await LeaseSigningService(db, storage).view(token)


@router.post("/{token}", response_model=SignResult)
async def sign_lease(
    token: str,
    data: SignRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Sign as the party the link was issued to."""
    result = await LeaseSigningService(db).sign(token, data.signer_name, _client_ip(request))
    await db.commit()
    return result
