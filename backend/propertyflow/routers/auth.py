"""Auth router - registration of Firebase identities and current user."""

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.database import get_db
from propertyflow.core.security import get_current_user, AuthenticatedUser
from propertyflow.models.contractor import ContractorProfile, ContractorUsage
from propertyflow.models.enums import UserRole
from propertyflow.models.landlord import Landlord
from propertyflow.models.user import User
from propertyflow.schemas.auth import RegisterRequest, CurrentUserResponse
from propertyflow.services.slugs import unique_slug
from propertyflow.services.usage_tracker import BILLING_PERIOD_DAYS

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=CurrentUserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Create the user record and role profile for the calling Firebase identity."""
    if current_user.db_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already registered")

    existing = await db.execute(select(User.id).where(User.firebase_uid == current_user.uid))
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already registered")

    if not current_user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Firebase account has no email address",
        )

    user = User(
        firebase_uid=current_user.uid,
        email=current_user.email,
        full_name=data.full_name,
        phone=data.phone,
        role=data.role,
    )
    db.add(user)
    await db.flush()

    landlord_id = None
    contractor_id = None

    if data.role == UserRole.LANDLORD:
        landlord = Landlord(
            owner_user_id=user.id,
            name=data.company_name,
            subdomain=await unique_slug(db, Landlord.subdomain, data.company_name),
            company_email=current_user.email,
            company_phone=data.phone,
        )
        db.add(landlord)
        await db.flush()
        landlord_id = landlord.id

    elif data.role == UserRole.CONTRACTOR:
        contractor = ContractorProfile(
            user_id=user.id,
            business_name=data.business_name,
            email=current_user.email,
            phone=data.phone,
        )
        db.add(contractor)
        await db.flush()
        db.add(ContractorUsage(
            contractor_id=contractor.id,
            billing_period_end=datetime.utcnow() + timedelta(days=BILLING_PERIOD_DAYS),
        ))
        contractor_id = contractor.id

    await db.commit()

    return CurrentUserResponse(
        uid=current_user.uid,
        email=current_user.email,
        email_verified=current_user.email_verified,
        db_user_id=user.id,
        role=user.role,
        full_name=user.full_name,
        landlord_id=landlord_id,
        contractor_id=contractor_id,
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(
    db: AsyncSession = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Get current user info with role context."""
    full_name = None
    if current_user.db_user_id:
        user = await db.get(User, current_user.db_user_id)
        full_name = user.full_name if user else None

    return CurrentUserResponse(
        uid=current_user.uid,
        email=current_user.email,
        email_verified=current_user.email_verified,
        db_user_id=current_user.db_user_id,
        role=current_user.role,
        full_name=full_name,
        landlord_id=current_user.landlord_id,
        contractor_id=current_user.contractor_id,
    )
