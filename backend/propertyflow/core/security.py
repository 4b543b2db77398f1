"""Firebase JWT verification, role guards and signing utilities."""

import hashlib
import hmac
import secrets
from typing import Any, Optional
from uuid import UUID

import firebase_admin
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth, credentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.config import get_settings
from propertyflow.core.database import get_db
from propertyflow.models.enums import UserRole

settings = get_settings()

security = HTTPBearer()


def _ensure_firebase_app() -> None:
    """Initialize the Firebase Admin SDK on first use."""
    if firebase_admin._apps:
        return
    options = {"projectId": settings.firebase_project_id}
    if settings.google_application_credentials:
        cred = credentials.Certificate(settings.google_application_credentials)
        firebase_admin.initialize_app(cred, options=options)
    else:
        firebase_admin.initialize_app(options=options)


class AuthenticatedUser:
    """Represents an authenticated user from Firebase JWT."""

    def __init__(
        self,
        uid: str,
        email: Optional[str] = None,
        email_verified: bool = False,
        claims: Optional[dict[str, Any]] = None,
    ):
        self.uid = uid
        self.email = email
        self.email_verified = email_verified
        self.claims = claims or {}
        self.db_user_id: Optional[UUID] = None
        self.role: Optional[UserRole] = None
        self.landlord_id: Optional[UUID] = None
        self.contractor_id: Optional[UUID] = None


async def verify_firebase_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthenticatedUser:
    """Verify Firebase JWT and return authenticated user.

    This never mints JWTs - it only verifies tokens issued by Firebase.
    """
    _ensure_firebase_app()
    token = credentials.credentials

    try:
        decoded_token = auth.verify_id_token(token)
    except auth.ExpiredIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except auth.InvalidIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token verification failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthenticatedUser(
        uid=decoded_token["uid"],
        email=decoded_token.get("email"),
        email_verified=decoded_token.get("email_verified", False),
        claims=decoded_token,
    )


async def get_current_user(
    auth_user: AuthenticatedUser = Depends(verify_firebase_token),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    """Get current user with database context (user id, role, profile ids)."""
    from propertyflow.models.user import User
    from propertyflow.models.landlord import Landlord
    from propertyflow.models.contractor import ContractorProfile

    result = await db.execute(
        select(User).where(User.firebase_uid == auth_user.uid)
    )
    user = result.scalar_one_or_none()

    if user and user.is_active:
        auth_user.db_user_id = user.id
        auth_user.role = user.role

        if user.role == UserRole.LANDLORD:
            landlord_result = await db.execute(
                select(Landlord.id).where(Landlord.owner_user_id == user.id)
            )
            auth_user.landlord_id = landlord_result.scalar_one_or_none()
        elif user.role == UserRole.CONTRACTOR:
            contractor_result = await db.execute(
                select(ContractorProfile.id).where(ContractorProfile.user_id == user.id)
            )
            auth_user.contractor_id = contractor_result.scalar_one_or_none()

    return auth_user


def require_registered(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Require a user record to exist for the Firebase identity."""
    if not current_user.db_user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Registration required",
        )
    return current_user


def require_landlord(
    current_user: AuthenticatedUser = Depends(require_registered),
) -> AuthenticatedUser:
    """Require a landlord account with a landlord profile."""
    if current_user.role != UserRole.LANDLORD or not current_user.landlord_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Landlord account required",
        )
    return current_user


def require_contractor(
    current_user: AuthenticatedUser = Depends(require_registered),
) -> AuthenticatedUser:
    """Require a contractor account with a contractor profile."""
    if current_user.role != UserRole.CONTRACTOR or not current_user.contractor_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Contractor account required",
        )
    return current_user


def require_admin(
    current_user: AuthenticatedUser = Depends(require_registered),
) -> AuthenticatedUser:
    """Require a platform admin."""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


def hash_token(token: str) -> str:
    """Hash a one-time token for storage."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_signing_token() -> str:
    """48 hex characters, used in public signing links."""
    return secrets.token_hex(24)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Hex-encoded HMAC-SHA256 of a raw request body."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_hmac_sha256(secret: str, payload: bytes, signature: str) -> bool:
    """Constant-time comparison against a provided hex signature."""
    expected = compute_hmac_sha256(secret, payload)
    return hmac.compare_digest(expected, signature or "")
