"""
Contractor license verification against state licensing board APIs.

Each supported state has its own base URL and API key in settings. A lookup
is GET {base_url}/licenses/{license_number} with a bearer key; boards answer
with a JSON record carrying status, expiration date, license type and
holder name.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.config import get_settings
from propertyflow.models.contractor import ContractorProfile
from propertyflow.models.enums import AuditAction, LicenseStatus
from propertyflow.services.audit import AuditService
from propertyflow.services.jobs import JobsService

logger = logging.getLogger(__name__)

SUPPORTED_STATES = ("CA", "TX", "FL", "NY")
REVERIFY_AFTER_DAYS = 30

_PROVIDER_STATUSES = {s.value: s for s in LicenseStatus}


@dataclass
class LicenseResult:
    is_valid: bool
    status: LicenseStatus
    license_type: str
    expiration_date: Optional[date] = None
    holder_name: str = ""
    message: Optional[str] = None
    retryable: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    def details(self) -> dict[str, Any]:
        """What gets stored on the contractor profile."""
        return {
            "status": self.status.value,
            "license_type": self.license_type,
            "holder_name": self.holder_name,
            "message": self.message,
            "retryable": self.retryable,
            "checked_at": datetime.utcnow().isoformat(),
            "raw": self.raw,
        }


def _not_found(license_type: str, message: str, retryable: bool = False) -> LicenseResult:
    return LicenseResult(
        is_valid=False,
        status=LicenseStatus.NOT_FOUND,
        license_type=license_type,
        message=message,
        retryable=retryable,
    )


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def derive_license_status(
    verified_at: Optional[datetime],
    expires_at: Optional[date],
    stored_status: Optional[str],
    today: Optional[date] = None,
) -> LicenseStatus:
    """Status shown to the contractor.

    A verified license with a known expiry is active or expired by date.
    Otherwise the last provider status stands, defaulting to pending.
    """
    today = today or date.today()
    if verified_at and expires_at:
        return LicenseStatus.EXPIRED if expires_at < today else LicenseStatus.ACTIVE
    if stored_status in _PROVIDER_STATUSES:
        return _PROVIDER_STATUSES[stored_status]
    return LicenseStatus.PENDING


def needs_reverification(verified_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if not verified_at:
        return False
    now = now or datetime.utcnow()
    return verified_at < now - timedelta(days=REVERIFY_AFTER_DAYS)


class LicenseVerificationClient:
    """Thin HTTP client over the state licensing boards."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = get_settings()
        self._transport = transport

    async def verify(self, license_number: str, state: str, license_type: str = "general") -> LicenseResult:
        state = state.upper()
        if state not in SUPPORTED_STATES:
            return _not_found(license_type, "State not supported for automated verification")

        base_url, api_key = self.settings.license_api_for_state(state)
        if not base_url:
            logger.info("[LICENSE] No API configured for %s, manual verification required", state)
            return _not_found(license_type, f"{state} lookup not configured, manual verification required")

        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        try:
            async with httpx.AsyncClient(timeout=20.0, transport=self._transport) as client:
                response = await client.get(
                    f"{base_url.rstrip('/')}/licenses/{license_number}",
                    headers=headers,
                    params={"type": license_type},
                )
        except httpx.HTTPError as e:
            logger.error("[LICENSE] %s lookup failed for %s: %s", state, license_number, e)
            return _not_found(license_type, "Licensing board unavailable", retryable=True)

        if response.status_code == 404:
            return _not_found(license_type, "License not found")
        if response.status_code >= 400:
            logger.error(
                "[LICENSE] %s returned %s for %s: %s",
                state, response.status_code, license_number, response.text,
            )
            return _not_found(license_type, "Licensing board unavailable", retryable=True)

        data = response.json()
        status = _PROVIDER_STATUSES.get(str(data.get("status", "")).lower(), LicenseStatus.NOT_FOUND)
        expiration = _parse_date(data.get("expiration_date") or data.get("expirationDate"))
        if status == LicenseStatus.ACTIVE and expiration and expiration < date.today():
            status = LicenseStatus.EXPIRED

        return LicenseResult(
            is_valid=status == LicenseStatus.ACTIVE,
            status=status,
            license_type=data.get("license_type") or data.get("licenseType") or license_type,
            expiration_date=expiration,
            holder_name=data.get("holder_name") or data.get("holderName") or "",
            raw=data,
        )


class LicenseVerificationService:
    """Stores license lookups on contractor profiles."""

    def __init__(self, db: AsyncSession, client: Optional[LicenseVerificationClient] = None):
        self.db = db
        self.client = client or LicenseVerificationClient()

    async def _apply(self, contractor: ContractorProfile, result: LicenseResult) -> None:
        now = datetime.utcnow()
        contractor.license_status = result.status
        contractor.license_details = result.details()
        if result.status != LicenseStatus.NOT_FOUND:
            contractor.license_verified_at = now
            contractor.license_expires_at = result.expiration_date
        else:
            contractor.license_verified_at = None
            contractor.license_expires_at = None

        await AuditService(self.db).log(
            action=AuditAction.LICENSE_VERIFIED,
            resource_type="contractor_profile",
            resource_id=contractor.id,
            contractor_id=contractor.id,
            details={"status": result.status.value, "state": contractor.license_state},
        )

        if result.status != LicenseStatus.NOT_FOUND or result.retryable:
            await JobsService(self.db).enqueue_license_reverification(
                contractor.id, run_after=now + timedelta(days=REVERIFY_AFTER_DAYS),
            )
        await self.db.flush()

    async def verify(
        self,
        contractor: ContractorProfile,
        license_number: str,
        state: str,
        license_type: str = "general",
    ) -> LicenseResult:
        contractor.license_number = license_number
        contractor.license_state = state.upper()
        result = await self.client.verify(license_number, state, license_type)
        await self._apply(contractor, result)
        return result

    async def reverify(self, contractor_id: uuid.UUID) -> Optional[LicenseResult]:
        """Re-run the lookup for a stored license. Used by the worker."""
        result = await self.db.execute(
            select(ContractorProfile).where(ContractorProfile.id == contractor_id)
        )
        contractor = result.scalar_one_or_none()
        if not contractor or not contractor.license_number or not contractor.license_state:
            logger.info("[LICENSE] Nothing to re-verify for contractor %s", contractor_id)
            return None

        license_type = (contractor.license_details or {}).get("license_type") or "general"
        lookup = await self.client.verify(contractor.license_number, contractor.license_state, license_type)
        await self._apply(contractor, lookup)
        return lookup

    @staticmethod
    def status(contractor: ContractorProfile, last_result: Optional[LicenseResult] = None) -> dict[str, Any]:
        details = contractor.license_details or {}
        status = derive_license_status(
            contractor.license_verified_at,
            contractor.license_expires_at,
            details.get("status"),
        )
        return {
            "is_verified": bool(contractor.license_verified_at) and status == LicenseStatus.ACTIVE,
            "license_number": contractor.license_number,
            "license_state": contractor.license_state,
            "license_type": details.get("license_type"),
            "status": status,
            "verified_at": contractor.license_verified_at,
            "expires_at": contractor.license_expires_at,
            "needs_reverification": needs_reverification(contractor.license_verified_at),
            "message": last_result.message if last_result else details.get("message"),
            "retryable": last_result.retryable if last_result else bool(details.get("retryable")),
        }


def get_license_client() -> LicenseVerificationClient:
    return LicenseVerificationClient()
