"""
Checkr background checks for contractors.

A check starts with a Checkr candidate and an invitation the contractor
completes on Checkr's hosted flow. Results arrive later through the
/webhooks/checkr receiver.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.config import get_settings
from propertyflow.core.errors import ProviderError
from propertyflow.models.contractor import ContractorProfile
from propertyflow.models.enums import AuditAction, BackgroundCheckStatus
from propertyflow.services.audit import AuditService

logger = logging.getLogger(__name__)

INVITATION_VALID_DAYS = 30
RENEWAL_WINDOW_DAYS = 30


def add_one_year(value: datetime) -> datetime:
    try:
        return value.replace(year=value.year + 1)
    except ValueError:
        # Feb 29
        return value.replace(year=value.year + 1, day=28)


def parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.utcnow()
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.utcnow()
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed


class CheckrClient:
    """Checkr REST client. Without an API key it returns sandbox ids."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.checkr_api_key
        self.base_url = settings.checkr_api_base.rstrip("/")
        self.package = settings.checkr_package
        self._transport = transport

    @property
    def sandbox(self) -> bool:
        return not self.api_key

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(
            timeout=20.0,
            transport=self._transport,
            auth=(self.api_key, ""),
        ) as client:
            try:
                response = await client.post(f"{self.base_url}{path}", json=payload)
            except httpx.HTTPError as e:
                logger.error("[CHECKR] POST %s failed: %s", path, e)
                raise ProviderError("checkr", str(e))

        if response.status_code >= 400:
            logger.error("[CHECKR] POST %s returned %s: %s", path, response.status_code, response.text)
            raise ProviderError("checkr", response.text, response.status_code)
        return response.json()

    async def create_candidate(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str] = None,
    ) -> str:
        if self.sandbox:
            return f"sandbox_candidate_{uuid.uuid4().hex[:12]}"
        data = await self._post("/candidates", {
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "phone": phone,
        })
        return data["id"]

    async def create_invitation(self, candidate_id: str) -> dict[str, Any]:
        if self.sandbox:
            invitation_id = f"sandbox_invitation_{uuid.uuid4().hex[:12]}"
            return {
                "id": invitation_id,
                "invitation_url": f"https://checkr.com/invitation/{invitation_id}",
                "candidate_id": candidate_id,
                "report_id": None,
            }
        return await self._post("/invitations", {
            "candidate_id": candidate_id,
            "package": self.package,
        })


class BackgroundCheckService:
    """Background check lifecycle on contractor profiles."""

    def __init__(self, db: AsyncSession, client: Optional[CheckrClient] = None):
        self.db = db
        self.client = client or CheckrClient()

    async def initiate(
        self,
        contractor: ContractorProfile,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
    ) -> dict[str, Any]:
        candidate_id = await self.client.create_candidate(
            first_name, last_name, contractor.email, phone or contractor.phone,
        )
        invitation = await self.client.create_invitation(candidate_id)

        contractor.background_check_candidate_id = candidate_id
        contractor.background_check_invitation_id = invitation["id"]
        contractor.background_check_report_id = invitation.get("report_id")
        contractor.background_check_status = BackgroundCheckStatus.PENDING
        contractor.background_check_date = None
        contractor.background_check_expires = None
        await self.db.flush()

        logger.info("[CHECKR] Invitation %s created for contractor %s", invitation["id"], contractor.id)
        return {
            "candidate_id": candidate_id,
            "invitation_id": invitation["id"],
            "invitation_url": invitation["invitation_url"],
            "expires_at": datetime.utcnow() + timedelta(days=INVITATION_VALID_DAYS),
        }

    @staticmethod
    def status(contractor: ContractorProfile, now: Optional[datetime] = None) -> dict[str, Any]:
        now = now or datetime.utcnow()
        status = contractor.background_check_status
        expires = contractor.background_check_expires
        needs_renewal = False

        if status == BackgroundCheckStatus.CLEAR and expires:
            if expires < now:
                status = BackgroundCheckStatus.EXPIRED
                needs_renewal = True
            else:
                needs_renewal = expires < now + timedelta(days=RENEWAL_WINDOW_DAYS)
        elif status == BackgroundCheckStatus.EXPIRED:
            needs_renewal = True

        return {
            "is_verified": status == BackgroundCheckStatus.CLEAR,
            "status": status,
            "candidate_id": contractor.background_check_candidate_id,
            "report_id": contractor.background_check_report_id,
            "completed_at": contractor.background_check_date,
            "expires_at": expires,
            "needs_renewal": needs_renewal,
        }

    async def _find_contractor(self, report_id: str, candidate_id: Optional[str]) -> Optional[ContractorProfile]:
        conditions = [ContractorProfile.background_check_report_id == report_id]
        if candidate_id:
            # Invitations issued before the report exists only carry the candidate
            conditions.append(ContractorProfile.background_check_candidate_id == candidate_id)
        result = await self.db.execute(select(ContractorProfile).where(or_(*conditions)).limit(1))
        return result.scalar_one_or_none()

    async def handle_webhook(self, event: dict[str, Any]) -> bool:
        """Apply a Checkr event. Returns False when it was ignored."""
        event_type = event.get("type")
        data = (event.get("data") or {}).get("object") or event.get("data") or {}

        if event_type not in ("report.completed", "report.suspended"):
            logger.info("[CHECKR] Ignoring event %s", event_type)
            return False

        report_id = data.get("id")
        contractor = await self._find_contractor(report_id, data.get("candidate_id"))
        if not contractor:
            logger.warning("[CHECKR] No contractor for report %s", report_id)
            return False

        contractor.background_check_report_id = report_id
        if event_type == "report.completed":
            completed_at = parse_timestamp(data.get("completed_at"))
            contractor.background_check_date = completed_at
            if data.get("result") == "clear" or data.get("status") == "clear":
                contractor.background_check_status = BackgroundCheckStatus.CLEAR
                contractor.background_check_expires = add_one_year(completed_at)
            else:
                contractor.background_check_status = BackgroundCheckStatus.CONSIDER
                contractor.background_check_expires = None
        else:
            contractor.background_check_status = BackgroundCheckStatus.PENDING
            contractor.background_check_date = None
            contractor.background_check_expires = None

        await AuditService(self.db).log(
            action=AuditAction.BACKGROUND_CHECK_UPDATED,
            resource_type="contractor_profile",
            resource_id=contractor.id,
            contractor_id=contractor.id,
            details={"event": event_type, "report_id": report_id,
                     "status": contractor.background_check_status.value},
        )
        await self.db.flush()
        return True


def get_checkr_client() -> CheckrClient:
    return CheckrClient()
