"""Persona identity verification for contractors."""

import hmac
import logging
import uuid
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.config import get_settings
from propertyflow.core.errors import ProviderError, WebhookSignatureError
from propertyflow.core.security import compute_hmac_sha256
from propertyflow.models.contractor import ContractorProfile
from propertyflow.models.enums import AuditAction, IdentityVerificationStatus
from propertyflow.services.audit import AuditService
from propertyflow.services.background_check import parse_timestamp

logger = logging.getLogger(__name__)

PERSONA_VERSION = "2023-01-05"


def unwrap_persona_event(body: dict[str, Any]) -> tuple[Optional[str], dict[str, Any]]:
    """Return (event name, inquiry data) for both Persona envelope shapes.

    Persona posts {"data": {"attributes": {"name", "payload": {"data": ...}}}};
    the flat {"type", "data"} form is accepted as well.
    """
    attributes = (body.get("data") or {}).get("attributes") or {}
    if "name" in attributes:
        inquiry = (attributes.get("payload") or {}).get("data") or {}
        return attributes["name"], inquiry
    return body.get("type"), body.get("data") or {}


def verify_persona_signature(payload: bytes, header: Optional[str], secret: str) -> None:
    """Check a Persona-Signature header: t=<ts>,v1=<hmac of "<ts>.<payload>">.

    During secret rotation Persona sends several space-separated pairs.
    """
    if not header:
        raise WebhookSignatureError("Missing Persona-Signature header")

    for pair in header.split(" "):
        parts = dict(p.partition("=")[::2] for p in pair.strip().split(",") if "=" in p)
        timestamp, signature = parts.get("t"), parts.get("v1")
        if not timestamp or not signature:
            continue
        expected = compute_hmac_sha256(secret, f"{timestamp}.".encode() + payload)
        if hmac.compare_digest(expected, signature):
            return
    raise WebhookSignatureError("No matching Persona signature")


class PersonaClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.persona_api_key
        self.base_url = settings.persona_api_base.rstrip("/")
        self.template_id = settings.persona_template_id
        self._transport = transport

    async def create_inquiry(self, reference_id: str, name: str, email: str) -> dict[str, Any]:
        if not self.api_key:
            inquiry_id = f"sandbox_inquiry_{uuid.uuid4().hex[:12]}"
            return {
                "inquiry_id": inquiry_id,
                "session_token": f"sandbox_session_{uuid.uuid4().hex[:12]}",
                "inquiry_url": f"https://withpersona.com/verify?inquiry-id={inquiry_id}",
            }

        first, _, last = name.partition(" ")
        payload = {
            "data": {
                "type": "inquiry",
                "attributes": {
                    "inquiry_template_id": self.template_id,
                    "reference_id": reference_id,
                    "fields": {
                        "name_first": first,
                        "name_last": last,
                        "email_address": email,
                    },
                },
            },
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Persona-Version": PERSONA_VERSION,
        }
        async with httpx.AsyncClient(timeout=20.0, transport=self._transport) as client:
            try:
                response = await client.post(f"{self.base_url}/inquiries", json=payload, headers=headers)
            except httpx.HTTPError as e:
                logger.error("[PERSONA] Inquiry creation failed: %s", e)
                raise ProviderError("persona", str(e))

        if response.status_code >= 400:
            logger.error("[PERSONA] Inquiry creation returned %s: %s", response.status_code, response.text)
            raise ProviderError("persona", response.text, response.status_code)

        data = response.json()["data"]
        attributes = data.get("attributes") or {}
        return {
            "inquiry_id": data["id"],
            "session_token": attributes.get("session_token"),
            "inquiry_url": attributes.get("inquiry_url"),
        }


class IdentityVerificationService:
    def __init__(self, db: AsyncSession, client: Optional[PersonaClient] = None):
        self.db = db
        self.client = client or PersonaClient()

    async def create_inquiry(self, contractor: ContractorProfile, name: str) -> dict[str, Any]:
        inquiry = await self.client.create_inquiry(str(contractor.id), name, contractor.email)
        contractor.identity_inquiry_id = inquiry["inquiry_id"]
        contractor.identity_status = IdentityVerificationStatus.PENDING
        contractor.identity_verified_at = None
        await self.db.flush()
        return inquiry

    @staticmethod
    def status(contractor: ContractorProfile) -> dict[str, Any]:
        return {
            "is_verified": contractor.identity_status == IdentityVerificationStatus.VERIFIED,
            "status": contractor.identity_status,
            "inquiry_id": contractor.identity_inquiry_id,
            "verified_at": contractor.identity_verified_at,
        }

    async def handle_webhook(self, body: dict[str, Any]) -> bool:
        event_type, inquiry = unwrap_persona_event(body)
        if event_type not in ("inquiry.completed", "inquiry.failed", "inquiry.expired"):
            logger.info("[PERSONA] Ignoring event %s", event_type)
            return False

        inquiry_id = inquiry.get("id")
        result = await self.db.execute(
            select(ContractorProfile).where(ContractorProfile.identity_inquiry_id == inquiry_id)
        )
        contractor = result.scalar_one_or_none()
        if not contractor:
            logger.warning("[PERSONA] No contractor for inquiry %s", inquiry_id)
            return False

        if event_type == "inquiry.completed":
            attributes = inquiry.get("attributes") or {}
            contractor.identity_status = IdentityVerificationStatus.VERIFIED
            contractor.identity_verified_at = parse_timestamp(
                inquiry.get("verified_at") or attributes.get("completed_at")
            )
        else:
            # Cleared so the contractor can start a new inquiry
            contractor.identity_inquiry_id = None
            contractor.identity_verified_at = None
            contractor.identity_status = (
                IdentityVerificationStatus.FAILED
                if event_type == "inquiry.failed"
                else IdentityVerificationStatus.NOT_STARTED
            )

        await AuditService(self.db).log(
            action=AuditAction.IDENTITY_VERIFICATION_UPDATED,
            resource_type="contractor_profile",
            resource_id=contractor.id,
            contractor_id=contractor.id,
            details={"event": event_type, "inquiry_id": inquiry_id},
        )
        await self.db.flush()
        return True


def get_persona_client() -> PersonaClient:
    return PersonaClient()
