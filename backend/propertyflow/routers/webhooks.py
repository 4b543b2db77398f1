"""Inbound provider webhooks: Stripe, Checkr and Persona.

Signatures are checked against the raw body before anything is parsed.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.core.config import get_settings
from propertyflow.core.database import get_db
from propertyflow.core.errors import WebhookSignatureError
from propertyflow.core.security import verify_hmac_sha256
from propertyflow.schemas.payment import WebhookAck
from propertyflow.services.background_check import BackgroundCheckService
from propertyflow.services.identity_verification import (
    IdentityVerificationService,
    verify_persona_signature,
)
from propertyflow.services.stripe_webhooks import (
    IGNORED,
    PROCESSED,
    StripeWebhookHandler,
    UnknownPaymentError,
    verify_stripe_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _parse_json(payload: bytes) -> dict:
    try:
        body = json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload")
    return body


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Payments, subscriptions and Connect account updates."""
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        logger.error("[STRIPE] Webhook received but STRIPE_WEBHOOK_SECRET is not set")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    payload = await request.body()
    verify_stripe_signature(payload, request.headers.get("stripe-signature"), settings.stripe_webhook_secret)
    event = _parse_json(payload)
    if not event.get("id"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event id missing")

    handler = StripeWebhookHandler(db)
    try:
        outcome = await handler.handle(event)
    except UnknownPaymentError as e:
        await db.rollback()
        logger.error("[STRIPE] Event %s references unknown payment: %s", event["id"], e)
        # Non-2xx so Stripe redelivers
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Rent payment not found",
        )

    await db.commit()
    logger.info("[STRIPE] %s %s: %s", event.get("type"), event["id"], outcome)
    return WebhookAck(status=outcome)


@router.post("/checkr", response_model=WebhookAck)
async def checkr_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Background check report updates."""
    settings = get_settings()
    payload = await request.body()

    if settings.checkr_webhook_secret:
        signature = request.headers.get("x-checkr-signature")
        if not verify_hmac_sha256(settings.checkr_webhook_secret, payload, signature):
            raise WebhookSignatureError("Invalid X-Checkr-Signature")

    event = _parse_json(payload)
    applied = await BackgroundCheckService(db).handle_webhook(event)
    await db.commit()

    return WebhookAck(status=PROCESSED if applied else IGNORED)


@router.post("/persona", response_model=WebhookAck)
async def persona_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Identity inquiry outcomes."""
    settings = get_settings()
    payload = await request.body()

    if settings.persona_webhook_secret:
        verify_persona_signature(
            payload, request.headers.get("persona-signature"), settings.persona_webhook_secret,
        )

    body = _parse_json(payload)
    applied = await IdentityVerificationService(db).handle_webhook(body)
    await db.commit()

    return WebhookAck(status=PROCESSED if applied else IGNORED)
