"""
Stripe integration.

The Stripe REST API takes form-encoded bodies with bracketed keys for nested
values (metadata[rent_payment_id]=...). Calls go through httpx like the
other provider clients.
"""

import logging
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from propertyflow.core.config import get_settings
from propertyflow.core.errors import ProviderError
from propertyflow.services.subscription_tiers import get_tier_config

logger = logging.getLogger(__name__)


def encode_form(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested params into Stripe's bracketed form keys."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        name = f"{prefix}[{key}]" if prefix else key
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, f"{name}[{i}]"))
                else:
                    pairs.append((f"{name}[{i}]", str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


class StripeClient:
    """Thin Stripe REST client."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = get_settings()
        self.secret_key = secret_key if secret_key is not None else self.settings.stripe_secret_key
        self.base_url = self.settings.stripe_api_base.rstrip("/")
        self._transport = transport

    async def _post(
        self,
        path: str,
        params: dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        if not self.secret_key:
            raise ProviderError("stripe", "Stripe is not configured")

        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}{path}",
                    content=urlencode(encode_form(params)),
                    headers=headers,
                )
            except httpx.HTTPError as e:
                logger.error("[STRIPE] POST %s failed: %s", path, e)
                raise ProviderError("stripe", str(e))

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                message = response.text
            logger.error("[STRIPE] POST %s returned %s: %s", path, response.status_code, message)
            raise ProviderError("stripe", message, response.status_code)
        return response.json()

    async def create_payment_intent(
        self,
        amount_cents: int,
        metadata: dict[str, str],
        destination_account: Optional[str] = None,
        receipt_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": "usd",
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata,
            "receipt_email": receipt_email,
        }
        if destination_account:
            params["transfer_data"] = {"destination": destination_account}
        return await self._post("/payment_intents", params, idempotency_key)

    async def create_express_account(self, email: str, metadata: dict[str, str]) -> str:
        account = await self._post("/accounts", {
            "type": "express",
            "email": email,
            "capabilities": {
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            "metadata": metadata,
        })
        logger.info("[STRIPE] Created Connect account %s", account["id"])
        return account["id"]

    async def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        link = await self._post("/account_links", {
            "account": account_id,
            "refresh_url": refresh_url,
            "return_url": return_url,
            "type": "account_onboarding",
        })
        return link["url"]

    async def create_subscription_checkout(
        self,
        price_id: str,
        contractor_id: str,
        tier: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> tuple[str, str]:
        """Checkout Session for a contractor subscription. Returns (session id, url)."""
        app_url = self.settings.app_url.rstrip("/")
        metadata = {"contractor_id": contractor_id, "tier": tier}
        params: dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": f"{app_url}/contractor/settings/subscription?upgraded={tier}",
            "cancel_url": f"{app_url}/contractor/settings/subscription",
            "metadata": metadata,
            "subscription_data": {
                "metadata": metadata,
                "trial_period_days": get_tier_config(tier).trial_days if not customer_id else None,
            },
        }
        if customer_id:
            params["customer"] = customer_id
        else:
            params["customer_email"] = customer_email
        session = await self._post("/checkout/sessions", params)
        return session["id"], session["url"]


def connect_return_urls(role: str) -> tuple[str, str]:
    """(refresh_url, return_url) for Connect onboarding."""
    app_url = get_settings().app_url.rstrip("/")
    base = f"{app_url}/{role}/settings/payouts"
    return f"{base}?refresh=1", f"{base}?onboarded=1"


def get_stripe_client() -> StripeClient:
    return StripeClient()
