"""Transactional email: Jinja2 templates delivered over an HTTP email API.

Request handlers never call send() directly; they queue a send_email job
(JobsService.enqueue_email) and the worker delivers it.
"""

import logging
from typing import Any, Optional

import httpx
from jinja2 import Environment, PackageLoader, select_autoescape

from propertyflow.core.config import get_settings
from propertyflow.core.errors import ProviderError

logger = logging.getLogger(__name__)

settings = get_settings()

TEMPLATES = Environment(
    loader=PackageLoader("propertyflow", "templates/email"),
    autoescape=select_autoescape(["html"]),
)


def format_cents(cents: Optional[int]) -> str:
    """1234567 -> "$12,345.67"."""
    if cents is None:
        return ""
    sign = "-" if cents < 0 else ""
    dollars, remainder = divmod(abs(int(cents)), 100)
    return f"{sign}${dollars:,}.{remainder:02d}"


SUBJECTS = {
    "lease_signing": "Your lease for {property_name} is ready to sign",
    "lease_countersign": "{tenant_name} signed the lease for {property_name}",
    "application_rejected": "Update on your application for {property_name}",
    "usage_warning": "You're approaching your {feature_name} limit",
    "usage_limit_reached": "You've reached your {feature_name} limit",
    "subscription_upgraded": "Welcome to PropertyFlow {tier_name}",
    "monthly_summary": "Your monthly usage summary",
    "rent_payment_received": "Payment received for {property_name}",
}


class EmailService:
    """Renders and delivers transactional emails."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.api_url = api_url or settings.email_api_url
        self.sender = sender or settings.email_from
        self._transport = transport

    def render(self, template: str, context: dict[str, Any]) -> tuple[str, str]:
        """Return (subject, html) for a named template."""
        if template not in SUBJECTS:
            raise ValueError(f"Unknown email template: {template}")
        full_context = {"app_name": settings.app_name, "app_url": settings.app_url, **context}
        subject = SUBJECTS[template].format_map(_Defaulting(full_context))
        html = TEMPLATES.get_template(f"{template}.html").render(**full_context)
        return subject, html

    async def send(self, to: str, template: str, context: dict[str, Any]) -> Optional[str]:
        """Deliver one email. Returns the provider message id.

        Without an API key the message is logged and dropped.
        """
        subject, html = self.render(template, context)

        if not self.api_key:
            logger.info("[EMAIL] Delivery disabled, skipping '%s' to %s", subject, to)
            return None

        async with httpx.AsyncClient(timeout=15.0, transport=self._transport) as client:
            try:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                )
            except httpx.HTTPError as e:
                logger.error("[EMAIL] Request failed for %s: %s", to, e)
                raise ProviderError("email", str(e))

        if response.status_code >= 400:
            logger.error("[EMAIL] Provider returned %s: %s", response.status_code, response.text)
            raise ProviderError("email", response.text, response.status_code)

        message_id = response.json().get("id")
        logger.info("[EMAIL] Sent '%s' to %s (%s)", template, to, message_id)
        return message_id


class _Defaulting(dict):
    """format_map helper that leaves unknown placeholders empty."""

    def __missing__(self, key: str) -> str:
        return ""
