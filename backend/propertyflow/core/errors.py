"""Domain exceptions and their HTTP translation."""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

SUBSCRIPTION_SETTINGS_URL = "/contractor/settings/subscription"


class ApprovalError(Exception):
    """Raised when an application cannot be approved."""

    STATUS_CODES = {
        "APPLICATION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "PROPERTY_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "TENANT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "APPLICATION_NOT_PENDING": status.HTTP_409_CONFLICT,
        "UNIT_UNAVAILABLE": status.HTTP_409_CONFLICT,
        "NO_LEASE_TEMPLATE": status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
        "LEASE_GENERATION_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return self.STATUS_CODES.get(self.code, status.HTTP_400_BAD_REQUEST)


class SigningError(Exception):
    """Raised when a signature request cannot be viewed or signed."""

    STATUS_CODES = {
        "NOT_FOUND": status.HTTP_404_NOT_FOUND,
        "EXPIRED": status.HTTP_410_GONE,
        "ALREADY_SIGNED": status.HTTP_400_BAD_REQUEST,
        "LEASE_NOT_SIGNABLE": status.HTTP_409_CONFLICT,
    }

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return self.STATUS_CODES.get(self.code, status.HTTP_400_BAD_REQUEST)


class SubscriptionLimitError(Exception):
    """Raised when a contractor hits a quantity limit of their tier."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        feature: str,
        limit: int,
        current: int,
        tier: str,
        upgrade_required: Optional[str] = None,
    ):
        super().__init__(f"Subscription limit reached for {feature}")
        self.feature = feature
        self.limit = limit
        self.current = current
        self.tier = tier
        self.upgrade_required = upgrade_required

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "SUBSCRIPTION_LIMIT_REACHED",
            "message": str(self),
            "feature": self.feature,
            "current": self.current,
            "limit": self.limit,
            "tier": self.tier,
            "upgrade_url": SUBSCRIPTION_SETTINGS_URL,
            "upgrade_required": self.upgrade_required,
        }


class FeatureLockedError(Exception):
    """Raised when a feature is not part of the contractor's tier."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, feature: str, required_tier: str, current_tier: str):
        super().__init__(f"Feature '{feature}' requires {required_tier} tier")
        self.feature = feature
        self.required_tier = required_tier
        self.current_tier = current_tier

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "FEATURE_LOCKED",
            "message": str(self),
            "feature": self.feature,
            "current_tier": self.current_tier,
            "required_tier": self.required_tier,
            "upgrade_url": SUBSCRIPTION_SETTINGS_URL,
        }


class WebhookSignatureError(Exception):
    """Raised when a webhook payload fails signature verification."""


class ProviderError(Exception):
    """Raised when an external provider call fails."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


def register_exception_handlers(app: FastAPI) -> None:
    """Translate domain exceptions into JSON responses."""

    @app.exception_handler(ApprovalError)
    async def approval_error_handler(request: Request, exc: ApprovalError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.code, "message": exc.message},
        )

    @app.exception_handler(SigningError)
    async def signing_error_handler(request: Request, exc: SigningError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.code, "message": exc.message},
        )

    @app.exception_handler(SubscriptionLimitError)
    async def subscription_limit_handler(request: Request, exc: SubscriptionLimitError):
        logger.info(
            "Subscription limit reached: feature=%s tier=%s current=%s limit=%s",
            exc.feature, exc.tier, exc.current, exc.limit,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(FeatureLockedError)
    async def feature_locked_handler(request: Request, exc: FeatureLockedError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(WebhookSignatureError)
    async def webhook_signature_handler(request: Request, exc: WebhookSignatureError):
        logger.warning("Rejected webhook on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Invalid webhook signature"},
        )

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        logger.error("Provider failure on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": f"{exc.provider} request failed"},
        )
