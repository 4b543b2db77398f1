"""API routers for PropertyFlow."""

from propertyflow.routers.auth import router as auth_router
from propertyflow.routers.properties import router as properties_router
from propertyflow.routers.leases import router as leases_router
from propertyflow.routers.applications import router as applications_router
from propertyflow.routers.verification_documents import router as verification_documents_router
from propertyflow.routers.signing import router as signing_router
from propertyflow.routers.payments import router as payments_router
from propertyflow.routers.contractor_verification import router as contractor_verification_router
from propertyflow.routers.subscription import router as subscription_router
from propertyflow.routers.contractor_ops import router as contractor_ops_router
from propertyflow.routers.notifications import router as notifications_router
from propertyflow.routers.webhooks import router as webhooks_router
from propertyflow.routers.dashboard import router as dashboard_router

__all__ = [
    "auth_router",
    "properties_router",
    "leases_router",
    "applications_router",
    "verification_documents_router",
    "signing_router",
    "payments_router",
    "contractor_verification_router",
    "subscription_router",
    "contractor_ops_router",
    "notifications_router",
    "webhooks_router",
    "dashboard_router",
]
