"""PropertyFlow - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from propertyflow import __version__
from propertyflow.core.config import get_settings
from propertyflow.core.env_validation import validate_environment
from propertyflow.core.errors import register_exception_handlers
from propertyflow.core.logging_config import configure_logging
from propertyflow.routers import (
    auth_router,
    properties_router,
    leases_router,
    applications_router,
    verification_documents_router,
    signing_router,
    payments_router,
    contractor_verification_router,
    subscription_router,
    contractor_ops_router,
    notifications_router,
    webhooks_router,
    dashboard_router,
)

# Exits with code 1 if required configuration is missing
validate_environment()

settings = get_settings()
configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("%s %s starting", settings.app_name, __version__)
    yield
    logger.info("%s shutting down", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Landlord portfolios, tenant applications with document screening and e-signed leases, and contractor operations on tiered subscriptions.",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Wildcard origins are rejected outside debug by env_validation
allowed_origins = settings.origins
logger.info("CORS configured with origins: %s", allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# API v1 routers
app.include_router(auth_router, prefix=settings.api_v1_prefix)
app.include_router(properties_router, prefix=settings.api_v1_prefix)
app.include_router(leases_router, prefix=settings.api_v1_prefix)
app.include_router(applications_router, prefix=settings.api_v1_prefix)
app.include_router(verification_documents_router, prefix=settings.api_v1_prefix)
app.include_router(signing_router, prefix=settings.api_v1_prefix)  # Public, token-authenticated
app.include_router(payments_router, prefix=settings.api_v1_prefix)
app.include_router(contractor_verification_router, prefix=settings.api_v1_prefix)
app.include_router(subscription_router, prefix=settings.api_v1_prefix)
app.include_router(contractor_ops_router, prefix=settings.api_v1_prefix)
app.include_router(notifications_router, prefix=settings.api_v1_prefix)
app.include_router(webhooks_router, prefix=settings.api_v1_prefix)  # Signature-authenticated
app.include_router(dashboard_router, prefix=settings.api_v1_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else "Disabled in production",
    }
