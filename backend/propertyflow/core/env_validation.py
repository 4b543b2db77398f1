"""
Startup environment validation.

Checks required environment variables before the API accepts traffic.
A failed check exits the process with code 1 instead of serving requests
against a half-configured deployment.
"""

import os
import sys
from typing import Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class RequiredSettings(BaseSettings):
    """Variables that must be present (and coherent) for the API to start."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str

    # Firebase
    firebase_project_id: str
    google_application_credentials: Optional[str] = None

    # Storage: "gcs" or "s3"
    storage_provider: str
    gcs_bucket_name: Optional[str] = None
    gcs_project_id: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    s3_bucket_name: Optional[str] = None

    # CORS: comma-separated origins
    allowed_origins: str

    debug: bool = False

    # Payments
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None


def _fail(*lines: str) -> None:
    for line in lines:
        print(line, file=sys.stderr)
    sys.exit(1)


def validate_environment() -> RequiredSettings:
    """
    Validate required environment variables at startup.

    Returns:
        RequiredSettings: the validated values

    Raises:
        SystemExit: if validation fails (exit code 1)
    """
    try:
        settings = RequiredSettings()
    except ValidationError as e:
        lines = ["FATAL: Environment validation failed", "Missing or invalid environment variables:"]
        for error in e.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            lines.append(f"   - {field}: {error['msg']}")
        lines.append("Check your .env file or environment variables.")
        _fail(*lines)

    origins = [o.strip() for o in settings.allowed_origins.split(",")]
    if not settings.debug and "*" in origins:
        _fail(
            "FATAL: Wildcard CORS origin (*) detected in production mode.",
            "   Set ALLOWED_ORIGINS to specific domains (comma-separated).",
        )

    if settings.storage_provider == "gcs":
        if not settings.gcs_bucket_name or not settings.gcs_project_id:
            _fail("FATAL: GCS_BUCKET_NAME and GCS_PROJECT_ID required when STORAGE_PROVIDER=gcs")
    elif settings.storage_provider == "s3":
        if not settings.s3_bucket_name:
            _fail("FATAL: S3_BUCKET_NAME required when STORAGE_PROVIDER=s3")
    else:
        _fail(f"FATAL: Invalid STORAGE_PROVIDER '{settings.storage_provider}'. Must be 'gcs' or 's3'.")

    if settings.google_application_credentials and not os.path.exists(
        settings.google_application_credentials
    ):
        _fail(f"FATAL: Firebase credentials file not found: {settings.google_application_credentials}")

    if not settings.database_url.startswith("postgresql"):
        _fail("FATAL: DATABASE_URL must be a PostgreSQL connection string (postgresql+asyncpg://)")

    # Webhooks can only be trusted with a signing secret
    if not settings.debug and settings.stripe_secret_key and not settings.stripe_webhook_secret:
        _fail("FATAL: STRIPE_WEBHOOK_SECRET required when STRIPE_SECRET_KEY is set in production")

    print("Environment validation passed")
    print(f"   Debug: {settings.debug}")
    print(f"   Storage: {settings.storage_provider}")
    print(f"   CORS Origins: {settings.allowed_origins}")

    return settings


if __name__ == "__main__":
    validate_environment()
