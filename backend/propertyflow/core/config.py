"""Application configuration using Pydantic Settings."""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageProvider(str, Enum):
    GCS = "gcs"
    S3 = "s3"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = "PropertyFlow"
    debug: bool = False
    api_v1_prefix: str = "/v1"
    app_url: str = "http://localhost:3000"
    allowed_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 5

    # Firebase Auth
    firebase_project_id: str
    google_application_credentials: Optional[str] = None

    # Storage
    storage_provider: StorageProvider = StorageProvider.GCS

    # GCS Config
    gcs_bucket_name: Optional[str] = None
    gcs_project_id: Optional[str] = None

    # S3 Config
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: Optional[str] = "us-east-1"
    s3_bucket_name: Optional[str] = None

    # Presigned URLs
    presign_ttl_seconds: int = 300
    max_upload_size_mb: int = 25

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_api_base: str = "https://api.stripe.com/v1"
    stripe_price_starter: Optional[str] = None
    stripe_price_pro: Optional[str] = None
    stripe_price_enterprise: Optional[str] = None

    # Checkr background checks
    checkr_api_key: Optional[str] = None
    checkr_api_base: str = "https://api.checkr.com/v1"
    checkr_webhook_secret: Optional[str] = None
    checkr_package: str = "tasker_standard"

    # Persona identity verification
    persona_api_key: Optional[str] = None
    persona_api_base: str = "https://withpersona.com/api/v1"
    persona_template_id: Optional[str] = None
    persona_webhook_secret: Optional[str] = None

    # State license lookup APIs
    license_api_ca_url: Optional[str] = None
    license_api_ca_key: Optional[str] = None
    license_api_tx_url: Optional[str] = None
    license_api_tx_key: Optional[str] = None
    license_api_fl_url: Optional[str] = None
    license_api_fl_key: Optional[str] = None
    license_api_ny_url: Optional[str] = None
    license_api_ny_key: Optional[str] = None

    # Transactional email
    email_api_key: Optional[str] = None
    email_api_url: str = "https://api.resend.com/emails"
    email_from: str = "PropertyFlow <noreply@propertyflowhq.com>"

    # OCR
    tesseract_cmd: Optional[str] = None

    # Worker
    worker_poll_interval_seconds: float = 5.0
    worker_batch_size: int = 10
    worker_stale_job_minutes: int = 15

    @property
    def bucket_name(self) -> str:
        """Get the appropriate bucket name based on storage provider."""
        if self.storage_provider == StorageProvider.GCS:
            if not self.gcs_bucket_name:
                raise ValueError("GCS_BUCKET_NAME required when STORAGE_PROVIDER=gcs")
            return self.gcs_bucket_name
        else:
            if not self.s3_bucket_name:
                raise ValueError("S3_BUCKET_NAME required when STORAGE_PROVIDER=s3")
            return self.s3_bucket_name

    @property
    def origins(self) -> list[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def stripe_price_for_tier(self, tier: str) -> Optional[str]:
        return {
            "starter": self.stripe_price_starter,
            "pro": self.stripe_price_pro,
            "enterprise": self.stripe_price_enterprise,
        }.get(tier)

    def license_api_for_state(self, state: str) -> tuple[Optional[str], Optional[str]]:
        """Return (base_url, api_key) for a state licensing board."""
        state = state.lower()
        return (
            getattr(self, f"license_api_{state}_url", None),
            getattr(self, f"license_api_{state}_key", None),
        )


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
