"""Storage service with provider interface (GCS/S3)."""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from propertyflow.core.config import get_settings, StorageProvider

settings = get_settings()
logger = logging.getLogger(__name__)


class StorageProviderInterface(ABC):
    """Abstract interface for storage providers."""

    @abstractmethod
    async def generate_presigned_upload_url(
        self,
        object_path: str,
        mime_type: str,
        ttl_seconds: int,
    ) -> tuple[str, datetime]:
        """Generate a presigned PUT URL for direct upload.

        Returns:
            Tuple of (presigned_url, expires_at)
        """

    @abstractmethod
    async def generate_presigned_download_url(self, object_path: str, ttl_seconds: int) -> str:
        """Generate a presigned GET URL for download."""

    @abstractmethod
    async def verify_object_exists(self, object_path: str) -> bool:
        """Verify an object exists in storage."""

    @abstractmethod
    async def upload_bytes(self, object_path: str, data: bytes, mime_type: str) -> None:
        """Write an object produced server-side (generated lease PDFs)."""

    @abstractmethod
    async def download_bytes(self, object_path: str) -> bytes:
        """Read an object for server-side processing (OCR)."""

    @abstractmethod
    async def delete_object(self, object_path: str) -> bool:
        """Delete an object from storage."""


class GCSStorageProvider(StorageProviderInterface):
    """Google Cloud Storage provider."""

    def __init__(self, bucket_name: str, project_id: Optional[str] = None):
        self.bucket_name = bucket_name
        self.project_id = project_id
        self._client = None

    @property
    def client(self):
        if self._client is None:
            from google.cloud import storage
            self._client = storage.Client(project=self.project_id)
        return self._client

    @property
    def bucket(self):
        return self.client.bucket(self.bucket_name)

    async def generate_presigned_upload_url(
        self,
        object_path: str,
        mime_type: str,
        ttl_seconds: int,
    ) -> tuple[str, datetime]:
        blob = self.bucket.blob(object_path)
        expires_at = datetime.utcnow() + timedelta(seconds=ttl_seconds)
        url = blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="PUT",
            content_type=mime_type,
        )
        return url, expires_at

    async def generate_presigned_download_url(self, object_path: str, ttl_seconds: int) -> str:
        blob = self.bucket.blob(object_path)
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="GET",
        )

    async def verify_object_exists(self, object_path: str) -> bool:
        blob = self.bucket.blob(object_path)
        return await asyncio.to_thread(blob.exists)

    async def upload_bytes(self, object_path: str, data: bytes, mime_type: str) -> None:
        blob = self.bucket.blob(object_path)
        await asyncio.to_thread(blob.upload_from_string, data, content_type=mime_type)

    async def download_bytes(self, object_path: str) -> bytes:
        blob = self.bucket.blob(object_path)
        return await asyncio.to_thread(blob.download_as_bytes)

    async def delete_object(self, object_path: str) -> bool:
        blob = self.bucket.blob(object_path)
        if await asyncio.to_thread(blob.exists):
            await asyncio.to_thread(blob.delete)
            return True
        return False


class S3StorageProvider(StorageProviderInterface):
    """AWS S3 storage provider."""

    def __init__(
        self,
        bucket_name: str,
        region: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
    ):
        self.bucket_name = bucket_name
        self.region = region
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self._client = None

    @property
    def client(self):
        if self._client is None:
            import boto3
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
            )
        return self._client

    async def generate_presigned_upload_url(
        self,
        object_path: str,
        mime_type: str,
        ttl_seconds: int,
    ) -> tuple[str, datetime]:
        expires_at = datetime.utcnow() + timedelta(seconds=ttl_seconds)
        url = self.client.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": self.bucket_name,
                "Key": object_path,
                "ContentType": mime_type,
            },
            ExpiresIn=ttl_seconds,
        )
        return url, expires_at

    async def generate_presigned_download_url(self, object_path: str, ttl_seconds: int) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket_name, "Key": object_path},
            ExpiresIn=ttl_seconds,
        )

    async def verify_object_exists(self, object_path: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket_name, Key=object_path
            )
            return True
        except ClientError:
            return False

    async def upload_bytes(self, object_path: str, data: bytes, mime_type: str) -> None:
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket_name,
            Key=object_path,
            Body=data,
            ContentType=mime_type,
        )

    async def download_bytes(self, object_path: str) -> bytes:
        response = await asyncio.to_thread(
            self.client.get_object, Bucket=self.bucket_name, Key=object_path
        )
        return response["Body"].read()

    async def delete_object(self, object_path: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            await asyncio.to_thread(
                self.client.delete_object, Bucket=self.bucket_name, Key=object_path
            )
            return True
        except ClientError:
            return False


class StorageService:
    """High-level storage service wrapping provider interface."""

    ALLOWED_MIME_TYPES = {
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/heic",
        "application/pdf",
    }

    def __init__(self, provider: StorageProviderInterface):
        self.provider = provider

    @staticmethod
    def _extension(file_name: str) -> str:
        return file_name.rsplit(".", 1)[-1].lower() if "." in file_name else "bin"

    def verification_document_path(
        self,
        landlord_id: UUID,
        application_id: UUID,
        file_name: str,
    ) -> str:
        return (
            f"landlords/{landlord_id}/applications/{application_id}/"
            f"verification/{uuid.uuid4()}.{self._extension(file_name)}"
        )

    def lease_document_path(self, landlord_id: UUID, lease_id: UUID) -> str:
        return f"landlords/{landlord_id}/leases/{lease_id}/lease.pdf"

    def validate_upload(self, mime_type: str, file_size_bytes: int) -> None:
        if mime_type not in self.ALLOWED_MIME_TYPES:
            raise ValueError(f"Unsupported mime type: {mime_type}")
        max_size = settings.max_upload_size_mb * 1024 * 1024
        if file_size_bytes > max_size:
            raise ValueError(f"File size exceeds maximum of {settings.max_upload_size_mb}MB")

    async def create_presigned_upload(
        self,
        object_path: str,
        mime_type: str,
        file_size_bytes: int,
    ) -> tuple[str, datetime]:
        """Validate the upload, then return (upload_url, expires_at)."""
        self.validate_upload(mime_type, file_size_bytes)
        return await self.provider.generate_presigned_upload_url(
            object_path=object_path,
            mime_type=mime_type,
            ttl_seconds=settings.presign_ttl_seconds,
        )

    async def verify_upload(self, object_path: str) -> bool:
        return await self.provider.verify_object_exists(object_path)

    async def get_download_url(self, object_path: str, ttl_seconds: int = 3600) -> str:
        return await self.provider.generate_presigned_download_url(object_path, ttl_seconds)

    async def put(self, object_path: str, data: bytes, mime_type: str) -> str:
        await self.provider.upload_bytes(object_path, data, mime_type)
        return object_path

    async def get(self, object_path: str) -> bytes:
        return await self.provider.download_bytes(object_path)

    async def discard(self, object_path: str) -> None:
        """Remove an object whose database record was never written."""
        try:
            if not await self.provider.delete_object(object_path):
                logger.warning("Storage object %s was not deleted", object_path)
        except Exception:
            logger.exception("Failed to delete storage object %s", object_path)


def get_storage_service() -> StorageService:
    """Factory function to get storage service based on config."""
    if settings.storage_provider == StorageProvider.GCS:
        provider = GCSStorageProvider(
            bucket_name=settings.bucket_name,
            project_id=settings.gcs_project_id,
        )
    else:
        provider = S3StorageProvider(
            bucket_name=settings.bucket_name,
            region=settings.aws_region or "us-east-1",
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )

    return StorageService(provider)
