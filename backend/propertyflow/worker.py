"""Outbox worker.

Claims due jobs from the outbox and runs them:

- send_email: render and deliver a transactional email
- process_verification_document: OCR and automated checks for one upload
- reverify_license: repeat a contractor's state license lookup

Run with ``python -m propertyflow.worker``.
"""

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from propertyflow.core.config import get_settings
from propertyflow.models.jobs import JobsOutbox
from propertyflow.services.email import EmailService
from propertyflow.services.jobs import (
    JobsService,
    PROCESS_VERIFICATION_DOCUMENT,
    REVERIFY_LICENSE,
    SEND_EMAIL,
)
from propertyflow.services.license_verification import (
    LicenseVerificationClient,
    LicenseVerificationService,
)
from propertyflow.services.ocr import OCRService
from propertyflow.services.storage import StorageService, get_storage_service
from propertyflow.services.verification_processor import VerificationProcessor

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, dict[str, Any]], Awaitable[None]]


class Worker:
    """Polls the outbox and dispatches jobs by type."""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        email: Optional[EmailService] = None,
        storage: Optional[StorageService] = None,
        ocr: Optional[OCRService] = None,
        license_client: Optional[LicenseVerificationClient] = None,
        batch_size: Optional[int] = None,
        poll_interval: Optional[float] = None,
        stale_after: Optional[timedelta] = None,
    ):
        settings = get_settings()
        self.session_maker = session_maker
        self.email = email or EmailService()
        self._storage = storage
        self._ocr = ocr
        self.license_client = license_client or LicenseVerificationClient()
        self.batch_size = batch_size or settings.worker_batch_size
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds
        self.stale_after = stale_after or timedelta(minutes=settings.worker_stale_job_minutes)
        self.handlers: dict[str, Handler] = {
            SEND_EMAIL: self._send_email,
            PROCESS_VERIFICATION_DOCUMENT: self._process_document,
            REVERIFY_LICENSE: self._reverify_license,
        }

    # Storage and OCR clients are only built when a document job arrives
    @property
    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = get_storage_service()
        return self._storage

    @property
    def ocr(self) -> OCRService:
        if self._ocr is None:
            self._ocr = OCRService()
        return self._ocr

    async def _send_email(self, db: AsyncSession, payload: dict[str, Any]) -> None:
        await self.email.send(payload["to"], payload["template"], payload.get("context") or {})

    async def _process_document(self, db: AsyncSession, payload: dict[str, Any]) -> None:
        processor = VerificationProcessor(db, self.storage, self.ocr)
        await processor.process(uuid.UUID(payload["document_id"]))

    async def _reverify_license(self, db: AsyncSession, payload: dict[str, Any]) -> None:
        service = LicenseVerificationService(db, self.license_client)
        await service.reverify(uuid.UUID(payload["contractor_id"]))

    async def _claim(self) -> list[tuple[uuid.UUID, str, dict[str, Any]]]:
        async with self.session_maker() as db:
            jobs_service = JobsService(db)
            released = await jobs_service.release_stale_jobs(self.stale_after)
            if released:
                logger.warning("[WORKER] Released %s stale jobs", released)
            jobs: list[JobsOutbox] = await jobs_service.claim_pending_jobs(limit=self.batch_size)
            claimed = [(job.id, job.type, dict(job.payload or {})) for job in jobs]
            await db.commit()
        return claimed

    async def _run_job(self, job_id: uuid.UUID, job_type: str, payload: dict[str, Any]) -> bool:
        handler = self.handlers.get(job_type)

        async with self.session_maker() as db:
            if handler is None:
                logger.error("[WORKER] Unknown job type %s for job %s", job_type, job_id)
                await JobsService(db).fail_job(job_id, f"Unknown job type: {job_type}", dead_letter=True)
                await db.commit()
                return False

            try:
                await handler(db, payload)
                await JobsService(db).complete_job(job_id)
                await db.commit()
            except Exception as e:
                await db.rollback()
                new_status = await JobsService(db).fail_job(job_id, f"{type(e).__name__}: {e}")
                await db.commit()
                logger.exception("[WORKER] Job %s (%s) failed, now %s", job_id, job_type, new_status.value)
                return False

        logger.info("[WORKER] Job %s (%s) completed", job_id, job_type)
        return True

    async def run_once(self) -> int:
        """Claim and run one batch. Returns the number of jobs that succeeded."""
        succeeded = 0
        for job_id, job_type, payload in await self._claim():
            if await self._run_job(job_id, job_type, payload):
                succeeded += 1
        return succeeded

    async def run_forever(self) -> None:
        logger.info(
            "[WORKER] Started: batch_size=%s poll_interval=%ss",
            self.batch_size, self.poll_interval,
        )
        while True:
            await self.run_once()
            await asyncio.sleep(self.poll_interval)


def main() -> None:
    from propertyflow.core.database import async_session_maker
    from propertyflow.core.logging_config import configure_logging

    configure_logging()
    try:
        asyncio.run(Worker(async_session_maker).run_forever())
    except KeyboardInterrupt:
        logger.info("[WORKER] Stopped")


if __name__ == "__main__":
    main()
