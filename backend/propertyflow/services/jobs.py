"""Jobs outbox service for deferred side effects.

Side effects that talk to the outside world (email, OCR, provider
re-checks) are written here in the same transaction as the state change,
then executed by the worker.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from propertyflow.models.jobs import JobsOutbox
from propertyflow.models.enums import JobStatus

SEND_EMAIL = "send_email"
PROCESS_VERIFICATION_DOCUMENT = "process_verification_document"
REVERIFY_LICENSE = "reverify_license"


def _insert_for(db: AsyncSession):
    # ON CONFLICT DO NOTHING exists on both dialects, under different constructs
    if db.bind is not None and db.bind.dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


class JobsService:
    """Service for managing deferred jobs via the outbox pattern."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def enqueue(
        self,
        job_type: str,
        payload: dict[str, Any],
        unique_scope: str,
        run_after: Optional[datetime] = None,
    ) -> Optional[uuid.UUID]:
        """Enqueue a job with unique_scope de-duplication.

        Returns the new job ID, or None if a job with the same scope exists.
        """
        job_id = uuid.uuid4()
        now = datetime.utcnow()

        insert = _insert_for(self.db)
        stmt = insert(JobsOutbox).values(
            id=job_id,
            type=job_type,
            payload=payload,
            status=JobStatus.PENDING,
            unique_scope=unique_scope,
            attempts=0,
            max_attempts=3,
            run_after=run_after or now,
            created_at=now,
        ).on_conflict_do_nothing(index_elements=["unique_scope"])

        result = await self.db.execute(stmt)

        # rowcount is 0 when the scope already exists
        if result.rowcount == 0:
            return None

        return job_id

    async def enqueue_email(
        self,
        template: str,
        to: str,
        context: dict[str, Any],
        scope: str,
    ) -> Optional[uuid.UUID]:
        """Queue a templated transactional email."""
        return await self.enqueue(
            job_type=SEND_EMAIL,
            payload={"template": template, "to": to, "context": context},
            unique_scope=f"{SEND_EMAIL}:{template}:{scope}",
        )

    async def enqueue_document_processing(
        self,
        document_id: uuid.UUID,
        attempt: int = 0,
        run_after: Optional[datetime] = None,
    ) -> Optional[uuid.UUID]:
        """Queue OCR processing for an uploaded verification document."""
        return await self.enqueue(
            job_type=PROCESS_VERIFICATION_DOCUMENT,
            payload={"document_id": str(document_id), "attempt": attempt},
            unique_scope=f"{PROCESS_VERIFICATION_DOCUMENT}:{document_id}:{attempt}",
            run_after=run_after,
        )

    async def enqueue_license_reverification(
        self,
        contractor_id: uuid.UUID,
        run_after: datetime,
    ) -> Optional[uuid.UUID]:
        """Queue the periodic license re-check."""
        return await self.enqueue(
            job_type=REVERIFY_LICENSE,
            payload={"contractor_id": str(contractor_id)},
            unique_scope=f"{REVERIFY_LICENSE}:{contractor_id}:{run_after.date().isoformat()}",
            run_after=run_after,
        )

    async def claim_pending_jobs(
        self,
        job_type: Optional[str] = None,
        limit: int = 10,
    ) -> list[JobsOutbox]:
        """Claim due jobs: mark them PROCESSING and return them."""
        query = (
            select(JobsOutbox)
            .where(
                JobsOutbox.status == JobStatus.PENDING,
                JobsOutbox.run_after <= datetime.utcnow(),
            )
        )

        if job_type:
            query = query.where(JobsOutbox.type == job_type)

        query = query.order_by(JobsOutbox.run_after).limit(limit)
        if self.db.bind is not None and self.db.bind.dialect.name == "postgresql":
            query = query.with_for_update(skip_locked=True)

        result = await self.db.execute(query)
        jobs = list(result.scalars().all())

        if not jobs:
            return []

        job_ids = [j.id for j in jobs]
        await self.db.execute(
            update(JobsOutbox)
            .where(JobsOutbox.id.in_(job_ids))
            .values(
                status=JobStatus.PROCESSING,
                started_at=datetime.utcnow(),
                attempts=JobsOutbox.attempts + 1,
            )
            .execution_options(synchronize_session="fetch")
        )

        return jobs

    async def release_stale_jobs(self, older_than: timedelta) -> int:
        """Return PROCESSING jobs whose worker never finished them.

        Jobs with attempts left go back to PENDING, the rest to DEAD_LETTER.
        Returns the number of jobs released.
        """
        cutoff = datetime.utcnow() - older_than
        stale = (
            JobsOutbox.status == JobStatus.PROCESSING,
            JobsOutbox.started_at < cutoff,
        )
        error = "Worker stopped before the job finished"

        retried = await self.db.execute(
            update(JobsOutbox)
            .where(*stale, JobsOutbox.attempts < JobsOutbox.max_attempts)
            .values(status=JobStatus.PENDING, last_error=error)
            .execution_options(synchronize_session=False)
        )
        exhausted = await self.db.execute(
            update(JobsOutbox)
            .where(*stale, JobsOutbox.attempts >= JobsOutbox.max_attempts)
            .values(status=JobStatus.DEAD_LETTER, last_error=error)
            .execution_options(synchronize_session=False)
        )
        return retried.rowcount + exhausted.rowcount

    async def complete_job(self, job_id: uuid.UUID) -> None:
        """Mark job as completed."""
        await self.db.execute(
            update(JobsOutbox)
            .where(JobsOutbox.id == job_id)
            .values(
                status=JobStatus.COMPLETED,
                completed_at=datetime.utcnow(),
            )
        )

    async def fail_job(
        self,
        job_id: uuid.UUID,
        error: str,
        dead_letter: bool = False,
    ) -> JobStatus:
        """Mark job as failed.

        Moves to DEAD_LETTER when dead_letter=True or attempts are exhausted,
        otherwise back to PENDING for another attempt. Returns the new status.
        """
        result = await self.db.execute(
            select(JobsOutbox).where(JobsOutbox.id == job_id)
        )
        job = result.scalar_one_or_none()

        if not job:
            return JobStatus.FAILED

        if dead_letter or job.attempts >= job.max_attempts:
            new_status = JobStatus.DEAD_LETTER
        else:
            new_status = JobStatus.PENDING

        await self.db.execute(
            update(JobsOutbox)
            .where(JobsOutbox.id == job_id)
            .values(
                status=new_status,
                last_error=error[:2000],
            )
        )
        return new_status
