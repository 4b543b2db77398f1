"""Tests for the jobs outbox and the worker that drains it."""

import uuid
from datetime import datetime, timedelta

import httpx
from sqlalchemy import select, update

from propertyflow.models import JobsOutbox
from propertyflow.models.enums import JobStatus
from propertyflow.services.email import EmailService
from propertyflow.services.jobs import JobsService
from propertyflow.worker import Worker


def _email_service(calls, status_code=200):
    def handler(request):
        calls.append(request)
        return httpx.Response(status_code, json={"id": f"msg_{len(calls)}"})
    return EmailService(api_key="re_key", api_url="https://mail.test/emails", transport=httpx.MockTransport(handler))


async def _all_jobs(session_maker):
    async with session_maker() as db:
        return list((await db.execute(select(JobsOutbox).order_by(JobsOutbox.created_at))).scalars().all())


class TestJobsService:
    """Outbox enqueue, claim and completion."""

    async def test_unique_scope_deduplicates(self, db_session):
        jobs = JobsService(db_session)
        first = await jobs.enqueue_email("monthly_summary", "a@example.com", {}, scope="c1:2025-01")
        second = await jobs.enqueue_email("monthly_summary", "a@example.com", {}, scope="c1:2025-01")

        assert first is not None
        assert second is None
        rows = (await db_session.execute(select(JobsOutbox))).scalars().all()
        assert [row.unique_scope for row in rows] == ["send_email:monthly_summary:c1:2025-01"]

    async def test_document_processing_payload(self, db_session):
        document_id = uuid.uuid4()
        await JobsService(db_session).enqueue_document_processing(document_id, attempt=2)

        job = (await db_session.execute(select(JobsOutbox))).scalar_one()
        assert job.type == "process_verification_document"
        assert job.payload == {"document_id": str(document_id), "attempt": 2}
        assert job.unique_scope == f"process_verification_document:{document_id}:2"

    async def test_claim_skips_future_jobs(self, db_session):
        jobs = JobsService(db_session)
        await jobs.enqueue("send_email", {}, "due")
        await jobs.enqueue("send_email", {}, "later", run_after=datetime.utcnow() + timedelta(hours=1))

        claimed = await jobs.claim_pending_jobs()

        assert [job.unique_scope for job in claimed] == ["due"]
        row = (await db_session.execute(
            select(JobsOutbox.status, JobsOutbox.attempts).where(JobsOutbox.unique_scope == "due")
        )).one()
        assert row == (JobStatus.PROCESSING, 1)

    async def test_fail_job_retries_then_dead_letters(self, db_session):
        jobs = JobsService(db_session)
        job_id = await jobs.enqueue("send_email", {}, "flaky")

        for expected in (JobStatus.PENDING, JobStatus.PENDING, JobStatus.DEAD_LETTER):
            await jobs.claim_pending_jobs()
            assert await jobs.fail_job(job_id, "boom") == expected

    async def test_release_stale_jobs(self, db_session):
        jobs = JobsService(db_session)
        retry_id = await jobs.enqueue("send_email", {}, "stuck")
        exhausted_id = await jobs.enqueue("send_email", {}, "stuck-again")
        fresh_id = await jobs.enqueue("send_email", {}, "running")
        await jobs.claim_pending_jobs()
        await db_session.execute(
            update(JobsOutbox)
            .where(JobsOutbox.id.in_([retry_id, exhausted_id]))
            .values(started_at=datetime.utcnow() - timedelta(hours=1))
        )
        await db_session.execute(
            update(JobsOutbox).where(JobsOutbox.id == exhausted_id).values(attempts=3)
        )

        assert await jobs.release_stale_jobs(timedelta(minutes=15)) == 2

        rows = dict((await db_session.execute(select(JobsOutbox.id, JobsOutbox.status))).all())
        assert rows == {
            retry_id: JobStatus.PENDING,
            exhausted_id: JobStatus.DEAD_LETTER,
            fresh_id: JobStatus.PROCESSING,
        }


class TestWorker:
    """Worker.run_once dispatch."""

    async def test_sends_queued_email(self, session_maker):
        async with session_maker() as db:
            await JobsService(db).enqueue_email(
                "usage_warning", "casey@example.com",
                {"business_name": "Casey Plumbing", "feature_name": "Active Jobs"},
                scope="c1:active_jobs",
            )
            await db.commit()

        calls = []
        worker = Worker(session_maker, email=_email_service(calls))
        assert await worker.run_once() == 1

        assert len(calls) == 1
        jobs = await _all_jobs(session_maker)
        assert jobs[0].status == JobStatus.COMPLETED
        assert jobs[0].completed_at is not None

    async def test_failed_delivery_is_retried(self, session_maker):
        async with session_maker() as db:
            await JobsService(db).enqueue_email("monthly_summary", "casey@example.com", {}, scope="c1")
            await db.commit()

        worker = Worker(session_maker, email=_email_service([], status_code=500))
        assert await worker.run_once() == 0

        job = (await _all_jobs(session_maker))[0]
        assert job.status == JobStatus.PENDING
        assert job.attempts == 1
        assert job.last_error.startswith("ProviderError")

    async def test_unknown_job_type_is_dead_lettered(self, session_maker):
        async with session_maker() as db:
            await JobsService(db).enqueue("launch_rocket", {}, "rocket:1")
            await db.commit()

        worker = Worker(session_maker, email=_email_service([]))
        assert await worker.run_once() == 0

        job = (await _all_jobs(session_maker))[0]
        assert job.status == JobStatus.DEAD_LETTER
        assert job.last_error == "Unknown job type: launch_rocket"

    async def test_empty_outbox(self, session_maker):
        assert await Worker(session_maker, email=_email_service([])).run_once() == 0

    async def test_stale_job_is_run_again(self, session_maker):
        async with session_maker() as db:
            job_id = await JobsService(db).enqueue_email("monthly_summary", "casey@example.com", {}, scope="c1")
            await db.execute(
                update(JobsOutbox)
                .where(JobsOutbox.id == job_id)
                .values(status=JobStatus.PROCESSING, attempts=1, started_at=datetime.utcnow() - timedelta(hours=1))
            )
            await db.commit()

        calls = []
        worker = Worker(session_maker, email=_email_service(calls), stale_after=timedelta(minutes=15))
        assert await worker.run_once() == 1

        job = (await _all_jobs(session_maker))[0]
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 2
        assert len(calls) == 1
