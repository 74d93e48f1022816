"""Shared helpers for queue tests."""

import asyncio
from datetime import datetime, timedelta

from solid_queue.infra.database import utcnow
from solid_queue.jobs.models import Job, JobStatus
from solid_queue.jobs.schemas import JobResponse
from solid_queue.jobs.service import SolidQueue


async def wait_for_status(
    queue: SolidQueue, job_id: int, *statuses: str, timeout: float = 5.0
) -> JobResponse:
    """Poll until the job reaches one of ``statuses``; returns the job."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        job = await queue.get_job(job_id)
        if job.status in statuses:
            return job
        if loop.time() > deadline:
            raise AssertionError(
                f"job {job_id} stuck in {job.status!r}, expected one of {statuses}"
            )
        await asyncio.sleep(0.02)


async def insert_job(queue: SolidQueue, /, **fields) -> int:
    """Insert a job row directly, bypassing enqueue defaults."""
    now = utcnow()
    values = {
        "queue": "default",
        "handler": "noop",
        "payload": "null",
        "status": JobStatus.PENDING.value,
        "attempts": 0,
        "max_attempts": 3,
        "scheduled_at": now,
        "created_at": now,
        "updated_at": now,
    }
    values.update(fields)
    async with queue.store.transaction() as session:
        return await queue.store.insert(session, Job(**values))


def ago(**kwargs) -> datetime:
    return utcnow() - timedelta(**kwargs)


def from_now(**kwargs) -> datetime:
    return utcnow() + timedelta(**kwargs)
