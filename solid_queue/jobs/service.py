"""
Job queue service: enqueueing, administration and lifecycle control.
"""

import asyncio
import json
import signal
from datetime import datetime, timedelta
from typing import Any

from solid_queue.config.logging import get_logger
from solid_queue.config.settings import Settings, settings as default_settings
from solid_queue.core.exceptions import (
    JobNotFoundError,
    NotCancellableError,
    SerializationError,
)
from solid_queue.core.registries import HandlerRegistry
from solid_queue.infra.database import Database, utcnow
from solid_queue.jobs.dispatcher import Dispatcher
from solid_queue.jobs.models import Job, JobStatus
from solid_queue.jobs.recovery import RecoveryPoller
from solid_queue.jobs.schemas import (
    JobCreate,
    JobListFilters,
    JobListResponse,
    JobResponse,
    JobStatsResponse,
)
from solid_queue.jobs.store import JobStore

logger = get_logger(__name__)


class SolidQueue:
    """
    Database-backed background job queue.

    Jobs are durable rows in the ``jobs`` table; a pool of workers claims and
    runs them through registered handlers, and a recovery poller requeues
    failed attempts after a cooldown. Delivery is at-least-once.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        database: Database | None = None,
        workers: int | None = None,
    ):
        self.settings = settings or default_settings
        self.database = database or Database(self.settings)
        self.store = JobStore(self.database)
        self.registry = HandlerRegistry()
        self.dispatcher = Dispatcher(
            self.store, self.registry, self.settings, workers=workers
        )
        self.poller = RecoveryPoller(self.store, self.settings)

    @property
    def workers(self) -> int:
        return self.dispatcher.workers

    @property
    def running(self) -> bool:
        return self.dispatcher.running or self.poller.running

    async def migrate(self) -> None:
        """Create the jobs table and its indices."""
        await self.database.create_schema()

    # Enqueueing

    async def enqueue(self, job: JobCreate) -> int:
        """
        Persist a job for execution.

        Fills in defaults on ``job`` (queue, max_attempts, scheduled_at) and
        sets ``job.id`` to the assigned identifier, which is also returned.

        Raises:
            SerializationError: payload is not JSON-serializable
            StorageError: the insert failed
        """
        if not job.queue:
            job.queue = self.settings.job_default_queue
        if job.max_attempts is None or job.max_attempts <= 0:
            job.max_attempts = self.settings.job_max_attempts
        if job.scheduled_at is None:
            job.scheduled_at = utcnow()

        payload = serialize_payload(job.payload)

        async with self.store.transaction() as session:
            job_id = await self.store.insert(
                session,
                Job(
                    queue=job.queue,
                    handler=job.handler,
                    payload=payload,
                    status=JobStatus.PENDING.value,
                    attempts=0,
                    max_attempts=job.max_attempts,
                    scheduled_at=job.scheduled_at,
                ),
            )

        job.id = job_id
        logger.info(
            "Job enqueued",
            job_id=job_id,
            handler=job.handler,
            queue=job.queue,
            scheduled_at=job.scheduled_at.isoformat(),
        )
        return job_id

    async def enqueue_at(self, job: JobCreate, at: datetime) -> int:
        """Enqueue a job that becomes eligible at ``at``."""
        job.scheduled_at = at
        return await self.enqueue(job)

    async def enqueue_in(self, job: JobCreate, delay: timedelta | float) -> int:
        """Enqueue a job that becomes eligible after ``delay`` (seconds or timedelta)."""
        if not isinstance(delay, timedelta):
            delay = timedelta(seconds=delay)
        return await self.enqueue_at(job, utcnow() + delay)

    def register_handler(self, name: str, handler: Any) -> None:
        """Register (or replace) the handler for ``name``.

        Register handlers before ``start()``; jobs naming an unknown handler
        fail when claimed.
        """
        self.registry.register(name, handler)
        logger.debug("Handler registered", handler=name)

    # Administration

    async def retry(self, job_id: int) -> None:
        """Reset a job to pending with a fresh attempt budget, whatever its status."""
        async with self.store.transaction() as session:
            affected = await self.store.reset(session, job_id, utcnow())
        if affected == 0:
            raise JobNotFoundError(job_id)
        logger.info("Job retried", job_id=job_id)

    async def cancel(self, job_id: int) -> None:
        """Delete a job, but only while it is still pending."""
        async with self.store.transaction() as session:
            affected = await self.store.delete_pending(session, job_id)
            if affected == 0:
                current = await self.store.get(session, job_id)
                raise NotCancellableError(
                    job_id, current.status if current is not None else None
                )
        logger.info("Job canceled", job_id=job_id)

    async def purge(self, older_than: timedelta | float) -> int:
        """Delete completed jobs whose completion is older than ``older_than``."""
        if not isinstance(older_than, timedelta):
            older_than = timedelta(seconds=older_than)
        cutoff = utcnow() - older_than

        async with self.store.transaction() as session:
            deleted = await self.store.purge_completed(session, cutoff)

        if deleted > 0:
            logger.info(
                "Purged completed jobs",
                deleted_count=deleted,
                older_than_s=older_than.total_seconds(),
            )
        return deleted

    async def get_job(self, job_id: int) -> JobResponse:
        async with self.store.transaction() as session:
            job = await self.store.get(session, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return JobResponse.from_job(job)

    async def list_jobs(self, filters: JobListFilters | None = None) -> JobListResponse:
        filters = filters or JobListFilters()
        async with self.store.transaction() as session:
            jobs, total = await self.store.list_jobs(session, filters)
            return JobListResponse(
                jobs=[JobResponse.from_job(job) for job in jobs],
                total=total,
                limit=filters.limit,
                offset=filters.offset,
            )

    async def get_stats(self) -> JobStatsResponse:
        async with self.store.transaction() as session:
            by_status = await self.store.count_by_status(session)
            by_queue = await self.store.count_by_queue(session)

        jobs_by_status = {status.value: 0 for status in JobStatus}
        jobs_by_status.update(by_status)

        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            jobs_by_status=jobs_by_status,
            by_queue=by_queue,
            workers=self.workers,
            processing_count=len(self.dispatcher.processing),
        )

    # Lifecycle

    async def start(self) -> None:
        """Start the worker pool and the recovery poller. Returns immediately."""
        if self.running:
            raise RuntimeError("Queue is already running")

        logger.info(
            "Starting job queue",
            workers=self.workers,
            handlers=self.registry.list(),
        )
        self.dispatcher.start()
        self.poller.start()

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop workers and the poller, then release the store connection.

        In-flight jobs get up to ``timeout`` seconds to finish; tasks still
        running after that are cancelled and their jobs stay ``running``
        until their lease expires.
        """
        if timeout is None:
            timeout = self.settings.job_shutdown_timeout_s

        logger.info("Stopping job queue")
        self.dispatcher.request_stop()
        self.poller.request_stop()

        tasks = self.dispatcher.tasks + self.poller.tasks
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                logger.warning(
                    "Job queue stop timeout",
                    pending_tasks=len(pending),
                    active_jobs=len(self.dispatcher.processing),
                )
                for task in pending:
                    task.cancel()
            else:
                logger.info("Job queue stopped gracefully")
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.database.close()

    async def run_forever(self) -> None:
        """Run until SIGINT/SIGTERM, then stop gracefully."""
        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_requested.set)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                pass

        await self.start()
        try:
            await stop_requested.wait()
        finally:
            await self.stop()

    async def __aenter__(self) -> "SolidQueue":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def serialize_payload(payload: Any) -> str:
    try:
        return json.dumps(payload, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(
            f"failed to marshal payload: {e}",
            {"payload_type": type(payload).__name__},
        ) from e
