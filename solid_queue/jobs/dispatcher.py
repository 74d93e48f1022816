"""
Worker pool that claims and executes jobs from the job store.
"""

import asyncio
import json
import os
import socket
import uuid
from dataclasses import dataclass
from datetime import timedelta

from solid_queue.config.logging import get_logger
from solid_queue.config.settings import Settings
from solid_queue.core.exceptions import (
    ClaimConflict,
    HandlerExecutionError,
    QueueError,
)
from solid_queue.core.registries import HandlerRegistry
from solid_queue.infra.database import utcnow
from solid_queue.jobs.context import JobContext
from solid_queue.jobs.models import Job, JobStatus
from solid_queue.jobs.store import JobStore

logger = get_logger(__name__)

DEFAULT_WORKERS = 5


@dataclass(frozen=True)
class ClaimedJob:
    """Snapshot of a job as this worker claimed it."""

    id: int
    queue: str
    handler: str
    payload: str | None
    attempts: int
    max_attempts: int
    claim_token: str


class Dispatcher:
    """
    Fixed-size pool of workers sharing one job store.

    Claims use a select followed by a conditional update on the observed
    status instead of row locks, so several processes can share a store.
    The in-process ``processing`` set only stops this process from picking
    up a job it already holds.
    """

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry,
        settings: Settings,
        workers: int | None = None,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings
        if workers is None:
            workers = settings.job_workers
        self.workers = workers if workers > 0 else DEFAULT_WORKERS
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}"
        self.processing: set[int] = set()
        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def tasks(self) -> list[asyncio.Task]:
        return list(self._tasks)

    @property
    def stop_event(self) -> asyncio.Event:
        return self._stopping

    def start(self) -> None:
        """Spawn the worker tasks and the lease heartbeat."""
        if self.running:
            raise RuntimeError("Dispatcher is already running")

        self._stopping = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self._worker_loop(index), name=f"solid-queue-worker-{index}")
            for index in range(self.workers)
        ]
        self._tasks.append(
            asyncio.create_task(self._heartbeat_loop(), name="solid-queue-heartbeat")
        )
        logger.info(
            "Dispatcher started",
            worker_id=self.worker_id,
            workers=self.workers,
            idle_poll_ms=self.settings.job_idle_poll_ms,
        )

    def request_stop(self) -> None:
        self._stopping.set()

    async def _worker_loop(self, index: int) -> None:
        name = f"{self.worker_id}/{index}"
        logger.debug("Worker started", worker=name)

        while not self._stopping.is_set():
            try:
                job = await self.claim_next()
            except ClaimConflict as conflict:
                # Lost the race; rescan straight away
                logger.debug("Claim conflict", worker=name, **conflict.details)
                continue
            except Exception:
                logger.exception("Claim attempt failed", worker=name)
                job = None

            if job is None:
                await self._sleep(self.settings.job_idle_poll_ms / 1000)
                continue

            await self.process(job)

        logger.debug("Worker stopping", worker=name)

    async def claim_next(self) -> ClaimedJob | None:
        """
        Claim the oldest eligible job.

        Jobs this process already holds are skipped. Returns None when nothing
        is eligible. Raises ClaimConflict when a concurrent worker took the
        candidate between select and update.
        """
        now = utcnow()
        token = uuid.uuid4().hex
        held: int | None = None

        try:
            async with self.store.transaction() as session:
                candidate = await self.store.select_next_eligible(
                    session, now, exclude=self.processing
                )
                if candidate is None:
                    return None
                if candidate.id in self.processing:
                    # Another worker in this process picked it during the select
                    raise ClaimConflict(candidate.id)

                held = candidate.id
                self.processing.add(held)

                conditions = []
                reclaimed = candidate.status == JobStatus.RUNNING.value
                if reclaimed:
                    # Orphaned claim: only take it while the lease is still expired
                    conditions.append(Job.lease_expires_at < now)

                affected = await self.store.transition(
                    session,
                    candidate.id,
                    candidate.status,
                    JobStatus.RUNNING,
                    *conditions,
                    started_at=now,
                    attempts=Job.attempts + 1,
                    lease_expires_at=now + timedelta(seconds=self.settings.job_lease_s),
                    claim_token=token,
                    updated_at=now,
                )
                if affected == 0:
                    raise ClaimConflict(candidate.id)

                claimed = ClaimedJob(
                    id=candidate.id,
                    queue=candidate.queue,
                    handler=candidate.handler,
                    payload=candidate.payload,
                    attempts=candidate.attempts + 1,
                    max_attempts=candidate.max_attempts,
                    claim_token=token,
                )
        except BaseException:
            if held is not None:
                self.processing.discard(held)
            raise

        if reclaimed:
            logger.warning(
                "Reclaimed job with expired lease",
                job_id=claimed.id,
                attempt=claimed.attempts,
            )
        return claimed

    async def run_once(self) -> bool:
        """Claim and process a single job. Returns False if none was eligible."""
        try:
            job = await self.claim_next()
        except ClaimConflict:
            return False
        if job is None:
            return False
        await self.process(job)
        return True

    async def process(self, job: ClaimedJob) -> None:
        """Execute a claimed job and record the outcome.

        Handler faults of any kind become a failed attempt; nothing raised by
        a handler escapes this method.
        """
        job_logger = logger.bind(
            job_id=job.id, handler=job.handler, queue=job.queue, attempt=job.attempts
        )

        try:
            handler = self.registry.get(job.handler)

            payload = None
            if job.payload:
                try:
                    payload = json.loads(job.payload)
                except ValueError as e:
                    raise HandlerExecutionError(
                        f"failed to unmarshal payload: {e}"
                    ) from e

            ctx = JobContext(
                id=job.id,
                handler=job.handler,
                payload=payload,
                attempt=job.attempts,
                queue=job.queue,
                stop_event=self._stopping,
            )

            job_logger.info("Processing job started")
            await handler.handle(ctx)

        except QueueError as e:
            await self._mark_failed(job, e.message)
        except Exception as e:
            job_logger.exception("Job handler raised")
            await self._mark_failed(job, HandlerExecutionError.from_exception(e).message)
        else:
            await self._mark_completed(job)
        finally:
            self.processing.discard(job.id)

    async def _mark_completed(self, job: ClaimedJob) -> None:
        now = utcnow()
        try:
            async with self.store.transaction() as session:
                affected = await self.store.transition(
                    session,
                    job.id,
                    JobStatus.RUNNING,
                    JobStatus.COMPLETED,
                    Job.claim_token == job.claim_token,
                    completed_at=now,
                    lease_expires_at=None,
                    claim_token=None,
                    updated_at=now,
                )
        except QueueError:
            logger.exception("Failed to mark job completed", job_id=job.id)
            return

        if affected == 0:
            logger.warning(
                "Job completion not recorded; ownership lost",
                job_id=job.id,
                attempt=job.attempts,
            )
            return
        logger.info("Job completed", job_id=job.id, attempt=job.attempts)

    async def _mark_failed(self, job: ClaimedJob, error: str) -> None:
        status = (
            JobStatus.RETRYING if job.attempts < job.max_attempts else JobStatus.FAILED
        )
        now = utcnow()
        try:
            async with self.store.transaction() as session:
                affected = await self.store.transition(
                    session,
                    job.id,
                    JobStatus.RUNNING,
                    status,
                    Job.claim_token == job.claim_token,
                    error=error,
                    lease_expires_at=None,
                    claim_token=None,
                    updated_at=now,
                )
        except QueueError:
            logger.exception("Failed to mark job failed", job_id=job.id)
            return

        if affected == 0:
            logger.warning(
                "Job failure not recorded; ownership lost",
                job_id=job.id,
                attempt=job.attempts,
                error=error,
            )
            return
        logger.warning(
            "Job failed",
            job_id=job.id,
            attempt=job.attempts,
            max_attempts=job.max_attempts,
            status=status.value,
            error=error,
        )

    async def _heartbeat_loop(self) -> None:
        """Extend leases of in-flight jobs until the last one finishes."""
        loop = asyncio.get_running_loop()
        next_beat = loop.time() + self.settings.job_heartbeat_s

        while not self._stopping.is_set() or self.processing:
            if self._stopping.is_set():
                # Draining: workers are finishing their last jobs
                await asyncio.sleep(0.1)
            else:
                await self._sleep(max(0.0, next_beat - loop.time()))
            if loop.time() < next_beat:
                continue
            next_beat = loop.time() + self.settings.job_heartbeat_s
            if not self.processing:
                continue

            try:
                until = utcnow() + timedelta(seconds=self.settings.job_lease_s)
                async with self.store.transaction() as session:
                    extended = await self.store.extend_leases(
                        session, set(self.processing), until
                    )
                logger.debug("Extended job leases", count=extended)
            except Exception:
                logger.exception("Error updating job leases", worker_id=self.worker_id)

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
