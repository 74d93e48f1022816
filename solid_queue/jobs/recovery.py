"""
Recovery poller: requeues retrying jobs once their cooldown has elapsed.
"""

import asyncio
from dataclasses import dataclass
from datetime import timedelta

from solid_queue.config.logging import get_logger
from solid_queue.config.settings import Settings
from solid_queue.infra.database import utcnow
from solid_queue.jobs.store import JobStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecoveryResult:
    requeued: int = 0
    expired: int = 0


class RecoveryPoller:
    """Background loop that moves cooled-down failures back to pending.

    This is the only path from ``retrying`` to ``pending``; failed attempts
    are never retried in-process. It also fails orphaned ``running`` jobs
    whose lease expired after their last attempt.
    """

    def __init__(self, store: JobStore, settings: Settings):
        self.store = store
        self.settings = settings
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def tasks(self) -> list[asyncio.Task]:
        return [self._task] if self._task is not None else []

    def start(self) -> None:
        if self.running:
            raise RuntimeError("Recovery poller is already running")
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="solid-queue-recovery")

    def request_stop(self) -> None:
        self._stopping.set()

    async def poll_once(self) -> RecoveryResult:
        now = utcnow()
        cutoff = now - timedelta(seconds=self.settings.job_retry_cooldown_s)
        scheduled_at = now + timedelta(seconds=self.settings.job_requeue_delay_s)

        async with self.store.transaction() as session:
            requeued = await self.store.requeue_cooled_down(
                session, cutoff, scheduled_at, now
            )
            expired = await self.store.fail_expired_leases(session, now)

        if requeued:
            logger.info("Scheduled jobs for retry", count=requeued)
        if expired:
            logger.warning("Failed jobs with expired leases", count=expired)
        return RecoveryResult(requeued=requeued, expired=expired)

    async def _loop(self) -> None:
        interval = self.settings.job_recovery_interval_s
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.poll_once()
            except Exception:
                logger.exception("Error in job recovery")
