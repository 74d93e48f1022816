"""
Durable job store with conditional (compare-and-set) transitions.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable

from sqlalchemy import and_, delete, desc, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from solid_queue.core.exceptions import StorageError
from solid_queue.infra.database import Database, utcnow
from solid_queue.jobs.models import Job, JobStatus
from solid_queue.jobs.schemas import JobListFilters


class JobStore:
    """CRUD over job records.

    Every method takes the session it runs in so callers decide the
    transaction boundaries; ``transaction()`` opens one and converts driver
    failures into StorageError.
    """

    def __init__(self, database: Database):
        self.database = database

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.database.SessionLocal() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            raise StorageError(
                f"job store operation failed: {e}",
                {"exception": e.__class__.__name__},
            ) from e

    async def insert(self, session: AsyncSession, job: Job) -> int:
        session.add(job)
        await session.flush()
        return job.id

    async def get(self, session: AsyncSession, job_id: int) -> Job | None:
        result = await session.execute(select(Job).where(Job.id == job_id))
        return result.scalar_one_or_none()

    async def select_next_eligible(
        self, session: AsyncSession, now: datetime, exclude: Iterable[int] = ()
    ) -> Job | None:
        """Return the oldest claimable job by ``scheduled_at``, if any.

        Claimable means pending and due, or running with an expired lease and
        attempts left. Ids in ``exclude`` are skipped.
        """
        query = select(Job)
        excluded = list(exclude)
        if excluded:
            query = query.where(Job.id.notin_(excluded))

        result = await session.execute(
            query.where(
                or_(
                    and_(
                        Job.status == JobStatus.PENDING.value,
                        Job.scheduled_at <= now,
                    ),
                    and_(
                        Job.status == JobStatus.RUNNING.value,
                        Job.lease_expires_at < now,
                        Job.attempts < Job.max_attempts,
                    ),
                )
            )
            .order_by(Job.scheduled_at, Job.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def transition(
        self,
        session: AsyncSession,
        job_id: int,
        from_status: JobStatus | str,
        to_status: JobStatus | str,
        *conditions: Any,
        **values: Any,
    ) -> int:
        """Move one job between statuses if it is still in ``from_status``.

        Returns the affected row count; 0 means the row changed underneath
        the caller.
        """
        values.setdefault("updated_at", utcnow())
        result = await session.execute(
            update(Job)
            .where(Job.id == job_id, Job.status == _value(from_status), *conditions)
            .values(status=_value(to_status), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def reset(self, session: AsyncSession, job_id: int, now: datetime) -> int:
        """Force a job back to pending with a fresh attempt budget."""
        result = await session.execute(
            update(Job)
            .where(Job.id == job_id)
            .values(
                status=JobStatus.PENDING.value,
                scheduled_at=now,
                attempts=0,
                error=None,
                started_at=None,
                completed_at=None,
                lease_expires_at=None,
                claim_token=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_pending(self, session: AsyncSession, job_id: int) -> int:
        result = await session.execute(
            delete(Job)
            .where(Job.id == job_id, Job.status == JobStatus.PENDING.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def purge_completed(self, session: AsyncSession, cutoff: datetime) -> int:
        result = await session.execute(
            delete(Job)
            .where(
                Job.status == JobStatus.COMPLETED.value,
                Job.completed_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def requeue_cooled_down(
        self,
        session: AsyncSession,
        cutoff: datetime,
        scheduled_at: datetime,
        now: datetime,
    ) -> int:
        """Promote retrying jobs untouched since ``cutoff`` back to pending."""
        result = await session.execute(
            update(Job)
            .where(
                Job.status == JobStatus.RETRYING.value,
                Job.attempts < Job.max_attempts,
                Job.updated_at < cutoff,
            )
            .values(
                status=JobStatus.PENDING.value,
                scheduled_at=scheduled_at,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def fail_expired_leases(self, session: AsyncSession, now: datetime) -> int:
        """Fail running jobs whose lease expired with no attempts left."""
        result = await session.execute(
            update(Job)
            .where(
                Job.status == JobStatus.RUNNING.value,
                Job.lease_expires_at < now,
                Job.attempts >= Job.max_attempts,
            )
            .values(
                status=JobStatus.FAILED.value,
                error="lease expired",
                lease_expires_at=None,
                claim_token=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def extend_leases(
        self, session: AsyncSession, job_ids: Iterable[int], until: datetime
    ) -> int:
        ids = list(job_ids)
        if not ids:
            return 0
        result = await session.execute(
            update(Job)
            .where(Job.id.in_(ids), Job.status == JobStatus.RUNNING.value)
            .values(lease_expires_at=until)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_jobs(
        self, session: AsyncSession, filters: JobListFilters
    ) -> tuple[list[Job], int]:
        """List jobs newest first, returning the page and the total match count."""
        base_query = select(Job)

        if filters.status:
            base_query = base_query.where(
                Job.status.in_([s.value for s in filters.status])
            )
        if filters.queue:
            base_query = base_query.where(Job.queue == filters.queue)
        if filters.handler:
            base_query = base_query.where(Job.handler == filters.handler)

        count_query = select(func.count()).select_from(base_query.subquery())
        total = (await session.execute(count_query)).scalar() or 0

        jobs_query = (
            base_query.order_by(desc(Job.created_at), desc(Job.id))
            .offset(filters.offset)
            .limit(filters.limit)
        )
        jobs = (await session.execute(jobs_query)).scalars().all()
        return list(jobs), total

    async def count_by_status(self, session: AsyncSession) -> dict[str, int]:
        result = await session.execute(
            select(Job.status, func.count(Job.id)).group_by(Job.status)
        )
        return {status: count for status, count in result.all()}

    async def count_by_queue(self, session: AsyncSession) -> dict[str, int]:
        result = await session.execute(
            select(Job.queue, func.count(Job.id)).group_by(Job.queue)
        )
        return {queue: count for queue, count in result.all()}


def _value(status: JobStatus | str) -> str:
    return status.value if isinstance(status, JobStatus) else status
