from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text

from solid_queue.core.exceptions import create_success_response
from solid_queue.jobs.routes import get_queue
from solid_queue.jobs.service import SolidQueue

router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class WorkerHealth(BaseModel):
    """Worker pool health status."""

    running: bool
    workers: int
    processing_count: int = 0
    queue_depth: int = 0


class HealthResponse(BaseModel):
    """Health response with worker pool and database status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DatabaseHealth
    worker: WorkerHealth | None = None


@router.get("/healthz", response_model=dict)
async def health_check(queue: SolidQueue = Depends(get_queue)):
    """Health check endpoint with database and worker pool status."""

    timestamp = datetime.now(UTC).isoformat()

    db_health = await _check_database_health(queue)

    worker_health = None
    if db_health.connected:
        worker_health = await _check_worker_health(queue)

    health = HealthResponse(
        ok=db_health.connected,
        version=queue.settings.version,
        environment=queue.settings.environment,
        timestamp=timestamp,
        database=db_health,
        worker=worker_health,
    )
    return create_success_response(data=health.model_dump())


async def _check_database_health(queue: SolidQueue) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        async with queue.database.SessionLocal() as session:
            await session.execute(text("SELECT 1"))

        response_time_ms = (datetime.now(UTC) - start_time).total_seconds() * 1000
        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_worker_health(queue: SolidQueue) -> WorkerHealth:
    """Report pool state and the number of jobs waiting or in flight."""
    stats = await queue.get_stats()
    queue_depth = (
        stats.jobs_by_status.get("pending", 0)
        + stats.jobs_by_status.get("running", 0)
        + stats.jobs_by_status.get("retrying", 0)
    )

    return WorkerHealth(
        running=queue.running,
        workers=stats.workers,
        processing_count=stats.processing_count,
        queue_depth=queue_depth,
    )
