"""
Job administration API endpoints.
"""

from datetime import timedelta
from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from solid_queue.config.logging import get_logger
from solid_queue.core.exceptions import create_success_response
from solid_queue.jobs.models import JobStatus
from solid_queue.jobs.schemas import (
    JobCreate,
    JobEnqueueRequest,
    JobEnqueueResponse,
    JobListFilters,
    PurgeResponse,
)
from solid_queue.jobs.service import SolidQueue

logger = get_logger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_queue(request: Request) -> SolidQueue:
    """Dependency returning the queue owned by the running application."""
    return request.app.state.queue


QueueDep = Depends(get_queue)


@router.post("", response_model=dict, status_code=201)
async def enqueue_job(
    job_request: JobEnqueueRequest,
    queue: SolidQueue = QueueDep,
) -> dict[str, Any]:
    """Enqueue a new background job."""
    job = JobCreate(
        handler=job_request.handler,
        queue=job_request.queue,
        payload=job_request.payload,
        max_attempts=job_request.max_attempts,
        scheduled_at=job_request.scheduled_at,
    )

    if job_request.delay_s is not None:
        job_id = await queue.enqueue_in(job, timedelta(seconds=job_request.delay_s))
    else:
        job_id = await queue.enqueue(job)

    result = JobEnqueueResponse(
        job_id=job_id, queue=job.queue, scheduled_at=job.scheduled_at
    )
    return create_success_response(data=result.model_dump(mode="json"))


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(
        default=None, description="Filter by status"
    ),
    queue_name: str | None = Query(
        default=None, alias="queue", description="Filter by queue"
    ),
    handler: str | None = Query(default=None, description="Filter by handler"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    queue: SolidQueue = QueueDep,
) -> dict[str, Any]:
    """List jobs with filtering and pagination."""
    filters = JobListFilters(
        status=status, queue=queue_name, handler=handler, limit=limit, offset=offset
    )
    response_data = await queue.list_jobs(filters)
    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats/overview", response_model=dict)
async def get_job_stats(queue: SolidQueue = QueueDep) -> dict[str, Any]:
    """Get per-status counts and worker pool state."""
    stats = await queue.get_stats()
    return create_success_response(data=stats.model_dump())


@router.get("/{job_id}", response_model=dict)
async def get_job(job_id: int, queue: SolidQueue = QueueDep) -> dict[str, Any]:
    """Get a specific job by ID."""
    job = await queue.get_job(job_id)
    return create_success_response(data=job.model_dump(mode="json"))


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(job_id: int, queue: SolidQueue = QueueDep) -> dict[str, Any]:
    """Reset a job to pending with a fresh attempt budget."""
    await queue.retry(job_id)
    logger.info("Job retried via API", job_id=job_id)
    return create_success_response(data={"success": True, "job_id": job_id})


@router.post("/{job_id}/cancel", response_model=dict)
async def cancel_job(job_id: int, queue: SolidQueue = QueueDep) -> dict[str, Any]:
    """Cancel (delete) a pending job."""
    await queue.cancel(job_id)
    logger.info("Job canceled via API", job_id=job_id)
    return create_success_response(data={"success": True, "job_id": job_id})


@router.post("/purge", response_model=dict)
async def purge_jobs(
    older_than_s: float = Query(
        ..., ge=0, description="Delete completed jobs finished longer ago than this"
    ),
    queue: SolidQueue = QueueDep,
) -> dict[str, Any]:
    """Delete completed jobs past the retention threshold."""
    deleted = await queue.purge(timedelta(seconds=older_than_s))
    result = PurgeResponse(deleted=deleted, older_than_s=older_than_s)
    return create_success_response(data=result.model_dump())
