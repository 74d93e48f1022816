"""
Job queue Pydantic schemas.
"""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from solid_queue.jobs.models import Job, JobStatus


class JobCreate(BaseModel):
    """A job to enqueue. ``id`` is filled in once the store assigns one."""

    handler: str = Field(..., min_length=1, description="Handler registry key")
    queue: str | None = Field(default=None, description="Queue lane")
    payload: Any = Field(default=None, description="JSON-serializable job arguments")
    max_attempts: int | None = Field(
        default=None, description="Attempt budget; values <= 0 use the default"
    )
    scheduled_at: datetime | None = Field(
        default=None, description="Earliest time to run job"
    )
    id: int | None = Field(default=None, description="Assigned job id")


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    queue: str
    handler: str
    payload: Any = None
    status: str
    attempts: int
    max_attempts: int
    error: str | None = None
    scheduled_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    lease_expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        """Build a response with the stored payload decoded."""
        data = cls.model_validate(job)
        if job.payload is not None:
            try:
                data.payload = json.loads(job.payload)
            except ValueError:
                data.payload = job.payload
        return data


class JobListFilters(BaseModel):
    """Schema for job listing filters."""

    status: list[JobStatus] | None = Field(
        default=None, description="Filter by job status"
    )
    queue: str | None = Field(default=None, description="Filter by queue")
    handler: str | None = Field(default=None, description="Filter by handler")
    limit: int = Field(
        default=50, ge=1, le=1000, description="Maximum results to return"
    )
    offset: int = Field(default=0, ge=0, description="Results offset for pagination")


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class JobStatsResponse(BaseModel):
    """Schema for queue statistics."""

    total_jobs: int
    jobs_by_status: dict[str, int]
    by_queue: dict[str, int]
    workers: int
    # Process-local: counts only jobs claimed by this process
    processing_count: int


class JobEnqueueRequest(BaseModel):
    """Schema for enqueueing jobs via API."""

    handler: str = Field(..., min_length=1, description="Handler registry key")
    queue: str | None = Field(default=None, description="Queue lane")
    payload: Any = Field(default=None, description="Job payload")
    max_attempts: int | None = Field(default=None, description="Attempt budget")
    scheduled_at: datetime | None = Field(default=None, description="Scheduled run time")
    delay_s: float | None = Field(
        default=None, ge=0, description="Run after this many seconds"
    )


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job_id: int
    queue: str
    scheduled_at: datetime


class PurgeResponse(BaseModel):
    """Schema for purge results."""

    deleted: int
    older_than_s: float
