"""
Job store models.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, Index, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from solid_queue.infra.database import Base, UTCDateTime, utcnow


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


class Job(Base):
    """
    A persisted job record, the only source of truth for job state.

    Workers claim rows with a conditional update on ``status`` instead of row
    locks; ``lease_expires_at`` bounds how long a claim survives a crashed
    worker.
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    queue: Mapped[str] = mapped_column(
        Text, nullable=False, default="default", server_default="default"
    )
    handler: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Handler registry key"
    )
    payload: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="JSON-encoded job arguments"
    )

    # Job state
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=JobStatus.PENDING.value,
        server_default=JobStatus.PENDING.value,
        comment="Job status: pending|running|completed|failed|retrying",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3, server_default="3"
    )
    error: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Last failure message"
    )

    # Scheduling and execution
    scheduled_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        comment="Earliest time the job may run",
    )
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True, comment="Claim ownership deadline"
    )
    claim_token: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Identifies the claim that owns a running job"
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed', 'retrying')",
            name="jobs_status_check",
        ),
        Index("ix_jobs_status_scheduled_at", "status", "scheduled_at"),
        Index("ix_jobs_queue", "queue"),
    )

    def __repr__(self) -> str:
        return f"<Job id={self.id} handler={self.handler!r} status={self.status}>"
