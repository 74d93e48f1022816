"""Solid Queue - database-backed background jobs."""

from solid_queue.core.exceptions import (
    HandlerExecutionError,
    HandlerNotFoundError,
    JobNotFoundError,
    NotCancellableError,
    QueueError,
    SerializationError,
    StorageError,
)
from solid_queue.jobs.context import JobContext
from solid_queue.jobs.models import JobStatus
from solid_queue.jobs.schemas import JobCreate
from solid_queue.jobs.service import SolidQueue

__version__ = "1.0.0"

__all__ = [
    "HandlerExecutionError",
    "HandlerNotFoundError",
    "JobContext",
    "JobCreate",
    "JobNotFoundError",
    "JobStatus",
    "NotCancellableError",
    "QueueError",
    "SerializationError",
    "SolidQueue",
    "StorageError",
]
