import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from solid_queue.config.logging import add_request_context, get_logger

logger = get_logger(__name__)


class QueueError(Exception):
    """Base exception for the job queue."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class SerializationError(QueueError):
    """Raised when a job payload cannot be serialized at enqueue time."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class HandlerNotFoundError(QueueError):
    """No handler is registered for a job's handler name."""

    def __init__(self, handler: str):
        super().__init__(
            f"handler '{handler}' not found",
            status.HTTP_404_NOT_FOUND,
            {"handler": handler},
        )


class HandlerExecutionError(QueueError):
    """A handler raised while processing a job."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR, details)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "HandlerExecutionError":
        message = str(exc) or exc.__class__.__name__
        return cls(message, {"exception": exc.__class__.__name__})


class ClaimConflict(QueueError):
    """Another worker won the conditional update for a claim candidate."""

    def __init__(self, job_id: int):
        super().__init__(
            f"job {job_id} was claimed by another worker",
            status.HTTP_409_CONFLICT,
            {"job_id": job_id},
        )


class StorageError(QueueError):
    """Raised when a job store operation fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE, details)


class NotCancellableError(QueueError):
    """Raised when cancelling a job that is not pending."""

    def __init__(self, job_id: int, current_status: str | None = None):
        super().__init__(
            "job not found or not in pending status",
            status.HTTP_409_CONFLICT,
            {"job_id": job_id, "status": current_status},
        )


class JobNotFoundError(QueueError):
    """Raised when a job id does not exist."""

    def __init__(self, job_id: int):
        super().__init__(
            f"job {job_id} not found", status.HTTP_404_NOT_FOUND, {"job_id": job_id}
        )


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Error envelope: ``{ok, error{message, code, details}, request_id, timestamp}``."""
    return {
        "ok": False,
        "error": {"message": message, "code": status_code, "details": details or {}},
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(data: Any, request_id: str | None = None) -> dict[str, Any]:
    """Success envelope: ``{ok, data, message, request_id, timestamp}``."""
    return {
        "ok": True,
        "data": data,
        "message": None,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _error_json(
    request: Request,
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(status_code, message, details, request_id),
    )


async def queue_exception_handler(request: Request, exc: QueueError) -> JSONResponse:
    """Render queue errors; client mistakes log as warnings, store failures as errors."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Queue request failed",
        exception=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
        details=exc.details,
    )
    return _error_json(request, exc.status_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail)
    return _error_json(request, exc.status_code, str(exc.detail))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", path=request.url.path)
    return _error_json(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id, echoed in ``X-Request-ID`` and bound to logs."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        add_request_context(request_id, method=request.method, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
