from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from solid_queue.config.logging import get_logger, setup_logging
from solid_queue.config.settings import Settings, settings as default_settings
from solid_queue.core.exceptions import (
    QueueError,
    RequestContextMiddleware,
    general_exception_handler,
    http_exception_handler,
    queue_exception_handler,
)
from solid_queue.healthz import router as health_router
from solid_queue.jobs.routes import router as jobs_router
from solid_queue.jobs.service import SolidQueue

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the schema, run the worker pool for the app's lifetime."""
    queue: SolidQueue = app.state.queue

    await queue.migrate()

    # Freeze the handler registry in non-development environments to prevent runtime modifications
    if queue.settings.environment != "development":
        queue.registry.freeze()

    await queue.start()
    logger.info("Admin API ready", workers=queue.workers, environment=queue.settings.environment)
    try:
        yield
    finally:
        await queue.stop()


def create_app(
    queue: SolidQueue | None = None, settings: Settings | None = None
) -> FastAPI:
    """Create and configure the admin application around a queue."""
    settings = settings or (queue.settings if queue else default_settings)
    queue = queue or SolidQueue(settings)

    # Initialize structured logging
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Administration API for the database-backed job queue",
        version=settings.version,
        debug=settings.debug,
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.queue = queue

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Add exception handlers
    app.add_exception_handler(QueueError, queue_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        create_app(),
        host=default_settings.host,
        port=default_settings.port,
    )
