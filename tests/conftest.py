from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from solid_queue.config.settings import Settings
from solid_queue.jobs.service import SolidQueue
from solid_queue.main import create_app


@pytest.fixture
def database_url(tmp_path) -> str:
    """Temporary SQLite job store, one file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}"


@pytest.fixture
def test_settings(database_url) -> Settings:
    """Settings with timings shortened so retries and recovery run in milliseconds."""
    return Settings(
        database_url=database_url,
        log_level="WARNING",
        job_workers=2,
        job_idle_poll_ms=10,
        job_recovery_interval_s=0.05,
        job_retry_cooldown_s=0.1,
        job_requeue_delay_s=0,
        job_lease_s=5.0,
        job_heartbeat_s=1.0,
        job_shutdown_timeout_s=5.0,
    )


@pytest.fixture
async def queue(test_settings) -> AsyncGenerator[SolidQueue, None]:
    """A migrated queue; stopped (and its connections released) after the test."""
    queue = SolidQueue(test_settings)
    await queue.migrate()
    yield queue
    await queue.stop(timeout=5.0)


@pytest.fixture
async def async_client(queue, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the admin app, without running the lifespan."""
    # Keep structlog on its uncached defaults while pytest swaps output streams
    monkeypatch.setattr("solid_queue.main.setup_logging", lambda settings=None: None)
    app = create_app(queue)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
