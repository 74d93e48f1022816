"""Tests for CLI commands"""

import asyncio
from datetime import timedelta

import pytest
from typer.testing import CliRunner

from helpers import ago, insert_job

from queuectl.main import app
from queuectl.utils.durations import parse_duration
from solid_queue.config.settings import Settings
from solid_queue.jobs.service import SolidQueue


# Test fixtures
@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


@pytest.fixture
def db(database_url):
    """Migrated store; returns a function that runs a coroutine against it."""

    def run(operation):
        async def runner():
            queue = SolidQueue(Settings(database_url=database_url))
            try:
                return await operation(queue)
            finally:
                await queue.database.close()

        return asyncio.run(runner())

    run(lambda queue: queue.migrate())
    return run


def invoke(runner, database_url, *args):
    return runner.invoke(app, [*args, "--database-url", database_url])


class TestMainCommands:
    """Test main CLI commands"""

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "Solid Queue CLI" in result.stdout

    def test_migrate(self, runner, database_url):
        result = invoke(runner, database_url, "migrate")
        assert result.exit_code == 0
        assert "schema is up to date" in result.stdout


class TestQueueCommands:
    """Test queue administration commands"""

    def test_enqueue_and_show(self, runner, database_url, db):
        result = invoke(
            runner, database_url, "queue", "enqueue", "send_email",
            "--payload", '{"to": "a@example.com"}', "--queue", "mail",
        )
        assert result.exit_code == 0
        assert "Enqueued job 1" in result.stdout

        result = invoke(runner, database_url, "queue", "show", "1")
        assert result.exit_code == 0
        assert "send_email" in result.stdout
        assert "a@example.com" in result.stdout

    def test_enqueue_invalid_payload(self, runner, database_url, db):
        result = invoke(runner, database_url, "queue", "enqueue", "x", "--payload", "{bad")
        assert result.exit_code == 1
        assert "Invalid option" in result.stdout

    def test_status(self, runner, database_url, db):
        db(lambda queue: insert_job(queue, queue="mail", status="failed", attempts=3))

        result = invoke(runner, database_url, "queue", "status")
        assert result.exit_code == 0
        assert "Queue Status" in result.stdout
        assert "mail" in result.stdout

    def test_list_empty(self, runner, database_url, db):
        result = invoke(runner, database_url, "queue", "list")
        assert result.exit_code == 0
        assert "No jobs found" in result.stdout

    def test_list_with_status_filter(self, runner, database_url, db):
        db(lambda queue: insert_job(queue, handler="broken", status="failed", attempts=3))
        db(lambda queue: insert_job(queue, handler="waiting"))

        result = invoke(runner, database_url, "queue", "list", "--status", "failed")
        assert result.exit_code == 0
        assert "broken" in result.stdout
        assert "waiting" not in result.stdout

    def test_show_missing_job(self, runner, database_url, db):
        result = invoke(runner, database_url, "queue", "show", "42")
        assert result.exit_code == 1
        assert "job 42 not found" in result.stdout

    def test_retry(self, runner, database_url, db):
        job_id = db(lambda queue: insert_job(queue, status="failed", attempts=3, error="boom"))

        result = invoke(runner, database_url, "queue", "retry", str(job_id))
        assert result.exit_code == 0

        job = db(lambda queue: queue.get_job(job_id))
        assert job.status == "pending"
        assert job.attempts == 0

    def test_cancel_non_pending(self, runner, database_url, db):
        job_id = db(lambda queue: insert_job(queue, status="running", attempts=1))

        result = invoke(runner, database_url, "queue", "cancel", str(job_id))
        assert result.exit_code == 1
        assert "not in pending status" in result.stdout

    def test_purge(self, runner, database_url, db):
        db(lambda queue: insert_job(queue, status="completed", attempts=1, completed_at=ago(hours=3)))
        db(lambda queue: insert_job(queue, status="completed", attempts=1, completed_at=ago(minutes=3)))

        result = invoke(runner, database_url, "queue", "purge", "--older-than", "1h")
        assert result.exit_code == 0
        assert "Purged 1" in result.stdout

    def test_purge_invalid_duration(self, runner, database_url, db):
        result = invoke(runner, database_url, "queue", "purge", "--older-than", "soon")
        assert result.exit_code == 1
        assert "Invalid duration" in result.stdout


class TestDurations:
    """Test duration parsing"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("20s", timedelta(seconds=20)),
            ("5m", timedelta(minutes=5)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("2d", timedelta(days=2)),
            ("90", timedelta(seconds=90)),
        ],
    )
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "soon", "5x", "h"])
    def test_parse_duration_rejects_garbage(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)
