"""Helpers for running queue operations from synchronous commands"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import typer

from solid_queue.config.settings import Settings
from solid_queue.core.exceptions import QueueError
from solid_queue.jobs.service import SolidQueue

from .formatting import print_error

T = TypeVar("T")


def database_url_option() -> Any:
    return typer.Option(
        None,
        "--database-url",
        envvar="DATABASE_URL",
        help="Job store URL (defaults to the configured database)",
    )


def build_queue(database_url: str | None = None, workers: int | None = None) -> SolidQueue:
    """Create a queue against the configured store, optionally overriding its URL."""
    overrides = {"database_url": database_url} if database_url else {}
    return SolidQueue(Settings(**overrides), workers=workers)


def run_with_queue(
    database_url: str | None, operation: Callable[[SolidQueue], Awaitable[T]]
) -> T:
    """Run ``operation`` on a fresh queue and release its connections afterwards.

    Queue errors are reported and turned into exit code 1.
    """

    async def runner() -> T:
        queue = build_queue(database_url)
        try:
            return await operation(queue)
        finally:
            await queue.database.close()

    try:
        return asyncio.run(runner())
    except QueueError as e:
        print_error(e.message)
        raise typer.Exit(1) from None
