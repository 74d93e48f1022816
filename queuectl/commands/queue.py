"""Queue Commands - Inspect and administer the job store"""

import asyncio
import importlib
import json

import typer
from rich.console import Console
from rich.panel import Panel

from solid_queue.jobs.models import JobStatus
from solid_queue.jobs.schemas import JobCreate, JobListFilters

from ..utils.durations import parse_duration
from ..utils.formatting import (
    create_jobs_table,
    create_stats_panel,
    display_job,
    print_error,
    print_info,
    print_success,
)
from ..utils.runner import build_queue, database_url_option, run_with_queue

console = Console()
app = typer.Typer(name="queue", help="Job queue administration commands")


@app.command("status")
def status(database_url: str | None = database_url_option()):
    """📊 Show job counts by status and queue"""
    stats = run_with_queue(database_url, lambda queue: queue.get_stats())
    console.print(create_stats_panel(stats.model_dump()))


@app.command("enqueue")
def enqueue_job(
    handler: str = typer.Argument(..., help="Handler name"),
    payload: str | None = typer.Option(None, "--payload", "-p", help="JSON payload"),
    queue_name: str | None = typer.Option(None, "--queue", "-q", help="Queue lane"),
    max_attempts: int | None = typer.Option(None, "--max-attempts", help="Attempt budget"),
    delay: str | None = typer.Option(None, "--delay", "-d", help="Run after, e.g. 30s, 5m"),
    database_url: str | None = database_url_option(),
):
    """➕ Enqueue a job"""
    try:
        data = json.loads(payload) if payload is not None else None
        wait = parse_duration(delay) if delay else None
    except ValueError as e:
        print_error(f"Invalid option: {e}")
        raise typer.Exit(1) from None

    job = JobCreate(
        handler=handler, queue=queue_name, payload=data, max_attempts=max_attempts
    )

    async def enqueue(queue) -> int:
        if wait is not None:
            return await queue.enqueue_in(job, wait)
        return await queue.enqueue(job)

    job_id = run_with_queue(database_url, enqueue)
    print_success(f"Enqueued job {job_id} on queue '{job.queue}'")


@app.command("list")
def list_jobs(
    status: list[JobStatus] | None = typer.Option(
        None, "--status", "-s", help="Filter by status (repeatable)"
    ),
    queue_name: str | None = typer.Option(None, "--queue", "-q", help="Filter by queue"),
    handler: str | None = typer.Option(None, "--handler", help="Filter by handler"),
    limit: int = typer.Option(20, "--limit", "-l", min=1, max=1000, help="Number of jobs to show"),
    offset: int = typer.Option(0, "--offset", "-o", min=0, help="Skip first N jobs"),
    database_url: str | None = database_url_option(),
):
    """📋 List jobs, newest first"""
    filters = JobListFilters(
        status=status or None,
        queue=queue_name,
        handler=handler,
        limit=limit,
        offset=offset,
    )
    result = run_with_queue(database_url, lambda queue: queue.list_jobs(filters))

    if not result.jobs:
        console.print(Panel(
            "📭 [yellow]No jobs found![/yellow]\n\n"
            f"Filters applied:\n"
            f"• Status: {', '.join(s.value for s in status) if status else 'any'}\n"
            f"• Queue: {queue_name or 'any'}\n"
            f"• Handler: {handler or 'any'}",
            title="Empty Results",
            border_style="yellow",
        ))
        return

    jobs = [job.model_dump(mode="json") for job in result.jobs]
    console.print(create_jobs_table(jobs))
    console.print(
        f"\n📊 Showing [cyan]{len(jobs)}[/cyan] of [yellow]{result.total}[/yellow] jobs"
    )
    if offset + limit < result.total:
        console.print(f"💡 Use [cyan]--offset {offset + limit}[/cyan] to see more")


@app.command("show")
def show_job(
    job_id: int = typer.Argument(..., help="Job ID to show"),
    database_url: str | None = database_url_option(),
):
    """🔍 Show a single job"""
    job = run_with_queue(database_url, lambda queue: queue.get_job(job_id))
    display_job(job.model_dump(mode="json"))


@app.command("retry")
def retry_job(
    job_id: int = typer.Argument(..., help="Job ID to retry"),
    database_url: str | None = database_url_option(),
):
    """🔁 Reset a job to pending with a fresh attempt budget"""
    run_with_queue(database_url, lambda queue: queue.retry(job_id))
    print_success(f"Job {job_id} reset to pending")


@app.command("cancel")
def cancel_job(
    job_id: int = typer.Argument(..., help="Job ID to cancel"),
    database_url: str | None = database_url_option(),
):
    """🛑 Cancel a pending job"""
    run_with_queue(database_url, lambda queue: queue.cancel(job_id))
    print_success(f"Job {job_id} canceled")


@app.command("purge")
def purge_jobs(
    older_than: str = typer.Option(
        "24h", "--older-than", help="Age threshold, e.g. 30m, 24h, 7d"
    ),
    database_url: str | None = database_url_option(),
):
    """🧹 Delete completed jobs older than a threshold"""
    try:
        threshold = parse_duration(older_than)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1) from None

    deleted = run_with_queue(database_url, lambda queue: queue.purge(threshold))
    print_success(f"Purged {deleted} completed job(s) older than {older_than}")


@app.command("work")
def work(
    workers: int | None = typer.Option(
        None, "--workers", "-w", help="Number of concurrent workers"
    ),
    handlers: list[str] | None = typer.Option(
        None,
        "--handlers",
        "-H",
        help="Module exposing register_handlers(queue) (repeatable)",
    ),
    database_url: str | None = database_url_option(),
):
    """⚙️ Run workers until interrupted"""
    queue = build_queue(database_url, workers=workers)

    for module_path in handlers or []:
        try:
            module = importlib.import_module(module_path)
            register = module.register_handlers
        except (ImportError, AttributeError) as e:
            print_error(f"Cannot load handlers from {module_path}: {e}")
            raise typer.Exit(1) from None
        register(queue)

    print_info(
        f"Starting {queue.workers} worker(s) with handlers: "
        f"{', '.join(queue.registry.list()) or 'none'}"
    )

    async def runner() -> None:
        await queue.migrate()
        await queue.run_forever()

    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        pass
    print_success("Workers stopped")
