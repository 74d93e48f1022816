"""Solid Queue CLI - Main Entry Point"""

from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from .commands import queue
from .utils.formatting import print_success
from .utils.runner import database_url_option, run_with_queue

console = Console()

# Create main Typer app
app = typer.Typer(
    name="queuectl",
    help="📬 Solid Queue - database-backed background jobs",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(queue.app, name="queue")


@app.command()
def migrate(database_url: str | None = database_url_option()):
    """🗄️ Create the jobs table and its indices"""
    run_with_queue(database_url, lambda q: q.migrate())
    print_success("Job store schema is up to date")


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(Panel(
        f"📬 [bold cyan]Solid Queue CLI[/bold cyan]\n\n"
        f"• Version: [green]{__version__}[/green]\n"
        f"• Type: [yellow]Command Line Interface[/yellow]",
        title="Version Info",
        border_style="cyan"
    ))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", help="Show version and exit"
    ),
):
    """
    📬 Solid Queue CLI

    Inspect, retry, cancel and purge jobs in the job store, or run workers.
    """
    if version:
        from . import __version__
        console.print(f"Solid Queue CLI v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


if __name__ == "__main__":
    app()
