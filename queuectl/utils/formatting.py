"""Rich Formatting Utilities for CLI Output"""

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "blue",
    "running": "cyan",
    "completed": "green",
    "failed": "red",
    "retrying": "yellow",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for the jobs list"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Queue", justify="left", style="magenta")
    table.add_column("Handler", justify="left", style="white")
    table.add_column("Status", justify="center")
    table.add_column("Attempts", justify="center", style="yellow")
    table.add_column("Scheduled", justify="left", style="blue")
    table.add_column("Error", justify="left", style="red")

    for job in jobs:
        table.add_row(
            str(job.get("id", "")),
            job.get("queue", ""),
            job.get("handler", ""),
            _styled_status(job.get("status", "")),
            f"{job.get('attempts', 0)}/{job.get('max_attempts', 0)}",
            _short_timestamp(job.get("scheduled_at")),
            _truncate(job.get("error") or "—"),
        )

    return table


def create_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for queue statistics"""
    by_status = stats.get("jobs_by_status", {})
    status_lines = "\n".join(
        f"• {_styled_status(status)}: {count}" for status, count in by_status.items()
    )
    queue_lines = "\n".join(
        f"• [magenta]{queue}[/magenta]: {count}"
        for queue, count in sorted(stats.get("by_queue", {}).items())
    )

    content = f"""
📊 [bold blue]Jobs by Status[/bold blue]

{status_lines}

📬 [bold blue]Jobs by Queue[/bold blue]

{queue_lines or "• none"}

• Total Jobs: [cyan]{stats.get("total_jobs", 0)}[/cyan]
• Workers: [green]{stats.get("workers", 0)}[/green]
• In Flight: [yellow]{stats.get("processing_count", 0)}[/yellow]
"""

    return Panel(content, title="Queue Status", border_style="green")


def display_job(job: dict[str, Any]):
    """Display job metadata and payload"""
    status = job.get("status", "unknown")
    metadata_content = f"""
🆔 [bold]ID:[/bold] [cyan]{job.get("id")}[/cyan]
📬 [bold]Queue:[/bold] [magenta]{job.get("queue")}[/magenta]
⚙️ [bold]Handler:[/bold] {job.get("handler")}
✅ [bold]Status:[/bold] {_styled_status(status)}
🔁 [bold]Attempts:[/bold] [yellow]{job.get("attempts", 0)}/{job.get("max_attempts", 0)}[/yellow]
📅 [bold]Scheduled:[/bold] [blue]{job.get("scheduled_at") or "—"}[/blue]
▶️ [bold]Started:[/bold] [blue]{job.get("started_at") or "—"}[/blue]
🏁 [bold]Completed:[/bold] [blue]{job.get("completed_at") or "—"}[/blue]
    """

    console.print(
        Panel(metadata_content.strip(), title="Job", border_style="blue")
    )

    payload = job.get("payload")
    if payload is not None:
        console.print(
            Panel(json.dumps(payload, indent=2), title="Payload", border_style="cyan")
        )

    if job.get("error"):
        console.print(Panel(job["error"], title="Last Error", border_style="red"))


def _styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _short_timestamp(value: str | None) -> str:
    if not value:
        return "—"
    return value.replace("T", " ")[:19]


def _truncate(text: str, width: int = 40) -> str:
    return text[:width] + "..." if len(text) > width else text
