import json
import sys
from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from rich.table import Table

from infra.config import get_storage_root
from infra.pipeline.storage import Library
from pipeline.jobs import JobService

console = Console()


def get_library(args=None) -> Library:
    root = getattr(args, 'storage_root', None) if args is not None else None
    return Library(storage_root=root or get_storage_root())


def get_service(args=None) -> JobService:
    return JobService(get_library(args))


def fail(message: str, code: int = 1):
    console.print(f"[red]❌ {message}[/red]")
    sys.exit(code)


def print_json(data: Any):
    print(json.dumps(data, indent=2, default=str))


def short_time(value: Optional[str]) -> str:
    """ISO timestamp trimmed to minutes for table display."""
    if not value:
        return "-"
    return value[:16].replace("T", " ")


def progress_cell(total: int, completed: int, failed: int) -> str:
    cell = f"{completed}/{total}"
    if failed:
        cell += f" [red]({failed} failed)[/red]"
    return cell


STATUS_STYLES = {
    "pending": "dim",
    "processing": "cyan",
    "paused": "yellow",
    "completed": "green",
    "saved": "green",
    "failed": "red",
    "cancelled": "dim",
    "expired": "magenta",
}


def status_cell(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def jobs_table(jobs: Iterable, title: str = "Jobs") -> Table:
    table = Table(title=title)
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Book")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Created")
    for job in jobs:
        table.add_row(
            job.id,
            job.type,
            job.book_id,
            status_cell(job.status),
            progress_cell(job.progress.total, job.progress.completed, job.progress.failed),
            short_time(job.created_at),
        )
    return table


def batches_table(batches: Iterable, title: str = "Batch jobs") -> Table:
    table = Table(title=title)
    table.add_column("ID", style="bold")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Provider state")
    table.add_column("Pages", justify="right")
    table.add_column("Saved", justify="right")
    table.add_column("Submitted")
    for batch in batches:
        table.add_row(
            batch.id,
            batch.type,
            status_cell(batch.status),
            batch.external_state or "-",
            str(len(batch.page_ids)),
            progress_cell(len(batch.submitted_page_ids), batch.completed_pages, batch.failed_pages)
            if batch.status == "saved" else "-",
            short_time(batch.submitted_at),
        )
    return table


def results_table(results: List[Dict], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Page")
    table.add_column("OK")
    table.add_column("Error")
    table.add_column("Duration", justify="right")
    for r in results:
        table.add_row(
            r["page_id"],
            "✓" if r["success"] else "[red]✗[/red]",
            r.get("error") or "",
            f"{r['duration']:.1f}s" if r.get("duration") is not None else "",
        )
    return table
