"""Command line dashboard for Liteflow databases."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from liteflow import Liteflow, WorkflowFilter
from liteflow.models import StepFrequency, Workflow, WorkflowStats

app = typer.Typer(help="CLI tool for tracking workflow statistics")
console = Console()

STATUS_STYLES = {"completed": "green", "pending": "yellow", "failed": "red"}


@app.callback()
def main() -> None:
    """Liteflow CLI entry point."""
    pass


# ----------------------------------------------------------------------
# Formatting helpers
def format_duration(ms: float) -> str:
    if ms < 1000:
        return f"{round(ms)}ms"
    if ms < 60_000:
        return f"{round(ms / 1000)}s"
    if ms < 3_600_000:
        return f"{round(ms / 60_000)}m"
    return f"{round(ms / 3_600_000)}h"


def _diff(current: float, previous: Optional[float]) -> str:
    if previous is None:
        return "[grey50]-[/grey50]"
    delta = round(current - previous, 2)
    if delta == 0:
        return "[grey50]=[/grey50]"
    if delta > 0:
        return f"[green]+{delta}[/green]"
    return f"[red]{delta}[/red]"


def _parse_date(value: Optional[str], option: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"{value!r} is not an ISO 8601 date", param_hint=option)


def build_filter(
    status: Optional[str],
    key: Optional[str],
    value: Optional[str],
    name: Optional[str],
    start_date: Optional[str],
    end_date: Optional[str],
    step: Optional[str],
    page: int = 1,
    page_size: int = 10,
    order_by: str = "started_at",
    order: str = "desc",
) -> WorkflowFilter:
    start = _parse_date(start_date, "--start-date")
    end = _parse_date(end_date, "--end-date")
    try:
        return WorkflowFilter(
            status=status or None,
            identifier={"key": key, "value": value} if key and value else None,
            name=name,
            start_date=start,
            end_date=end,
            step=step,
            page=page,
            page_size=page_size,
            order_by=order_by,
            order=order,
        )
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors())
        raise typer.BadParameter(f"invalid value for {fields}")


def describe_filters(criteria: WorkflowFilter) -> List[str]:
    filters = []
    if criteria.status:
        filters.append(f"status={criteria.status}")
    if criteria.identifier:
        filters.append(f"identifier={criteria.identifier.key}:{criteria.identifier.value}")
    if criteria.name:
        filters.append(f"name~{criteria.name}")
    if criteria.start_date:
        filters.append(f"from={criteria.start_date}")
    if criteria.end_date:
        filters.append(f"to={criteria.end_date}")
    if criteria.step:
        filters.append(f"step={criteria.step}")
    return filters


def metrics_table(stats: WorkflowStats, previous: Optional[WorkflowStats] = None) -> Table:
    table = Table("Metric", "Value", "Change")
    rows = [
        ("Total Workflows", "cyan", stats.total, previous.total if previous else None),
        ("Completed", "green", stats.completed, previous.completed if previous else None),
        ("Pending", "yellow", stats.pending, previous.pending if previous else None),
        ("Failed", "red", stats.failed, previous.failed if previous else None),
        (
            "Avg Steps per Workflow",
            "blue",
            stats.avg_steps,
            previous.avg_steps if previous else None,
        ),
    ]
    for label, style, current, before in rows:
        table.add_row(label, f"[{style}]{current}[/{style}]", _diff(current, before))
    return table


def workflow_table(workflows: List[Workflow]) -> Table:
    table = Table("Name", "Status", "Started", "Duration")
    for wf in workflows:
        style = STATUS_STYLES.get(wf.status, "white")
        if wf.ended_at:
            duration = format_duration((wf.ended_at - wf.started_at).total_seconds() * 1000)
        else:
            duration = "[grey50]-[/grey50]"
        table.add_row(
            wf.name[:23],
            f"[{style}]{wf.status}[/{style}]",
            wf.started_at.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
            duration,
        )
    return table


def frequent_steps_table(steps: List[StepFrequency]) -> Table:
    table = Table("Step", "Count")
    for item in steps:
        table.add_row(item.step, f"[cyan]{item.count}[/cyan]")
    return table


# ----------------------------------------------------------------------
# Rendering
class Dashboard:
    """Renders one snapshot of a database, remembering the previous stats."""

    def __init__(self, db: Path, criteria: WorkflowFilter, verbose: bool, title: str) -> None:
        self.db = db
        self.criteria = criteria
        self.verbose = verbose
        self.title = title
        self.previous: Optional[WorkflowStats] = None
        self.previous_total = 0
        self.cycle = 0

    async def render(self, show_new: bool = False) -> None:
        self.cycle += 1
        async with Liteflow(str(self.db)) as tracker:
            stats = await tracker.get_workflow_stats()
            page = await tracker.get_workflows(self.criteria)
            frequent = await tracker.get_most_frequent_steps(5)

        console.print(f"\n[bold cyan]{self.title}[/bold cyan]\n")
        console.print(f"[grey50]Database: {self.db}[/grey50]")
        console.print(f"[grey50]Time: {datetime.now():%Y-%m-%d %H:%M:%S}[/grey50]\n")

        filters = describe_filters(self.criteria)
        if filters:
            console.print(f"[magenta]Filters: {' | '.join(filters)}[/magenta]\n")

        console.print(metrics_table(stats, self.previous))

        if show_new and self.previous_total and page.total > self.previous_total:
            console.print(
                f"[bold green]  +{page.total - self.previous_total} new workflow(s) detected![/bold green]"
            )

        if self.verbose or filters:
            console.print(
                f"\n[bold cyan]Workflows {f'({self.criteria.status})' if self.criteria.status else ''}[/bold cyan]"
            )
            console.print(
                f"[grey50]Showing {len(page.workflows)} of {page.total} workflows[/grey50]"
            )
            if page.workflows:
                console.print(workflow_table(page.workflows))

        if frequent:
            console.print("\n[bold cyan]Most Frequent Steps[/bold cyan]")
            console.print(frequent_steps_table(frequent))

        self.previous = stats
        self.previous_total = page.total


def _poll(dashboard: Dashboard, interval: float, iterations: int, show_new: bool) -> None:
    """Re-render every ``interval`` seconds; ``iterations`` of 0 means forever."""
    count = 0
    try:
        while True:
            console.clear()
            try:
                asyncio.run(dashboard.render(show_new=show_new))
            except Exception as e:
                console.print(f"[bold red]Error:[/bold red] {e}")
            count += 1
            if iterations and count >= iterations:
                break
            console.print(
                f"[grey50]Refreshing in {interval} seconds... (Press Ctrl+C to stop)[/grey50]"
            )
            time.sleep(interval)
    except KeyboardInterrupt:
        console.print("\nStopped.")


# ----------------------------------------------------------------------
# Commands
@app.command("stats")
def stats_command(
    db: Path = typer.Option(Path("./liteflow.db"), "--db", "-d", help="Path to database file"),
    status: Optional[str] = typer.Option(
        None, "--status", "-s", help="Filter by status (pending, completed, failed)"
    ),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Filter by identifier key"),
    value: Optional[str] = typer.Option(None, "--value", "-v", help="Filter by identifier value"),
    name: Optional[str] = typer.Option(
        None, "--name", "-n", help="Filter by workflow name (partial match)"
    ),
    start_date: Optional[str] = typer.Option(
        None, "--start-date", help="Filter workflows started after this date (ISO 8601)"
    ),
    end_date: Optional[str] = typer.Option(
        None, "--end-date", help="Filter workflows started before this date (ISO 8601)"
    ),
    step: Optional[str] = typer.Option(None, "--step", help="Filter workflows containing this step"),
    verbose: bool = typer.Option(False, "--verbose", help="Show the workflow list"),
    watch: bool = typer.Option(False, "--watch", "-w", help="Refresh continuously"),
    interval: float = typer.Option(2.0, "--interval", "-i", help="Refresh interval in seconds"),
    iterations: int = typer.Option(0, "--iterations", help="Stop watching after N refreshes"),
) -> None:
    """
    Display general workflow statistics.

    Shows total/completed/pending/failed counts, the average number of steps
    per workflow, the most frequent steps and, with --verbose or any filter,
    the matching workflows.

    Example:
        liteflow stats --db ./liteflow.db
        liteflow stats --status failed --watch --interval 5
    """
    criteria = build_filter(
        status, key, value, name, start_date, end_date, step, page_size=100 if verbose else 10
    )
    dashboard = Dashboard(db.resolve(), criteria, verbose, "Liteflow Statistics Dashboard")

    if watch:
        _poll(dashboard, interval, iterations, show_new=False)
        return

    try:
        asyncio.run(dashboard.render())
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command("list")
def list_command(
    db: Path = typer.Option(Path("./liteflow.db"), "--db", "-d", help="Path to database file"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Filter by identifier key"),
    value: Optional[str] = typer.Option(None, "--value", "-v", help="Filter by identifier value"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Filter by workflow name"),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="Started on/after (ISO 8601)"),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="Started before (ISO 8601)"),
    step: Optional[str] = typer.Option(None, "--step", help="Filter workflows containing this step"),
    page: int = typer.Option(1, "--page", "-p", min=1, help="Page number"),
    page_size: int = typer.Option(20, "--page-size", min=1, help="Number of items per page"),
    order_by: str = typer.Option("started_at", "--order-by", help="started_at or ended_at"),
    order: str = typer.Option("desc", "--order", help="asc or desc"),
) -> None:
    """
    List workflows with filtering and pagination.

    Example:
        liteflow list --status completed --page 2 --page-size 50
        liteflow list --key order_id --value 42
    """
    if order_by not in ("started_at", "ended_at"):
        raise typer.BadParameter("must be started_at or ended_at", param_hint="--order-by")
    if order not in ("asc", "desc"):
        raise typer.BadParameter("must be asc or desc", param_hint="--order")

    criteria = build_filter(
        status,
        key,
        value,
        name,
        start_date,
        end_date,
        step,
        page=page,
        page_size=page_size,
        order_by=order_by,
        order=order,
    )
    db_path = db.resolve()

    async def _list():
        async with Liteflow(str(db_path)) as tracker:
            return await tracker.get_workflows(criteria)

    try:
        result = asyncio.run(_list())
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    console.print("\n[bold cyan]Liteflow Workflow List[/bold cyan]\n")
    console.print(f"[grey50]Database: {db_path}[/grey50]\n")
    filters = describe_filters(criteria)
    if filters:
        console.print(f"[magenta]Filters: {' | '.join(filters)}[/magenta]\n")
    console.print(f"[grey50]Showing {len(result.workflows)} of {result.total} workflows[/grey50]")
    if result.workflows:
        console.print(workflow_table(result.workflows))
    console.print(
        f"[grey50]Page {result.page} of {result.total_pages} ({result.total} total workflows)[/grey50]"
    )


@app.command("watch")
def watch_command(
    db: Path = typer.Option(Path("./liteflow.db"), "--db", "-d", help="Path to database file"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Filter by identifier key"),
    value: Optional[str] = typer.Option(None, "--value", "-v", help="Filter by identifier value"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Filter by workflow name"),
    start_date: Optional[str] = typer.Option(None, "--start-date", help="Started on/after (ISO 8601)"),
    end_date: Optional[str] = typer.Option(None, "--end-date", help="Started before (ISO 8601)"),
    step: Optional[str] = typer.Option(None, "--step", help="Filter workflows containing this step"),
    interval: float = typer.Option(2.0, "--interval", "-i", help="Refresh interval in seconds"),
    iterations: int = typer.Option(0, "--iterations", help="Stop after N refreshes"),
) -> None:
    """
    Real-time monitoring of workflow changes.

    Refreshes the statistics and the ten most recent workflows, highlighting
    changes since the previous refresh. Press Ctrl+C to stop.
    """
    criteria = build_filter(status, key, value, name, start_date, end_date, step)
    dashboard = Dashboard(db.resolve(), criteria, True, "Liteflow Real-Time Monitor")
    _poll(dashboard, interval, iterations, show_new=True)


if __name__ == "__main__":
    app()
