"""Typer CLI application for the citation monitor.

Provides commands to manage tracked entries, run the monitoring batch,
inspect citation stats, and start the recurring scheduler.
"""

import json
import logging
import os
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()
app = typer.Typer(
    name="citewatch",
    help="AI Citation Monitor -- track whether answer engines cite your domain.",
    add_completion=False,
    no_args_is_help=True,
)

ConfigOption = typer.Option("config/settings.yaml", "--config", "-c", help="Path to settings.yaml.")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging level and format."""
    default = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging.DEBUG if verbose else getattr(logging, default, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_app(config: str):
    """Lazy-import, initialise and return the application."""
    from citewatch.app import CitationMonitorApp
    monitor = CitationMonitorApp(config_path=config)
    monitor.initialize()
    return monitor


# ------------------------------------------------------------------
# init-db
# ------------------------------------------------------------------
@app.command("init-db")
def init_db_command(
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Create the database tables."""
    _setup_logging(verbose)
    _get_app(config)
    console.print("[green]✔[/green] Database tables created / verified.")


# ------------------------------------------------------------------
# track / untrack / entries
# ------------------------------------------------------------------
@app.command()
def track(
    user_id: str = typer.Argument(..., help="Owner of the entry."),
    query: str = typer.Argument(..., help="Search query to monitor."),
    domain: str = typer.Argument(..., help="Domain expected to be cited."),
    frequency: str = typer.Option("daily", "--frequency", "-f", help="daily, weekly or monthly."),
    no_alert: bool = typer.Option(False, "--no-alert", help="Do not notify on status changes."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Start monitoring a query/domain pair."""
    _setup_logging(verbose)
    _get_app(config)
    from citewatch.monitoring.entries import add_entry
    try:
        entry = add_entry(user_id, query, domain, frequency, alert_on_change=not no_alert)
    except ValueError as exc:
        console.print("[red]✘[/red] " + str(exc))
        raise typer.Exit(code=1)
    console.print(
        "[green]✔[/green] Tracking entry #" + str(entry.id)
        + ": " + entry.query + " → " + entry.domain + " (" + entry.check_frequency + ")"
    )


@app.command()
def untrack(
    entry_id: int = typer.Argument(..., help="Monitoring entry id."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Deactivate a monitoring entry (history is kept)."""
    _setup_logging(verbose)
    _get_app(config)
    from citewatch.monitoring.entries import deactivate_entry
    if not deactivate_entry(entry_id):
        console.print("[red]✘[/red] Entry not found: " + str(entry_id))
        raise typer.Exit(code=1)
    console.print("[green]✔[/green] Entry #" + str(entry_id) + " deactivated.")


@app.command()
def entries(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only this user's entries."),
    include_inactive: bool = typer.Option(False, "--all", help="Include deactivated entries."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """List monitoring entries."""
    _setup_logging(verbose)
    _get_app(config)
    from citewatch.monitoring.entries import list_entries
    rows = list_entries(user_id=user, active_only=not include_inactive)

    table = Table(title="Monitoring Entries", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=5)
    table.add_column("User", min_width=10)
    table.add_column("Query", min_width=30)
    table.add_column("Domain", min_width=15)
    table.add_column("Frequency")
    table.add_column("Status")
    table.add_column("Last Checked")
    for entry in rows:
        last = entry.last_checked_at.strftime("%Y-%m-%d %H:%M") if entry.last_checked_at else "-"
        status_value = entry.last_citation_status.value
        if status_value == "cited":
            status_value = "[green]cited[/green]"
        elif status_value == "not_cited":
            status_value = "[red]not cited[/red]"
        table.add_row(
            str(entry.id), entry.user_id, entry.query[:50], entry.domain,
            entry.check_frequency, status_value, last,
        )
    console.print(table)
    console.print("\n[bold]" + str(len(rows)) + "[/bold] entries.")


# ------------------------------------------------------------------
# run
# ------------------------------------------------------------------
@app.command()
def run(
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Run one monitoring batch over every due entry."""
    _setup_logging(verbose)
    monitor = _get_app(config)
    console.print(Panel("[bold cyan]Citation Monitoring Run[/bold cyan]"))
    summary = monitor.run_monitoring()

    if not summary.get("success"):
        console.print("[red]✘[/red] " + str(summary.get("error", "unknown error")))
        raise typer.Exit(code=1)

    stats = summary["stats"]
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Active entries", str(stats["totalEntries"]))
    table.add_row("Checked", str(stats["checkedCount"]))
    table.add_row("Status changes", str(stats["statusChanges"]))
    console.print(table)
    console.print("[green]✔[/green] " + summary["message"])


# ------------------------------------------------------------------
# stats
# ------------------------------------------------------------------
@app.command()
def stats(
    user_id: str = typer.Argument(..., help="User to report on."),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show citation stats, trends and achievements for a user."""
    _setup_logging(verbose)
    monitor = _get_app(config)
    data = monitor.get_stats(user_id)

    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    console.print(Panel(
        "[bold cyan]Citation Stats: " + user_id + "[/bold cyan]\n"
        + "Citations: [bold]" + str(data["total_citations"]) + "[/bold]   "
        + "Weekly growth: [bold]" + format(data["weekly_growth"], ".1f") + "%[/bold]   "
        + "Level " + str(data["level"]) + " (" + str(data["points"]) + " pts)   "
        + "Streak: " + str(data["streak"]) + " days"
    ))

    engines_table = Table(title="By Engine", show_header=True, header_style="bold magenta")
    engines_table.add_column("Engine", style="cyan")
    engines_table.add_column("Citations", justify="right")
    for engine, count in data["engine_breakdown"].items():
        engines_table.add_row(engine, str(count))
    console.print(engines_table)

    top_table = Table(title="Top Queries", show_header=True, header_style="bold magenta")
    top_table.add_column("Query", min_width=30)
    top_table.add_column("Count", justify="right")
    top_table.add_column("Trend")
    arrows = {"up": "[green]↑[/green]", "down": "[red]↓[/red]", "stable": "→"}
    for item in data["top_queries"]:
        top_table.add_row(item["query"], str(item["count"]), arrows.get(item["trend"], item["trend"]))
    console.print(top_table)

    ach_table = Table(title="Achievements", show_header=True, header_style="bold magenta")
    ach_table.add_column("Achievement")
    ach_table.add_column("Progress", justify="right")
    ach_table.add_column("Unlocked")
    for ach in data["achievements"]:
        ach_table.add_row(
            ach["icon"] + " " + ach["title"],
            str(ach["progress"]) + "/" + str(ach["max_progress"]),
            "[green]✔[/green]" if ach["unlocked"] else "",
        )
    console.print(ach_table)


# ------------------------------------------------------------------
# schedule
# ------------------------------------------------------------------
@app.command()
def schedule(
    cron: Optional[str] = typer.Option(None, "--cron", help="Override the cron expression."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Start the recurring monitoring scheduler (foreground)."""
    _setup_logging(verbose)
    monitor = _get_app(config)
    from citewatch.scheduler import MONITORING_JOB_ID, MonitoringScheduler

    sched_cfg = monitor.section("scheduler")
    cron_expr = cron or sched_cfg.get("cron", "0 */6 * * *")
    scheduler = MonitoringScheduler(
        job_store_url=sched_cfg.get("job_store"),
        timezone=sched_cfg.get("timezone", "UTC"),
        blocking=True,
    )
    try:
        scheduler.add_job(
            MONITORING_JOB_ID,
            "citewatch.app:run_monitoring_job",
            cron=cron_expr,
            kwargs={"config_path": config},
        )
    except ValueError as exc:
        console.print("[red]✘[/red] " + str(exc))
        raise typer.Exit(code=1)
    console.print("[bold cyan]Monitoring scheduled [" + cron_expr + "]. Ctrl+C to stop.[/bold cyan]")
    scheduler.start()


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------
@app.command()
def status(
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show database, backend and configuration status."""
    _setup_logging(verbose)
    monitor = _get_app(config)
    console.print(Panel("[bold cyan]System Status[/bold cyan]"))

    table = Table(title="Component Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", min_width=15)
    table.add_column("Status", min_width=10)
    table.add_column("Details", max_width=50)
    for name, info in monitor.get_status().items():
        state = info.get("status")
        if state == "ok":
            display = "[green]✔ OK[/green]"
        elif state == "warning":
            display = "[yellow]⚠ Warning[/yellow]"
        else:
            display = "[red]✘ Error[/red]"
        table.add_row(name.title(), display, str(info.get("details", ""))[:50])
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
