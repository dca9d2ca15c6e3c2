"""Command-line interface for the job tracker."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from job_tracker.config import settings

app = typer.Typer(
    name="job-tracker",
    help="Job Tracker - job review, application lifecycle and scraping sessions",
    add_completion=False,
)
console = Console()


@app.command()
def serve(
    host: str = typer.Option(settings.host, help="Host to bind to"),
    port: int = typer.Option(settings.port, help="Port to bind to"),
    reload: bool = typer.Option(settings.reload, help="Enable auto-reload"),
) -> None:
    """Start the API server."""
    import uvicorn

    console.print(f"🚀 Starting Job Tracker on {host}:{port}")
    uvicorn.run(
        "job_tracker.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def config() -> None:
    """Show current configuration."""
    table = Table(title="Job Tracker Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Show non-sensitive settings
    table.add_row("Debug Mode", str(settings.debug))
    table.add_row("Log Level", settings.log_level)
    table.add_row("Database", settings.database_url.split("@")[-1])
    table.add_row("Scraper URL", settings.scraper_service_url)
    table.add_row("Scraper API Key", "configured" if settings.scraper_api_key else "not configured")
    table.add_row("Scraper Timeout", f"{settings.scraper_timeout_seconds}s")
    table.add_row("Platforms", ", ".join(settings.scraper_platforms))
    table.add_row(
        "Daily Session Limits",
        ", ".join(f"{name}={limit}" for name, limit in settings.scraping_daily_session_limits.items()),
    )
    table.add_row("Max Retries", str(settings.max_retries))

    console.print(table)


@app.command("init-db")
def init_db() -> None:
    """Create the database schema."""
    from job_tracker.db.session import Database

    database = Database()
    database.create_all()
    database.dispose()
    console.print("✅ Database schema created")


@app.command("expire-jobs")
def expire_jobs() -> None:
    """Mark active jobs past their expiry date as expired."""
    from job_tracker.services import TrackerServices

    services = TrackerServices.build()
    try:
        expired = services.jobs.expire_jobs()
    finally:
        services.database.dispose()
    console.print(f"⏰ {expired} jobs expired")


@app.command()
def stats(
    user: Optional[str] = typer.Option(None, "--user", help="Limit statistics to one user"),
) -> None:
    """Show application, job and scraping statistics."""
    from job_tracker.services import TrackerServices

    services = TrackerServices.build()
    try:
        summary = services.stats.application_summary(user)
        jobs = services.stats.job_counts(user)
        scraping = services.stats.scraping_stats(user)
    finally:
        services.database.dispose()

    table = Table(title=f"Applications{f' for {user}' if user else ''}")
    table.add_column("Status", style="cyan")
    table.add_column("Count", style="green", justify="right")
    for status, count in summary["counts"].items():
        if status != "total" and count:
            table.add_row(status, str(count))
    table.add_row("total", str(summary["total"]), style="bold")
    console.print(table)

    console.print(f"Success rate: {summary['success_rate']}%  Interview rate: {summary['interview_rate']}%")
    console.print(
        f"Jobs: {jobs['total']} total, {jobs['by_review_status']['pending']} pending review, "
        f"average match score {jobs['average_match_score']}"
    )
    console.print(
        f"Scraping ({scraping['days']} days): {scraping['total_sessions']} sessions, "
        f"{scraping['success_rate']}% completed, {scraping['total_jobs_saved']} jobs saved"
    )


@app.command()
def scrape(
    user_id: str = typer.Argument(..., help="User to scrape jobs for"),
    timeout: Optional[float] = typer.Option(None, help="Scraper call timeout in seconds"),
) -> None:
    """Run one scraping session to completion and print the result."""
    from job_tracker.core.models import Actor, ActorRole
    from job_tracker.services import TrackerServices

    async def run():
        services = TrackerServices.build()
        actor = Actor(id="cli", role=ActorRole.ADMIN)
        try:
            session_id = await services.orchestrator.trigger(user_id, actor, timeout_seconds=timeout)
            if session_id is None:
                return None
            return await services.orchestrator.wait_for_session(session_id)
        finally:
            await services.aclose()

    session = asyncio.run(run())
    if session is None:
        console.print(f"⚠️  Scraping skipped for {user_id} (see logs for the reason)")
        raise typer.Exit(code=1)

    table = Table(title=f"Scraping session {session.session_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Status", session.status.value)
    table.add_row("Jobs found", str(session.results.total_jobs_found))
    table.add_row("Jobs saved", str(session.results.jobs_saved))
    table.add_row("Duplicates skipped", str(session.results.duplicates_skipped))
    table.add_row("Errors", str(session.results.error_count))
    table.add_row("Duration", f"{session.timing.duration_ms or 0} ms")
    console.print(table)

    for error in session.error_details:
        console.print(f"❌ {error.get('error_type')}: {error.get('message')}")


@app.command()
def version() -> None:
    """Show version information."""
    from job_tracker import __version__
    console.print(f"Job Tracker v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
