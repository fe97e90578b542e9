"""Typer CLI entry point for outreach-research."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Any

import structlog
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from outreach_research import __version__
from outreach_research.aggregator import build_aggregator
from outreach_research.config import Settings, format_validation_error
from outreach_research.doctor import CheckStatus, run_doctor
from outreach_research.exceptions import ConfigurationError, StoreError
from outreach_research.export import EXPORT_FORMATS, export_result
from outreach_research.logging import configure_logging
from outreach_research.models import Depth, ResearchResult
from outreach_research.queries import COMPANY_SIZE_TERMS
from outreach_research.repository import ResearchRepository
from outreach_research.store import DocumentStore
from outreach_research.transcripts import TranscriptCache

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="outreach-research",
    help="Mine YouTube for industry marketing and outreach knowledge.",
    no_args_is_help=True,
)
cache_app = typer.Typer(help="Transcript cache and stored research administration.")
app.add_typer(cache_app, name="cache")

CONFIG_EXIT_CODE = 2

# Set by the global callback; applied when settings are loaded
_logging_overrides: dict[str, str] = {}

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config YAML file."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config_error(message: str) -> typer.Exit:
    err_console.print(Panel(message, title="Configuration Error", border_style="red"))
    return typer.Exit(code=CONFIG_EXIT_CODE)


def _load_settings(config_path: Path | None = None, **overrides: Any) -> Settings:
    """Load settings, configure logging, and exit 2 on invalid configuration."""
    if _logging_overrides:
        overrides["logging"] = dict(_logging_overrides)
    try:
        settings = Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        raise _config_error(format_validation_error(exc)) from exc

    configure_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
    )
    return settings


def _store(settings: Settings) -> DocumentStore:
    return DocumentStore(Path(settings.storage.directory))


def _print_result(result: ResearchResult) -> None:
    stats = result.transcription_stats
    origin = "cached" if result.from_cache else "fresh"
    console.print(
        Panel(
            f"[bold]{result.industry}[/bold] ({origin}, {result.timestamp:%Y-%m-%d %H:%M} UTC)\n"
            f"Videos: {len(result.video_sources)}  "
            f"Transcripts: {stats.successful}/{stats.attempted} "
            f"({stats.success_rate}%, {stats.cached} cached)",
            title="Research Result",
            border_style="blue",
        )
    )

    sections = [
        ("Insights", result.insights),
        ("Strategies", result.strategies),
        ("Pain Points", result.pain_points),
    ]
    for title, items in sections:
        if not items:
            continue
        table = Table(title=title, show_lines=True)
        table.add_column("Conf", style="cyan", justify="right", width=5)
        table.add_column("Item")
        table.add_column("Application", style="dim")
        for item in items[:10]:
            table.add_row(str(item.confidence), item.text, item.application)
        console.print(table)

    if result.ai_summary:
        console.print(Panel(result.ai_summary, title="Summary", border_style="green"))


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]outreach-research[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL."),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option("--log-format", help="Log renderer: 'console' or 'json'."),
    ] = None,
) -> None:
    """outreach-research global options."""
    _logging_overrides.clear()
    if log_level:
        _logging_overrides["level"] = log_level.upper()
    if log_format:
        _logging_overrides["format"] = log_format.lower()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _run_research(
    settings: Settings,
    industry: str,
    depth: Depth,
    use_cache: bool,
    company_size: str | None,
) -> ResearchResult:
    aggregator = build_aggregator(settings)
    try:
        return await aggregator.run(
            industry,
            depth=depth,
            use_cache=use_cache,
            company_size=company_size,
        )
    finally:
        await aggregator.aclose()


@app.command()
def research(
    industry: Annotated[str, typer.Argument(help="Industry to research, e.g. 'SaaS'.")],
    depth: Annotated[
        Depth,
        typer.Option("--depth", "-d", help="Videos per query: standard (10) or deep (15)."),
    ] = Depth.STANDARD,
    no_cache: Annotated[
        bool,
        typer.Option("--no-cache", help="Ignore research persisted in the last 24 hours."),
    ] = False,
    company_size: Annotated[
        str | None,
        typer.Option(
            "--company-size",
            help=f"Employee bracket: {', '.join(COMPANY_SIZE_TERMS)}.",
        ),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Run (or reuse) YouTube research for an industry."""
    if not industry.strip():
        raise typer.BadParameter("Industry must not be empty.")
    settings = _load_settings(config)

    try:
        with console.status(f"Researching [bold]{industry}[/bold]..."):
            result = asyncio.run(
                _run_research(settings, industry, depth, not no_cache, company_size)
            )
    except ConfigurationError as exc:
        raise _config_error(str(exc)) from exc

    _print_result(result)


@app.command(name="list")
def list_results(
    industry: Annotated[
        str | None,
        typer.Option("--industry", "-i", help="Filter by industry (substring)."),
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Max rows.")] = 10,
    config: ConfigOption = None,
) -> None:
    """List recent research results, newest first."""
    settings = _load_settings(config)
    results = ResearchRepository(_store(settings)).list_recent(industry, limit=limit)
    if not results:
        console.print("[yellow]No research results found.[/yellow]")
        return

    table = Table(title="Research Results", show_lines=True)
    table.add_column("Industry", style="cyan")
    table.add_column("Timestamp")
    table.add_column("Insights", justify="right")
    table.add_column("Strategies", justify="right")
    table.add_column("Pain Points", justify="right")
    table.add_column("Videos", justify="right")
    table.add_column("Success", justify="right")
    for result in results:
        table.add_row(
            result.industry,
            f"{result.timestamp:%Y-%m-%d %H:%M}",
            str(len(result.insights)),
            str(len(result.strategies)),
            str(len(result.pain_points)),
            str(len(result.video_sources)),
            f"{result.transcription_stats.success_rate}%",
        )
    console.print(table)


@app.command()
def knowledge(
    industry: Annotated[str, typer.Argument(help="Industry name.")],
    config: ConfigOption = None,
) -> None:
    """Show the rolling knowledge summary for an industry."""
    settings = _load_settings(config)
    record = ResearchRepository(_store(settings)).get_knowledge(industry)
    if record is None:
        err_console.print(f"[yellow]No knowledge recorded for {industry!r}.[/yellow]")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            f"Last updated: {record.last_updated:%Y-%m-%d %H:%M} UTC\n"
            f"Insights: {record.total_insights}  "
            f"Strategies: {record.total_strategies}  "
            f"Pain points: {record.total_pain_points}",
            title=f"Industry Knowledge: {record.industry}",
            border_style="blue",
        )
    )
    for title, items in (
        ("Top Insights", record.top_insights),
        ("Top Strategies", record.top_strategies),
        ("Top Pain Points", record.top_pain_points),
    ):
        if items:
            console.print(f"\n[bold]{title}[/bold]")
            for item in items:
                console.print(f"  [cyan]{item.confidence:>2}[/cyan]  {item.text}")
    if record.research_summary:
        console.print(Panel(record.research_summary, title="Summary", border_style="green"))


@app.command()
def export(
    industry: Annotated[str, typer.Argument(help="Industry whose latest result to export.")],
    fmt: Annotated[
        str,
        typer.Option("--format", "-f", help=f"One of: {', '.join(EXPORT_FORMATS)}."),
    ] = "json",
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory to write the export into."),
    ] = Path("."),
    config: ConfigOption = None,
) -> None:
    """Export the latest research result for an industry."""
    if fmt not in EXPORT_FORMATS:
        raise typer.BadParameter(f"Unsupported export format: {fmt!r}")
    settings = _load_settings(config)
    result = ResearchRepository(_store(settings)).latest(industry)
    if result is None:
        err_console.print(f"[yellow]No research found for {industry!r}.[/yellow]")
        raise typer.Exit(code=1)

    payload = export_result(result, fmt)
    output.mkdir(parents=True, exist_ok=True)
    path = output / payload.filename
    path.write_text(payload.data, encoding="utf-8")
    console.print(f"[green]Export saved:[/green] {path}")


@app.command()
def doctor(
    config: ConfigOption = None,
    no_api_probes: Annotated[
        bool,
        typer.Option(
            "--no-api-probes",
            help="Skip external API probe calls (offline mode).",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", help="Suppress table output, use exit code only."),
    ] = False,
) -> None:
    """Run self-diagnostics and health checks for this environment."""
    settings = _load_settings(config)
    report = run_doctor(
        settings=settings,
        config_path=config,
        check_api_probes=not no_api_probes,
    )

    if not quiet:
        table = Table(title="Outreach Research Doctor", show_lines=True)
        table.add_column("Check", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Message")

        status_style = {
            CheckStatus.OK: "[green]OK[/green]",
            CheckStatus.WARN: "[yellow]WARN[/yellow]",
            CheckStatus.FAIL: "[red]FAIL[/red]",
        }
        for check in report.checks:
            table.add_row(check.name, status_style[check.status], check.message)
        console.print(table)

        for check in report.checks:
            if check.details:
                details = ", ".join(f"{k}={v}" for k, v in check.details.items())
                console.print(f"[dim]{check.name}: {details}[/dim]")

    raise typer.Exit(code=report.exit_code)


# ---------------------------------------------------------------------------
# Cache administration
# ---------------------------------------------------------------------------


@cache_app.command("stats")
def cache_stats(config: ConfigOption = None) -> None:
    """Show transcript cache statistics."""
    settings = _load_settings(config)
    stats = TranscriptCache(_store(settings)).stats()

    table = Table(title="Transcript Cache", show_lines=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Cached transcripts", str(stats.total_cached))
    table.add_row("Total characters", str(stats.total_length))
    table.add_row("Average length", f"{stats.avg_length:.1f}")
    for method, count in sorted(stats.method_breakdown.items()):
        table.add_row(f"Method: {method}", str(count))
    console.print(table)


@cache_app.command("show")
def cache_show(
    video_id: Annotated[str, typer.Argument(help="YouTube video ID.")],
    config: ConfigOption = None,
) -> None:
    """Show one cached transcript."""
    settings = _load_settings(config)
    record = TranscriptCache(_store(settings)).lookup(video_id)
    if record is None:
        err_console.print(f"[yellow]No cached transcript for {video_id}.[/yellow]")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            f"Method: {record.method}  Length: {record.length}  "
            f"Cached: {record.cached_at:%Y-%m-%d %H:%M} UTC\n\n"
            f"{record.transcript[:1000]}",
            title=video_id,
            border_style="blue",
        )
    )


@cache_app.command("delete")
def cache_delete(
    video_id: Annotated[str, typer.Argument(help="YouTube video ID.")],
    config: ConfigOption = None,
) -> None:
    """Delete one cached transcript."""
    settings = _load_settings(config)
    try:
        deleted = TranscriptCache(_store(settings)).delete(video_id)
    except StoreError as exc:
        err_console.print(f"[red]Delete failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    if not deleted:
        err_console.print(f"[yellow]No cached transcript for {video_id}.[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[green]Deleted cached transcript:[/green] {video_id}")


@cache_app.command("clear-industry")
def cache_clear_industry(
    industry: Annotated[str, typer.Argument(help="Industry name (exact, any case).")],
    config: ConfigOption = None,
) -> None:
    """Delete every stored research result for an industry."""
    settings = _load_settings(config)
    try:
        removed = ResearchRepository(_store(settings)).delete_by_industry(industry)
    except StoreError as exc:
        err_console.print(f"[red]Delete failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Removed {removed} research result(s) for {industry}.[/green]")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
