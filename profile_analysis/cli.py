"""CLI entry point for the profile analysis service."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from profile_analysis.config import load_config

console = Console(force_terminal=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
    )


def _open_cache():
    """Open the profile cache without requiring API keys."""
    from dotenv import load_dotenv

    from profile_analysis.cache.store import ProfileCache

    load_dotenv()
    return ProfileCache(
        os.getenv("PROFILE_CACHE_DB_PATH", ".profile_cache.db"),
        ttl_hours=int(os.getenv("PROFILE_CACHE_TTL_HOURS", "24")),
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Score social profiles for partnership fit."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


@main.command()
@click.option("--host", default=None, help="Bind address (default: WEB_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: WEB_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Run the HTTP API."""
    import uvicorn

    config = load_config()
    uvicorn.run(
        "profile_analysis.web.app:app",
        host=host or config.web_host,
        port=port or config.web_port,
        reload=reload,
    )


@main.command()
@click.argument("profiles", nargs=-1)
@click.option("--user", "user_id", required=True, help="User id to charge")
@click.option("--business", "business_id", required=True, help="Business profile id")
@click.option(
    "--file", "-f", "profiles_file",
    type=click.Path(exists=True, dir_okay=False),
    help="Text file with one profile identifier per line",
)
@click.option("--no-cache", is_flag=True, help="Always fetch fresh profile data")
def bulk(
    profiles: tuple[str, ...],
    user_id: str,
    business_id: str,
    profiles_file: str | None,
    no_cache: bool,
) -> None:
    """Run a bulk light analysis for PROFILES (handles or URLs)."""
    from profile_analysis.analysis.scorer import LightAnalysisScorer
    from profile_analysis.bulk.orchestrator import BulkAnalysisOrchestrator
    from profile_analysis.cache.store import ProfileCache
    from profile_analysis.db.supabase import SupabaseRepository
    from profile_analysis.errors import AnalysisError
    from profile_analysis.models import BulkAnalysisRequest
    from profile_analysis.scrape.instagram import InstagramScraper

    identifiers = list(profiles)
    if profiles_file:
        lines = Path(profiles_file).read_text(encoding="utf-8").splitlines()
        identifiers.extend(line.strip() for line in lines if line.strip())
    if not identifiers:
        raise click.UsageError("Provide at least one profile (argument or --file)")

    config = load_config()
    store = SupabaseRepository(
        config.supabase_url, config.supabase_service_role,
        timeout=config.db_timeout, ledger_max_retries=config.ledger_max_retries,
    )
    scraper = InstagramScraper(
        config.apify_api_token, actor_id=config.apify_actor_id, timeout=config.scraper_timeout,
    )
    cache = None if no_cache else ProfileCache(
        config.profile_cache_db_path, ttl_hours=config.profile_cache_ttl_hours,
    )
    orchestrator = BulkAnalysisOrchestrator(
        config, store, scraper, LightAnalysisScorer.from_config(config), cache=cache,
    )
    request = BulkAnalysisRequest(
        profiles=identifiers, analysis_type="light", business_id=business_id, user_id=user_id,
    )

    async def _run():
        try:
            return await orchestrator.run(request)
        finally:
            await store.close()
            await scraper.close()
            if cache:
                cache.close()

    console.print(f"\n[bold green]Bulk analysis — {len(identifiers)} profiles[/bold green]\n")
    try:
        result = asyncio.run(_run())
    except AnalysisError as e:
        console.print(f"[red]Request rejected: {e}[/red]")
        raise SystemExit(1)

    table = Table(title="Results")
    table.add_column("Profile")
    table.add_column("Score", justify="right")
    table.add_column("Summary")
    for r in sorted(result.results, key=lambda r: r.score, reverse=True):
        label = r.identifier + (" [dim](pre-screen)[/dim]" if r.pre_screened else "")
        table.add_row(label, str(r.score), r.summary)
    for e in result.errors:
        table.add_row(f"[red]{e.profile}[/red]", "—", f"[red]{e.reason.value}: {e.error}[/red]")
    console.print(table)

    console.print(
        f"\n  {result.successful}/{result.total_requested} successful, "
        f"{result.failed} failed — {result.credits_used} credits used, "
        f"{result.credits_remaining} remaining"
    )
    console.print(
        f"  [dim]Actual cost ${result.cost_summary.total_actual_cost:.4f} "
        f"(avg ${result.cost_summary.avg_cost_per_analysis:.2f}/analysis)[/dim]\n"
    )


@main.command("cache-stats")
def cache_stats() -> None:
    """Show profile cache statistics."""
    cache = _open_cache()
    stats = cache.stats()
    cache.close()
    if not stats:
        console.print("[yellow]Cache unavailable[/yellow]")
        return
    console.print(
        f"Profiles cached: [bold]{stats['count']}[/bold] "
        f"(TTL {stats['ttl_hours']}h, oldest {stats['oldest'] or '—'}, newest {stats['newest'] or '—'})"
    )


@main.command("clear-cache")
@click.option("--all", "clear_all", is_flag=True, help="Remove every entry, not just expired ones")
def clear_cache(clear_all: bool) -> None:
    """Purge expired (or all) cached profiles."""
    cache = _open_cache()
    if clear_all:
        cache.clear_all()
        console.print("[green]Profile cache cleared.[/green]")
    else:
        removed = cache.purge_expired()
        console.print(f"[green]Removed {removed} expired profile(s).[/green]")
    cache.close()


if __name__ == "__main__":
    main()
