"""
Command-line interface for flux-feed.

Uses Typer; every command prints its result as JSON through a rich Console
and exits non-zero with the error message on failure. Supports loading .env
files for the stock-image API key.
"""

from __future__ import annotations

from pathlib import Path
import json
from typing import Any, List

from dotenv import load_dotenv
import typer
from rich.console import Console

from .config import AppConfig, get_unsplash_key, load_config
from .digest import DigestOptions
from .errors import FluxError
from .logging_utils import setup_logging
from .runner import run_aggregate, run_article, run_article_text, run_digest, run_discover, run_parse
from .types import ParseOptions

app = typer.Typer(add_completion=False)
console = Console()
err_console = Console(stderr=True)


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", "-c", exists=True, help="YAML config file."),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Directory for the log file (enables file logging)."
    ),
):
    """Parse, discover, merge and digest RSS/Atom feeds."""
    load_dotenv()
    cfg = load_config(str(config) if config else None)
    if log_level:
        cfg.logging.level = log_level
    if log_file is not None:
        cfg.logging.file = True
    setup_logging(cfg.logging, log_file)
    ctx.obj = cfg


def _emit(data: Any) -> None:
    console.print_json(json.dumps(data, ensure_ascii=False, default=str))


def _fail(exc: Exception) -> None:
    err_console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(code=1)


@app.command()
def parse(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Feed URL."),
    fast: bool = typer.Option(False, "--fast", help="Fast profile: fewer items, no page enrichment."),
    max_items: int | None = typer.Option(None, "--max-items", help="Maximum number of items."),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", help="Feed fetch timeout."),
    enrich_og: bool | None = typer.Option(
        None, "--enrich-og/--no-enrich-og", help="Fetch article pages for image and description."
    ),
):
    """Parse one feed into normalized articles."""
    cfg: AppConfig = ctx.obj
    options = ParseOptions(
        fast=fast,
        max_items=max_items,
        timeout_ms=timeout_ms,
        enrich_og=enrich_og,
        unsplash_key=get_unsplash_key(cfg.unsplash),
    )
    try:
        feed = run_parse(cfg, url, options)
    except FluxError as exc:
        _fail(exc)
    _emit(feed.to_dict())


@app.command()
def discover(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Page URL."),
    budget_ms: int | None = typer.Option(None, "--budget-ms", help="Total discovery time budget."),
):
    """Find a parseable feed for a web page."""
    try:
        result = run_discover(ctx.obj, url, budget_ms)
    except FluxError as exc:
        _fail(exc)
    _emit(result.to_dict())


@app.command()
def aggregate(
    ctx: typer.Context,
    urls: List[str] = typer.Argument(..., help="Feed URLs."),
    exclude_shorts: bool | None = typer.Option(
        None, "--exclude-shorts/--include-shorts", help="Drop or keep YouTube Shorts (default: config)."
    ),
):
    """Merge several feeds into one newest-first list."""
    try:
        items = run_aggregate(ctx.obj, urls, exclude_shorts)
    except ValueError as exc:
        _fail(exc)
    _emit({"items": [item.to_dict() for item in items]})


@app.command()
def today(
    ctx: typer.Context,
    urls: List[str] = typer.Argument(..., help="Feed URLs."),
    fast: bool = typer.Option(False, "--fast", help="Smaller budget and feed cap."),
    images: bool = typer.Option(False, "--images", help="Backfill images even in fast mode."),
    start_ms: int | None = typer.Option(None, "--start-ms", help="Window start, epoch milliseconds."),
    end_ms: int | None = typer.Option(None, "--end-ms", help="Window end, epoch milliseconds."),
):
    """Build the time-windowed digest across feeds."""
    options = DigestOptions(fast=fast, images=images, start_ms=start_ms, end_ms=end_ms)
    result = run_digest(ctx.obj, urls, options)
    _emit(result.to_dict())


@app.command()
def article(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Article URL."),
    html: bool = typer.Option(False, "--html", help="Include sanitized HTML."),
    text_only: bool = typer.Option(
        False, "--text", help="Plain text through the configured extractor chain."
    ),
):
    """Extract the readable content of an article page."""
    cfg: AppConfig = ctx.obj
    try:
        if text_only:
            _emit({"text": run_article_text(cfg, url)})
            return
        page = run_article(cfg, url, sanitize=html)
    except FluxError as exc:
        _fail(exc)
    _emit(page.to_dict())


if __name__ == "__main__":
    app()
