"""
Object graph wiring and synchronous entry points.

One process owns exactly one FeedCache, one ImageUsageTracker and one
shared HTTP client; every component receives them by reference:

    FeedCache ─┐
    client ────┼─> FeedParser ─┬─> FeedDiscoverer
    tracker ───┘               ├─> FeedAggregator
                               └─> DigestBuilder

The run_* helpers open a pipeline, run one operation with asyncio.run and
close the client, which is what the CLI needs.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

import httpx

from .aggregator import FeedAggregator
from .cache import FeedCache, ImageUsageTracker
from .config import AppConfig
from .digest import DigestBuilder, DigestOptions, DigestResult
from .discover import DiscoverResult, FeedDiscoverer
from .fetch.extractor import extract_article, extract_text
from .fetch.fetcher import build_client, fetch_page_html
from .images import ImageResolver, extract_best_image
from .logging_utils import get_logger, log_event
from .parser import FeedParser
from .types import Article, ExtractedPage, ParsedFeed, ParseOptions
from .unsplash import StockImageClient


@dataclass
class Pipeline:
    """Every component of one process, sharing a cache and an HTTP client."""

    cfg: AppConfig
    client: httpx.AsyncClient
    cache: FeedCache
    tracker: ImageUsageTracker
    parser: FeedParser
    discoverer: FeedDiscoverer
    aggregator: FeedAggregator
    digest: DigestBuilder

    async def article(self, url: str, sanitize: bool = True) -> ExtractedPage:
        """Readable body, title, date and best image of an article page.

        Raises:
            FetchError: The page could not be fetched or is not HTML
        """
        html, final_url = await fetch_page_html(self.client, url, self.cfg.fetch.article_timeout_seconds)
        page = extract_article(html, final_url, sanitize=sanitize, min_text_chars=self.cfg.extract.min_text_chars)
        page.image = extract_best_image(html, final_url)
        return page

    async def article_text(self, url: str) -> str | None:
        """Plain text of a page through the configured extractor chain."""
        html, _ = await fetch_page_html(self.client, url, self.cfg.fetch.article_timeout_seconds)
        return extract_text(html, self.cfg.extract.primary, self.cfg.extract.fallback)


def build_pipeline(
    cfg: AppConfig,
    client: httpx.AsyncClient | None = None,
    cache: FeedCache | None = None,
) -> Pipeline:
    """Construct the component graph.

    Args:
        cfg: Application configuration
        client: HTTP client to share (a new one is built from cfg.fetch if omitted)
        cache: Feed cache to share (a new one is built from cfg.cache if omitted)

    Returns:
        Pipeline with every component wired to the same cache and client
    """
    client = client or build_client(cfg.fetch)
    cache = cache or FeedCache(ttl_fresh=cfg.cache.ttl_fresh_seconds, ttl_stale=cfg.cache.ttl_stale_seconds)
    tracker = ImageUsageTracker()
    stock = StockImageClient(client, cfg.unsplash, tracker, logger=get_logger("unsplash"))
    parser = FeedParser(
        client,
        cache,
        cfg=cfg.parse,
        page_timeout=cfg.fetch.page_timeout_seconds,
        resolver=ImageResolver(logger=get_logger("images")),
        stock_images=stock,
        single_flight=cfg.cache.single_flight,
        logger=get_logger("parser"),
    )
    return Pipeline(
        cfg=cfg,
        client=client,
        cache=cache,
        tracker=tracker,
        parser=parser,
        discoverer=FeedDiscoverer(client, parser, cfg=cfg.discover, logger=get_logger("discover")),
        aggregator=FeedAggregator(parser, cfg=cfg.aggregate, logger=get_logger("aggregator")),
        digest=DigestBuilder(client, parser, cfg=cfg.digest, logger=get_logger("digest")),
    )


@asynccontextmanager
async def open_pipeline(
    cfg: AppConfig,
    client: httpx.AsyncClient | None = None,
    cache: FeedCache | None = None,
) -> AsyncIterator[Pipeline]:
    """Build a pipeline and close its HTTP client on exit.

    A caller-supplied client is left open; a caller-supplied cache is shared
    across pipelines.
    """
    owned = client is None
    pipeline = build_pipeline(cfg, client=client, cache=cache)
    try:
        yield pipeline
    finally:
        if owned:
            await pipeline.client.aclose()


def run_parse(cfg: AppConfig, url: str, options: ParseOptions | None = None) -> ParsedFeed:
    async def _run() -> ParsedFeed:
        async with open_pipeline(cfg) as pipeline:
            return await pipeline.parser.parse_feed(url, options)

    return asyncio.run(_run())


def run_discover(cfg: AppConfig, url: str, budget_ms: int | None = None) -> DiscoverResult:
    async def _run() -> DiscoverResult:
        async with open_pipeline(cfg) as pipeline:
            return await pipeline.discoverer.discover(url, budget_ms)

    return asyncio.run(_run())


def run_aggregate(cfg: AppConfig, urls: Sequence[str], exclude_shorts: bool | None = None) -> list[Article]:
    async def _run() -> list[Article]:
        async with open_pipeline(cfg) as pipeline:
            return await pipeline.aggregator.aggregate(list(urls), exclude_shorts)

    return asyncio.run(_run())


def run_digest(cfg: AppConfig, urls: Sequence[str], options: DigestOptions | None = None) -> DigestResult:
    async def _run() -> DigestResult:
        async with open_pipeline(cfg) as pipeline:
            return await pipeline.digest.build(list(urls), options)

    return asyncio.run(_run())


def run_article(cfg: AppConfig, url: str, sanitize: bool = True) -> ExtractedPage:
    async def _run() -> ExtractedPage:
        async with open_pipeline(cfg) as pipeline:
            return await pipeline.article(url, sanitize=sanitize)

    return asyncio.run(_run())


def run_article_text(cfg: AppConfig, url: str) -> str | None:
    async def _run() -> str | None:
        async with open_pipeline(cfg) as pipeline:
            return await pipeline.article_text(url)

    return asyncio.run(_run())
