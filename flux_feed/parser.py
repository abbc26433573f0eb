"""
Feed fetching, parsing and per-item normalization.

FeedParser turns one feed URL into a ParsedFeed:
1. Serve a fresh cache entry (same url, profile and item cap) without network
2. Otherwise fetch and parse; on failure serve a stale entry if one is
   still inside the stale window, else raise FetchError/ParseError
3. Truncate entries to the item cap, preserving document order
4. Resolve an image and a snippet per item (failures degrade to absent)
5. Cache the normalized result
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import Any, Mapping

import feedparser
import httpx

from .cache import CacheKey, FeedCache, cache_key
from .config import ParseConfig
from .errors import FetchError, ParseError
from .fetch.fetcher import fetch_url
from .html_utils import collapse_whitespace, host_matches, host_of, strip_html
from .images import ImageContext, ImageResolver
from .logging_utils import get_logger, log_event
from .og import MetadataLoader, fetch_page_metadata, memoized_loader
from .types import Article, Enclosure, ParsedFeed, ParseOptions, parse_timestamp
from .unsplash import StockImageClient


UNTITLED = "Untitled"
FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"


@dataclass(frozen=True)
class ResolvedOptions:
    """ParseOptions with profile defaults filled in."""

    mode: str
    max_items: int
    timeout: float
    enrich_og: bool
    unsplash_key: str | None


class FeedParser:
    """Fetch, parse and normalize feeds, backed by a shared FeedCache.

    Args:
        client: Shared async HTTP client
        cache: Process-wide feed cache
        cfg: Parse profile configuration
        page_timeout: Timeout in seconds for article page metadata fetches
        resolver: Image resolver chain (default chain when omitted)
        stock_images: Stock-image client for the last image fallback
        single_flight: Share one in-flight fetch between identical concurrent calls
        logger: Logger for pipeline events
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: FeedCache,
        cfg: ParseConfig | None = None,
        page_timeout: float = 3.5,
        resolver: ImageResolver | None = None,
        stock_images: StockImageClient | None = None,
        single_flight: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.client = client
        self.cache = cache
        self.cfg = cfg or ParseConfig()
        self.page_timeout = page_timeout
        self.resolver = resolver or ImageResolver()
        self.stock_images = stock_images
        self.single_flight = single_flight
        self.logger = logger or get_logger("parser")
        self._inflight: dict[CacheKey, asyncio.Task[ParsedFeed]] = {}

    def resolve_options(self, options: ParseOptions | None) -> ResolvedOptions:
        options = options or ParseOptions()
        if options.fast:
            max_items, timeout_ms, enrich = (
                self.cfg.fast_max_items,
                self.cfg.fast_timeout_ms,
                self.cfg.fast_enrich_og,
            )
        else:
            max_items, timeout_ms, enrich = (
                self.cfg.full_max_items,
                self.cfg.full_timeout_ms,
                self.cfg.full_enrich_og,
            )
        if options.max_items is not None:
            max_items = max(0, options.max_items)
        if options.timeout_ms is not None:
            timeout_ms = options.timeout_ms
        if options.enrich_og is not None:
            enrich = options.enrich_og
        return ResolvedOptions(
            mode=options.mode,
            max_items=max_items,
            timeout=max(timeout_ms, 1) / 1000.0,
            enrich_og=enrich,
            unsplash_key=options.unsplash_key or None,
        )

    async def parse_feed(self, url: str, options: ParseOptions | None = None) -> ParsedFeed:
        """Parse one feed URL into normalized articles.

        Raises:
            FetchError: The feed could not be retrieved and no stale entry is usable
            ParseError: The body is not a feed and no stale entry is usable
        """
        opts = self.resolve_options(options)
        key = cache_key(url, opts.mode, opts.max_items)

        fresh = self.cache.get_fresh(key)
        if fresh is not None:
            log_event(self.logger, "Feed cache hit", event="feed_cache_hit", url=url, mode=opts.mode)
            return fresh

        if not self.single_flight:
            return await self._refresh(url, key, opts)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(url, key, opts))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(task)

    async def _refresh(self, url: str, key: CacheKey, opts: ResolvedOptions) -> ParsedFeed:
        started = time.monotonic()
        try:
            document = await self._fetch_document(url, opts.timeout)
        except (FetchError, ParseError) as exc:
            stale = self.cache.get_stale(key)
            if stale is not None:
                log_event(
                    self.logger,
                    "Serving stale feed",
                    level=logging.WARNING,
                    event="feed_stale_served",
                    url=url,
                    error=str(exc),
                )
                return stale
            log_event(
                self.logger,
                "Feed fetch failed",
                level=logging.WARNING,
                event="feed_fetch_failed",
                url=url,
                error=str(exc),
            )
            raise

        entries = list(document.entries or [])[: opts.max_items]
        items = await asyncio.gather(
            *(self._normalize_entry(entry, index, opts) for index, entry in enumerate(entries))
        )
        feed_meta = document.get("feed", {}) or {}
        result = ParsedFeed(
            title=_clean_title(feed_meta.get("title")) or None,
            link=feed_meta.get("link") or None,
            items=tuple(items),
        )
        evicted = self.cache.evict_expired()
        self.cache.put(key, result)
        log_event(
            self.logger,
            "Feed parsed",
            event="feed_parsed",
            url=url,
            mode=opts.mode,
            count=len(items),
            evicted=evicted,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        return result

    async def _fetch_document(self, url: str, timeout: float) -> Any:
        result = await fetch_url(self.client, url, timeout, headers={"Accept": FEED_ACCEPT})
        if not result.ok:
            raise FetchError(url, result.error or "empty response", result.status_code)
        parsed = feedparser.parse(
            result.content,
            response_headers={
                "content-location": result.final_url or url,
                "content-type": result.content_type or "application/xml",
            },
        )
        if not parsed.get("version") and not parsed.entries:
            reason = str(parsed.get("bozo_exception") or "not a recognizable feed")
            raise ParseError(url, reason)
        return parsed

    async def _normalize_entry(self, entry: Mapping[str, Any], index: int, opts: ResolvedOptions) -> Article:
        link = entry.get("link") or None
        content_html = entry_content_html(entry)
        title = _clean_title(entry.get("title")) or UNTITLED

        loader: MetadataLoader | None = None
        if opts.enrich_og and link:
            loader = memoized_loader(
                lambda: fetch_page_metadata(self.client, link, self.page_timeout, self.logger)
            )

        stock_search = None
        if opts.mode == "full" and opts.unsplash_key and self.stock_images is not None:
            key = opts.unsplash_key
            stock = self.stock_images

            async def stock_search(text: str) -> str | None:
                return await stock.image_for_title(text, key)

        enclosure = entry_enclosure(entry)
        image = await self.resolver.resolve(
            ImageContext(
                entry=entry,
                content_html=content_html,
                link=link,
                title=title,
                enclosure=enclosure,
                load_metadata=loader,
                stock_search=stock_search,
            )
        )

        snippet = base_snippet(entry, content_html, self.cfg)
        if loader is not None:
            try:
                snippet = await self._enrich_snippet(snippet, link, loader)
            except Exception as exc:  # noqa: BLE001
                log_event(
                    self.logger,
                    "Snippet enrichment failed",
                    level=logging.DEBUG,
                    event="snippet_enrich_failed",
                    url=link,
                    error=f"{type(exc).__name__}: {exc}",
                )

        return Article(
            id=str(entry.get("id") or f"{link or ''}#{index}"),
            title=title,
            link=link,
            pub_date=entry_pub_date(entry),
            content_snippet=snippet or None,
            image=image,
            enclosure=enclosure,
        )

    async def _enrich_snippet(self, snippet: str, link: str | None, loader: MetadataLoader) -> str:
        host = host_of(link)
        low_quality = any(host_matches(host, domain) for domain in self.cfg.low_quality_hosts)
        if len(snippet) >= self.cfg.short_snippet_chars and not low_quality:
            return snippet
        meta = await loader()
        limit = self.cfg.enriched_snippet_max_chars
        if meta.description and len(meta.description) > len(snippet):
            return meta.description[:limit].strip()
        if not snippet and meta.first_paragraph:
            return meta.first_paragraph[:limit].strip()
        return snippet


def entry_content_html(entry: Mapping[str, Any]) -> str:
    """Body HTML of an entry: the richest content block, else the summary."""
    contents = entry.get("content") or []
    best = ""
    for block in contents:
        value = block.get("value") if isinstance(block, Mapping) else None
        if isinstance(value, str) and len(value) > len(best):
            best = value
    if best:
        return best
    summary = entry.get("summary") or entry.get("description") or ""
    return summary if isinstance(summary, str) else ""


def base_snippet(entry: Mapping[str, Any], content_html: str, cfg: ParseConfig) -> str:
    """Feed-provided summary as plain text, else stripped content."""
    summary = entry.get("summary")
    if isinstance(summary, str):
        text = strip_html(summary)
        if text:
            return text[: cfg.enriched_snippet_max_chars].strip()
    return strip_html(content_html)[: cfg.snippet_max_chars].strip()


def entry_enclosure(entry: Mapping[str, Any]) -> Enclosure | None:
    for enc in entry.get("enclosures") or []:
        if not isinstance(enc, Mapping):
            continue
        url = enc.get("href") or enc.get("url")
        if url:
            return Enclosure(url=url, type=enc.get("type") or None)
    return None


def entry_pub_date(entry: Mapping[str, Any]) -> str | None:
    """Canonical publication date; None when missing or unparseable."""
    for parsed_key, raw_key in (("published_parsed", "published"), ("updated_parsed", "updated")):
        struct = entry.get(parsed_key)
        if struct:
            seconds = parse_timestamp(struct)
            if seconds is not None:
                return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(seconds))
        raw = entry.get(raw_key)
        if isinstance(raw, str) and parse_timestamp(raw) is not None:
            return raw
    return None


def _clean_title(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return collapse_whitespace(strip_html(value) if "<" in value else value)
