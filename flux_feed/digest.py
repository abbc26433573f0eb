"""
"Today" digest: a bounded, time-windowed selection across many feeds.

Pipeline:
1. Scan feeds in small concurrent batches (YouTube feeds first) until the
   wall-clock budget, the feed cap or the item scan cap is reached
2. Drop short-form video, synthesize YouTube thumbnails
3. Merge duplicates across feeds (same link, else same title)
4. Select up to max_items: round-robin per feed inside the window, then a
   wider 72h round-robin, then the newest remaining items overall
5. Interleave two articles per video, with a cap on videos
6. Backfill missing images while budget remains (page metadata, then
   hero-image scrape, then the site favicon)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
import logging
import time
from typing import Any, Callable, Sequence

import httpx
from rapidfuzz import fuzz

from .config import DigestConfig
from .html_utils import has_shorts_marker, is_youtube_feed, is_youtube_short, is_youtube_video, youtube_thumbnail
from .images import favicon_url, fetch_page_image
from .logging_utils import get_logger, log_event
from .og import fetch_page_metadata
from .parser import FeedParser
from .types import DigestItem, ParsedFeed, ParseOptions


@dataclass
class DigestOptions:
    """Per-request digest settings.

    Attributes:
        fast: Use the fast budget and feed cap, and backfill fewer images
        images: Backfill images even in fast mode
        start_ms: Window start (epoch ms); defaults to 24h ago
        end_ms: Window end (epoch ms); only used together with start_ms
    """

    fast: bool = False
    images: bool = False
    start_ms: int | None = None
    end_ms: int | None = None


@dataclass
class FeedGroup:
    feed_url: str
    items: list[DigestItem] = field(default_factory=list)


@dataclass
class DigestResult:
    items: list[DigestItem]
    feeds_scanned: int = 0
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "stats": {
                "items": len(self.items),
                "feedsScanned": self.feeds_scanned,
                "timeMs": self.elapsed_ms,
                "completedImages": sum(1 for item in self.items if item.image),
            },
        }


class TimeWindow:
    """Inclusive [start, end] window, or open-ended from start."""

    def __init__(self, start: float, end: float | None = None):
        self.start = start
        self.end = end

    def contains(self, item: DigestItem) -> bool:
        ts = item.timestamp
        if ts is None:
            return False
        if self.end is not None:
            return self.start <= ts <= self.end
        return ts >= self.start


def dedup_key(item: DigestItem) -> str:
    return (item.link or "").strip() or item.title.strip().lower()


def merge_pair(prev: DigestItem, cur: DigestItem, snippet_max: int) -> DigestItem:
    """Combine two copies of one story, keeping the richer fields."""
    a = prev.content_snippet.strip()
    b = cur.content_snippet.strip()
    snippet = b if b and (not a or len(b) > len(a)) else a
    return replace(
        prev,
        title=prev.title or cur.title,
        link=prev.link or cur.link,
        pub_date=prev.pub_date or cur.pub_date,
        content_snippet=snippet[:snippet_max],
        image=prev.image or cur.image,
    )


def dedup_items(items: Sequence[DigestItem], snippet_max: int = 420, title_threshold: int = 100) -> list[DigestItem]:
    """Merge duplicates by link (else lowercased title), preserving first-seen order.

    With ``title_threshold`` below 100, items whose titles are at least that
    similar (rapidfuzz ratio) to an already kept title are merged too.
    """
    merged: dict[str, DigestItem] = {}
    for item in items:
        key = dedup_key(item)
        if not key:
            continue
        if key not in merged and title_threshold < 100:
            key = _similar_key(item, merged, title_threshold) or key
        prev = merged.get(key)
        merged[key] = item if prev is None else merge_pair(prev, item, snippet_max)
    return list(merged.values())


def _similar_key(item: DigestItem, merged: dict[str, DigestItem], threshold: int) -> str | None:
    title = item.title.strip().lower()
    if not title:
        return None
    for key, kept in merged.items():
        if fuzz.ratio(title, kept.title.strip().lower()) >= threshold:
            return key
    return None


def sort_newest(items: Sequence[DigestItem]) -> list[DigestItem]:
    return sorted(items, key=lambda item: item.timestamp or 0.0, reverse=True)


class Selection:
    """Ordered selection with a cap and link/title uniqueness."""

    def __init__(self, limit: int):
        self.limit = limit
        self.items: list[DigestItem] = []
        self._seen: set[str] = set()

    @property
    def full(self) -> bool:
        return len(self.items) >= self.limit

    def push(self, item: DigestItem) -> bool:
        key = (item.link or item.title or "").strip().lower()
        if not key or key in self._seen or self.full:
            return False
        self._seen.add(key)
        self.items.append(item)
        return True

    def round_robin(self, groups: Sequence[FeedGroup], first_pass: int) -> None:
        """Take up to ``first_pass`` items per feed per round, then one per round."""
        positions = [0] * len(groups)

        def take(index: int) -> bool:
            group = groups[index]
            while positions[index] < len(group.items):
                item = group.items[positions[index]]
                positions[index] += 1
                if self.push(item):
                    return True
            return False

        for _ in range(first_pass):
            for index in range(len(groups)):
                if self.full:
                    return
                take(index)
        progressed = True
        while progressed and not self.full:
            progressed = False
            for index in range(len(groups)):
                if self.full:
                    return
                if take(index):
                    progressed = True


def interleave_videos(items: Sequence[DigestItem], limit: int, max_videos: int) -> list[DigestItem]:
    """Two articles, then one video, until the limit; at most ``max_videos`` videos."""
    videos = [item for item in items if is_youtube_video(item.link)]
    articles = [item for item in items if not is_youtube_video(item.link)]
    out: list[DigestItem] = []
    ia = iv = 0
    while len(out) < limit and (ia < len(articles) or iv < len(videos)):
        before = len(out)
        for _ in range(2):
            if len(out) < limit and ia < len(articles):
                out.append(articles[ia])
                ia += 1
        if len(out) < limit and iv < len(videos) and iv < max_videos:
            out.append(videos[iv])
            iv += 1
        if len(out) == before:
            break
    return out[:limit]


class DigestBuilder:
    def __init__(
        self,
        client: httpx.AsyncClient,
        parser: FeedParser,
        cfg: DigestConfig | None = None,
        clock: Callable[[], float] | None = None,
        timer: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.client = client
        self.parser = parser
        self.cfg = cfg or DigestConfig()
        self._clock = clock or time.time
        self._timer = timer or time.monotonic
        self.logger = logger or get_logger("digest")

    async def build(self, feeds: Sequence[str], options: DigestOptions | None = None) -> DigestResult:
        options = options or DigestOptions()
        started = self._timer()
        budget = (self.cfg.fast_budget_ms if options.fast else self.cfg.full_budget_ms) / 1000.0

        def spent() -> float:
            return self._timer() - started

        if not feeds:
            return DigestResult(items=[])

        now = self._clock()
        if options.start_ms is not None:
            end = options.end_ms / 1000.0 if options.end_ms is not None else None
            window = TimeWindow(options.start_ms / 1000.0, end)
        else:
            window = TimeWindow(now - self.cfg.window_hours * 3600)
        recent = TimeWindow(now - self.cfg.fallback_hours * 3600)

        groups, scanned = await self._scan(feeds, options, budget, spent)
        all_items = [item for group in groups for item in group.items]
        base = dedup_items(all_items, self.cfg.snippet_max_chars, self.cfg.title_similarity_threshold)

        selection = Selection(self.cfg.max_items)
        selection.round_robin(
            [FeedGroup(g.feed_url, [i for i in g.items if window.contains(i)]) for g in groups], 2
        )
        if not selection.full:
            selection.round_robin(
                [FeedGroup(g.feed_url, [i for i in g.items if recent.contains(i)]) for g in groups], 1
            )
        if not selection.full:
            for item in sort_newest([i for i in base if i.timestamp is not None]):
                if selection.full:
                    break
                selection.push(item)

        chosen = interleave_videos(selection.items, self.cfg.max_items, self.cfg.max_youtube)
        chosen = [replace(item) for item in chosen]
        await self._backfill_images(chosen, options, budget, spent)

        result = DigestResult(items=chosen, feeds_scanned=scanned, elapsed_ms=int(spent() * 1000))
        log_event(
            self.logger,
            "Digest built",
            event="digest_complete",
            feeds=scanned,
            count=len(chosen),
            elapsed_ms=result.elapsed_ms,
        )
        return result

    async def _scan(
        self,
        feeds: Sequence[str],
        options: DigestOptions,
        budget: float,
        spent: Callable[[], float],
    ) -> tuple[list[FeedGroup], int]:
        ordered = sorted(feeds, key=lambda url: 0 if is_youtube_feed(url) else 1)
        max_feeds = min(self.cfg.fast_max_feeds if options.fast else self.cfg.full_max_feeds, len(ordered))
        parse_options = ParseOptions(
            fast=True, max_items=self.cfg.feed_max_items, timeout_ms=self.cfg.feed_timeout_ms
        )
        groups: list[FeedGroup] = []
        total = 0
        scanned = 0
        for offset in range(0, max_feeds, self.cfg.chunk_size):
            if spent() > budget:
                log_event(
                    self.logger,
                    "Digest budget exhausted",
                    level=logging.WARNING,
                    event="digest_budget_exhausted",
                    scanned=scanned,
                )
                break
            batch = ordered[offset : min(offset + self.cfg.chunk_size, max_feeds)]
            outcomes = await asyncio.gather(
                *(self.parser.parse_feed(url, parse_options) for url in batch),
                return_exceptions=True,
            )
            scanned += len(batch)
            for url, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    if isinstance(outcome, asyncio.CancelledError):
                        raise outcome
                    log_event(
                        self.logger,
                        "Digest feed skipped",
                        level=logging.DEBUG,
                        event="digest_feed_failed",
                        url=url,
                        error=str(outcome),
                    )
                    continue
                group = self._to_group(url, outcome)
                total += len(group.items)
                groups.append(group)
            if total >= self.cfg.scan_cap:
                break
        return groups, scanned

    def _to_group(self, feed_url: str, feed: ParsedFeed) -> FeedGroup:
        items: list[DigestItem] = []
        for article in feed.items:
            snippet = (article.content_snippet or "")[: self.cfg.snippet_max_chars]
            if is_youtube_short(article.link) or has_shorts_marker(article.title, snippet):
                continue
            items.append(
                DigestItem(
                    title=article.title,
                    link=article.link,
                    pub_date=article.pub_date,
                    content_snippet=snippet,
                    image=article.image or youtube_thumbnail(article.link),
                    feed_url=feed_url,
                )
            )
            if len(items) >= self.cfg.per_feed_cap:
                break
        return FeedGroup(feed_url, sort_newest(items))

    async def _backfill_images(
        self,
        items: list[DigestItem],
        options: DigestOptions,
        budget: float,
        spent: Callable[[], float],
    ) -> None:
        pending = [item for item in items if not item.image and item.link]
        if options.fast:
            pending = pending[: self.cfg.fast_backfill_limit]
        if pending and (options.images or not options.fast) and spent() < budget - 1.5:
            metas = await asyncio.gather(
                *(
                    fetch_page_metadata(self.client, item.link, self.cfg.backfill_timeout_ms / 1000.0, self.logger)
                    for item in pending
                ),
                return_exceptions=True,
            )
            for item, meta in zip(pending, metas):
                if not isinstance(meta, BaseException) and meta.image:
                    item.image = meta.image

            still = [item for item in items if not item.image and item.link]
            if still and spent() < budget - 0.8:
                heroes = await asyncio.gather(
                    *(
                        fetch_page_image(self.client, item.link, self.cfg.hero_timeout_ms / 1000.0)
                        for item in still
                    ),
                    return_exceptions=True,
                )
                for item, hero in zip(still, heroes):
                    if isinstance(hero, str) and hero:
                        item.image = hero

        for item in items:
            if not item.image:
                item.image = favicon_url(item.link)
