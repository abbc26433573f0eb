"""
Multi-feed aggregation.

All feeds are parsed concurrently and every outcome is collected; a
failing feed contributes nothing and never cancels its siblings. Items are
merged in request order, de-duplicated by id, optionally stripped of
short-form video, then stable-sorted newest first with undated items last.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from .config import AggregateConfig
from .html_utils import has_shorts_marker, is_youtube_short
from .logging_utils import get_logger, log_event
from .parser import FeedParser
from .types import Article, ParsedFeed, ParseOptions


def is_short_form_video(article: Article) -> bool:
    return is_youtube_short(article.link) or has_shorts_marker(article.title, article.content_snippet)


def merge_feeds(feeds: Iterable[ParsedFeed]) -> list[Article]:
    """Flatten feeds in order, keeping the first article for each id."""
    merged: list[Article] = []
    seen: set[str] = set()
    for feed in feeds:
        for article in feed.items:
            if article.id in seen:
                continue
            seen.add(article.id)
            merged.append(article)
    return merged


def sort_by_date(articles: Iterable[Article]) -> list[Article]:
    """Newest first; missing or unparseable dates count as 0. Stable."""
    return sorted(articles, key=lambda article: article.timestamp, reverse=True)


class FeedAggregator:
    def __init__(
        self,
        parser: FeedParser,
        cfg: AggregateConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self.parser = parser
        self.cfg = cfg or AggregateConfig()
        self.logger = logger or get_logger("aggregator")

    async def aggregate(self, urls: Sequence[str], exclude_shorts: bool | None = None) -> list[Article]:
        """Merge the items of several feeds into one date-sorted list.

        Raises:
            ValueError: ``urls`` is not a list of strings
        """
        if isinstance(urls, str) or not all(isinstance(url, str) for url in urls):
            raise ValueError("urls must be a list of feed URLs")
        if not urls:
            return []

        feeds = await self.fetch_all(urls)
        merged = merge_feeds(feeds)
        if self.cfg.exclude_shorts if exclude_shorts is None else exclude_shorts:
            merged = [article for article in merged if not is_short_form_video(article)]
        result = sort_by_date(merged)
        log_event(
            self.logger,
            "Aggregation complete",
            event="aggregate_complete",
            feeds=len(urls),
            succeeded=len(feeds),
            count=len(result),
        )
        return result

    async def fetch_all(self, urls: Sequence[str]) -> list[ParsedFeed]:
        """Parse every feed concurrently; failed feeds are dropped."""
        options = ParseOptions(fast=True, max_items=self.cfg.max_items, timeout_ms=self.cfg.timeout_ms)
        outcomes = await asyncio.gather(
            *(self.parser.parse_feed(url, options) for url in urls),
            return_exceptions=True,
        )
        feeds: list[ParsedFeed] = []
        for url, outcome in zip(urls, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                log_event(
                    self.logger,
                    "Feed skipped in aggregation",
                    level=logging.WARNING,
                    event="aggregate_feed_failed",
                    url=url,
                    error=str(outcome) or type(outcome).__name__,
                )
                continue
            feeds.append(outcome)
        return feeds
