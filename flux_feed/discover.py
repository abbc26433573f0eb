"""
Feed discovery from an arbitrary page URL.

Candidates are gathered in priority order (the input URL, conventional
feed paths on its origin, <link rel="alternate"> feeds, feed-looking
anchors, then alternates of one same-origin news/blog sub-page) and tried
sequentially with a fast parse. The first candidate that yields at least
one item wins; nothing after it is fetched. The page scrapes are bounded by
the remaining budget, and every candidate attempt waits at least
min_attempt_ms even once the budget is spent.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import re
import time
from typing import Callable, Iterable, Iterator

from bs4 import BeautifulSoup
import httpx

from .config import DiscoverConfig
from .errors import FluxError, NotFoundError
from .fetch.fetcher import fetch_html
from .html_utils import origin_of, resolve_url
from .logging_utils import get_logger, log_event
from .parser import FeedParser
from .types import ParseOptions


FEED_TYPE_MARKERS = ("rss", "atom", "xml")
FEED_HREF_MARKERS = ("rss", "atom", "feed")
SUBPAGE_RE = re.compile(r"news|blog|press|updates|articles", re.IGNORECASE)


@dataclass(frozen=True)
class DiscoverResult:
    feed_url: str
    title: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {"feedUrl": self.feed_url, "title": self.title}


class CandidateList:
    """Insertion-ordered, de-duplicated candidate URLs."""

    def __init__(self, urls: Iterable[str] = ()):
        self._urls: list[str] = []
        self._seen: set[str] = set()
        self.extend(urls)

    def add(self, url: str | None) -> None:
        if url and url not in self._seen:
            self._seen.add(url)
            self._urls.append(url)

    def extend(self, urls: Iterable[str]) -> None:
        for url in urls:
            self.add(url)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._urls))

    def __len__(self) -> int:
        return len(self._urls)


def alternate_feed_links(soup: BeautifulSoup, base: str) -> list[str]:
    links = []
    for el in soup.select("link[rel~='alternate']"):
        mime = (el.get("type") or "").lower()
        href = (el.get("href") or "").strip()
        if href and any(marker in mime for marker in FEED_TYPE_MARKERS):
            links.append(resolve_url(href, base))
    return links


def feed_anchor_links(soup: BeautifulSoup, base: str) -> list[str]:
    links = []
    for el in soup.select("a[href]"):
        href = el.get("href").strip()
        if any(marker in href.lower() for marker in FEED_HREF_MARKERS):
            links.append(resolve_url(href, base))
    return links


def pick_subpage(soup: BeautifulSoup, base: str) -> str | None:
    """First same-origin anchor whose URL looks like a news/blog section."""
    origin = origin_of(base)
    if not origin:
        return None
    for el in soup.select("a[href]"):
        url = resolve_url(el.get("href"), base)
        if url and url.startswith(origin) and SUBPAGE_RE.search(url):
            return url
    return None


class FeedDiscoverer:
    def __init__(
        self,
        client: httpx.AsyncClient,
        parser: FeedParser,
        cfg: DiscoverConfig | None = None,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.client = client
        self.parser = parser
        self.cfg = cfg or DiscoverConfig()
        self._clock = clock or time.monotonic
        self.logger = logger or get_logger("discover")

    async def discover(self, page_url: str, budget_ms: int | None = None) -> DiscoverResult:
        """Find a parseable feed for a page.

        Raises:
            NotFoundError: No candidate produced a feed with items
        """
        budget = (budget_ms if budget_ms is not None else self.cfg.budget_ms) / 1000.0
        started = self._clock()

        def remaining() -> float:
            return budget - (self._clock() - started)

        candidates = self.build_initial_candidates(page_url)
        if remaining() > 0:
            candidates.extend(await self._scrape_candidates(page_url, remaining))

        min_wait = self.cfg.min_attempt_ms / 1000.0
        max_fetch = self.cfg.max_attempt_ms / 1000.0
        for url in candidates:
            # Every candidate gets at least min_attempt_ms, even past the budget
            wait = max(min_wait, remaining())
            options = ParseOptions(
                fast=True,
                max_items=self.cfg.max_items,
                timeout_ms=int(min(wait, max_fetch) * 1000),
            )
            try:
                parsed = await asyncio.wait_for(self.parser.parse_feed(url, options), timeout=wait)
            except (FluxError, asyncio.TimeoutError) as exc:
                log_event(
                    self.logger,
                    "Discovery candidate failed",
                    level=logging.DEBUG,
                    event="discover_candidate_failed",
                    url=url,
                    error=str(exc) or type(exc).__name__,
                )
                continue
            if parsed.items:
                log_event(self.logger, "Feed discovered", event="discover_found", url=page_url, feed_url=url)
                return DiscoverResult(feed_url=url, title=parsed.title)

        raise NotFoundError(page_url)

    def build_initial_candidates(self, page_url: str) -> CandidateList:
        candidates = CandidateList([page_url])
        origin = origin_of(page_url)
        if origin:
            candidates.extend(origin + path for path in self.cfg.feed_paths)
        return candidates

    async def _scrape_candidates(self, page_url: str, remaining: Callable[[], float]) -> list[str]:
        def scrape_timeout() -> float:
            return max(min(remaining(), self.cfg.max_attempt_ms / 1000.0), 0.001)

        html = await fetch_html(self.client, page_url, scrape_timeout())
        if html is None:
            return []
        soup = BeautifulSoup(html, "html.parser")
        found = alternate_feed_links(soup, page_url) + feed_anchor_links(soup, page_url)

        subpage = pick_subpage(soup, page_url)
        if subpage and remaining() > 0:
            sub_html = await fetch_html(self.client, subpage, scrape_timeout())
            if sub_html is not None:
                found += alternate_feed_links(BeautifulSoup(sub_html, "html.parser"), subpage)
        return found
