"""
Stock-photo search used as the last image fallback in full mode.

Only the "regular" resolution URL of each result is used. Results already
handed out are remembered by an ImageUsageTracker so repeated titles do not
all receive the same photo.
"""

from __future__ import annotations

import asyncio
import logging
import re

import httpx

from .cache import ImageUsageTracker
from .config import UnsplashConfig
from .logging_utils import get_logger, log_event


_WORD_RE = re.compile(r"[^\W\d_]+", re.UNICODE)


def title_keywords(title: str, limit: int = 3) -> list[str]:
    """Significant words (longer than 3 letters) from a title, in order."""
    words: list[str] = []
    for word in _WORD_RE.findall(title or ""):
        word = word.lower()
        if len(word) > 3 and word not in words:
            words.append(word)
        if len(words) >= limit:
            break
    return words


class StockImageClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cfg: UnsplashConfig,
        tracker: ImageUsageTracker,
        logger: logging.Logger | None = None,
    ):
        self.client = client
        self.cfg = cfg
        self.tracker = tracker
        self.logger = logger or get_logger("unsplash")

    async def search(self, query: str, api_key: str, page: int = 1, per_page: int | None = None) -> list[str]:
        """Return "regular" image URLs for a query; empty on any failure."""
        query = query.strip()
        if not query or not api_key:
            return []
        per_page = max(1, min(18, per_page or self.cfg.per_page))
        page = max(1, min(50, page))
        params = {
            "query": query,
            "orientation": "landscape",
            "content_filter": "high",
            "per_page": str(per_page),
            "page": str(page),
        }
        headers = {
            "Accept": "application/json",
            "Accept-Version": "v1",
            "Authorization": f"Client-ID {api_key}",
        }
        url = f"{self.cfg.base_url.rstrip('/')}/search/photos"
        try:
            resp = await asyncio.wait_for(
                self.client.get(url, params=params, headers=headers, timeout=self.cfg.timeout_seconds),
                timeout=self.cfg.timeout_seconds,
            )
            resp.raise_for_status()
            data = resp.json()
        except (asyncio.TimeoutError, httpx.HTTPError, ValueError) as exc:
            log_event(
                self.logger,
                "Stock image search failed",
                level=logging.DEBUG,
                event="stock_search_failed",
                query=query,
                error=f"{type(exc).__name__}: {exc}",
            )
            return []

        results = data.get("results") if isinstance(data, dict) else None
        urls: list[str] = []
        for photo in results or []:
            regular = (photo.get("urls") or {}).get("regular") if isinstance(photo, dict) else None
            if isinstance(regular, str) and regular:
                urls.append(regular)
        return urls

    async def image_for_title(self, title: str, api_key: str) -> str | None:
        keywords = title_keywords(title)
        if not keywords:
            return None
        urls = await self.search(" ".join(keywords), api_key)
        return self.tracker.pick(urls)
