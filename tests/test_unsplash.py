"""Tests for the stock-photo fallback."""

from __future__ import annotations

import asyncio
import json

import httpx

from conftest import rss, rss_item
from flux_feed.cache import FeedCache, ImageUsageTracker
from flux_feed.config import UnsplashConfig
from flux_feed.parser import FeedParser
from flux_feed.types import ParseOptions
from flux_feed.unsplash import StockImageClient, title_keywords

SEARCH_URL = "https://api.unsplash.com/search/photos"


def _photos(*urls: str) -> str:
    return json.dumps({"results": [{"urls": {"regular": url, "thumb": url + "?t"}} for url in urls]})


def test_title_keywords():
    assert title_keywords("The new way to see Mars rovers at work") == ["mars", "rovers", "work"]
    assert title_keywords("Café économie: données 2024!") == ["café", "économie", "données"]
    assert title_keywords("a to be") == []


def test_search_sends_query_and_auth_headers():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=_photos("https://img/1"), headers={"content-type": "application/json"})

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            stock = StockImageClient(client, UnsplashConfig(), ImageUsageTracker())
            return await stock.search("mars rovers", "secret", page=99, per_page=40)

    urls = asyncio.run(_run())

    assert urls == ["https://img/1"]
    request = seen[0]
    assert request.url.path == "/search/photos"
    assert request.url.params["query"] == "mars rovers"
    assert request.url.params["orientation"] == "landscape"
    assert request.url.params["content_filter"] == "high"
    assert request.url.params["per_page"] == "18"
    assert request.url.params["page"] == "50"
    assert request.headers["Authorization"] == "Client-ID secret"
    assert request.headers["Accept-Version"] == "v1"


def test_search_failures_return_empty(web):
    web.add(SEARCH_URL, "oops", status=500, content_type="application/json")

    async def _run():
        async with web.client() as client:
            stock = StockImageClient(client, UnsplashConfig(), ImageUsageTracker())
            failed = await stock.search("mars", "key")
            no_key = await stock.search("mars", "")
            blank = await stock.search("   ", "key")
            return failed, no_key, blank

    assert asyncio.run(_run()) == ([], [], [])
    assert web.calls_to(SEARCH_URL) == 1


def test_repeated_titles_get_different_photos(web):
    web.add(SEARCH_URL, _photos("https://img/1", "https://img/2"), content_type="application/json")

    async def _run():
        async with web.client() as client:
            stock = StockImageClient(client, UnsplashConfig(), ImageUsageTracker())
            first = await stock.image_for_title("Mars rovers explore craters", "key")
            second = await stock.image_for_title("Mars rovers explore craters", "key")
            return first, second

    assert asyncio.run(_run()) == ("https://img/1", "https://img/2")


def test_parser_uses_stock_image_only_in_full_mode_with_key(web):
    feed_url = "https://example.com/feed.xml"
    web.add_feed(feed_url, rss([rss_item("Mars rovers explore craters", "https://example.com/mars", guid="m")]))
    web.add(SEARCH_URL, _photos("https://img/mars"), content_type="application/json")

    async def _run():
        async with web.client() as client:
            tracker = ImageUsageTracker()
            parser = FeedParser(
                client,
                FeedCache(),
                stock_images=StockImageClient(client, UnsplashConfig(), tracker),
            )
            full = await parser.parse_feed(feed_url, ParseOptions(enrich_og=False, unsplash_key="key"))
            fast = await parser.parse_feed(feed_url, ParseOptions(fast=True, unsplash_key="key"))
            keyless = await parser.parse_feed(feed_url, ParseOptions(enrich_og=False, max_items=5))
            return full, fast, keyless

    full, fast, keyless = asyncio.run(_run())

    assert full.items[0].image == "https://img/mars"
    assert fast.items[0].image is None
    assert keyless.items[0].image is None
    assert web.calls_to(SEARCH_URL) == 1
