"""Shared network and clock doubles for the test suite."""

from __future__ import annotations

import asyncio

import httpx
import pytest


class FakeWeb:
    """Routes URLs to canned responses through httpx.MockTransport.

    Unknown URLs answer 404. Every request URL is recorded in ``calls``;
    URLs in ``delays`` answer after sleeping that many seconds.
    """

    def __init__(self):
        self.routes: dict[str, tuple[int, bytes, str]] = {}
        self.broken: set[str] = set()
        self.calls: list[str] = []
        self.delays: dict[str, float] = {}

    def add(self, url: str, body: str | bytes = "", status: int = 200, content_type: str = "text/html; charset=utf-8"):
        data = body.encode("utf-8") if isinstance(body, str) else body
        self.routes[url] = (status, data, content_type)

    def add_feed(self, url: str, xml: str):
        self.add(url, xml, content_type="application/rss+xml; charset=utf-8")

    def break_url(self, url: str):
        self.routes.pop(url, None)
        self.broken.add(url)

    def calls_to(self, url: str) -> int:
        return sum(1 for call in self.calls if call.split("?", 1)[0] == url)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        full = str(request.url)
        bare = full.split("?", 1)[0]
        self.calls.append(full)
        delay = self.delays.get(full, self.delays.get(bare))
        if delay:
            await asyncio.sleep(delay)
        if full in self.broken or bare in self.broken:
            raise httpx.ConnectError("connection refused", request=request)
        route = self.routes.get(full) or self.routes.get(bare)
        if route is None:
            return httpx.Response(404, content=b"not found", headers={"content-type": "text/plain"})
        status, body, content_type = route
        return httpx.Response(status, content=body, headers={"content-type": content_type})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(self.handler),
            headers={"User-Agent": "FluxRSS/1.0"},
            follow_redirects=True,
        )


class FakeClock:
    def __init__(self, now: float = 1_704_888_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def rss(items: list[str], title: str = "Example Feed", link: str = "https://example.com/") -> str:
    """Minimal RSS 2.0 document with media and content namespaces."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/" '
        'xmlns:content="http://purl.org/rss/1.0/modules/content/">'
        f"<channel><title>{title}</title><link>{link}</link>"
        + "".join(items)
        + "</channel></rss>"
    )


def rss_item(
    title: str,
    link: str,
    guid: str | None = None,
    pub_date: str | None = None,
    description: str | None = None,
    extra: str = "",
) -> str:
    parts = [f"<title>{title}</title>", f"<link>{link}</link>"]
    if guid:
        parts.append(f'<guid isPermaLink="false">{guid}</guid>')
    if pub_date:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    if description is not None:
        parts.append(f"<description>{description}</description>")
    parts.append(extra)
    return "<item>" + "".join(parts) + "</item>"


@pytest.fixture
def web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
