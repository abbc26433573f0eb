"""Tests for the "today" digest: windowing, selection, interleave and backfill."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from flux_feed.config import DigestConfig
from flux_feed.digest import (
    DigestBuilder,
    DigestOptions,
    Selection,
    FeedGroup,
    dedup_items,
    interleave_videos,
)
from flux_feed.errors import FetchError
from flux_feed.types import Article, DigestItem, ParsedFeed

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def _iso(hours_ago: float) -> str:
    return (NOW - timedelta(hours=hours_ago)).strftime("%Y-%m-%dT%H:%M:%SZ")


def _article(feed: str, n: int, hours_ago: float, link: str | None = None, title: str | None = None, image=None):
    return Article(
        id=f"{feed}-{n}",
        title=title or f"{feed} story {n}",
        link=link or f"https://{feed}.example.com/{n}",
        pub_date=_iso(hours_ago),
        content_snippet=f"Snippet {feed} {n}",
        image=image,
    )


class _StubParser:
    def __init__(self, feeds: dict, on_parse=None):
        self.feeds = feeds
        self.calls = []
        self.on_parse = on_parse

    async def parse_feed(self, url, options=None):
        self.calls.append(url)
        if self.on_parse is not None:
            self.on_parse(url)
        outcome = self.feeds[url]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _Timer:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _build(web, feeds, urls, options=None, cfg=None, timer=None, on_parse=None):
    parser = _StubParser(feeds, on_parse)

    async def _run():
        async with web.client() as client:
            builder = DigestBuilder(
                client,
                parser,
                cfg=cfg,
                clock=lambda: NOW.timestamp(),
                timer=timer or _Timer(),
            )
            return await builder.build(urls, options or DigestOptions(fast=True))

    return asyncio.run(_run()), parser


def test_round_robin_takes_two_per_feed_first(web):
    feeds = {
        "a": ParsedFeed(items=tuple(_article("a", n, n + 1) for n in range(4))),
        "b": ParsedFeed(items=tuple(_article("b", n, n + 1.5) for n in range(4))),
    }

    result, _ = _build(web, feeds, ["a", "b"])

    assert [item.link for item in result.items[:4]] == [
        "https://a.example.com/0",
        "https://b.example.com/0",
        "https://a.example.com/1",
        "https://b.example.com/1",
    ]
    assert len(result.items) == 8


def test_window_falls_back_to_72_hours_then_newest(web):
    feeds = {
        "a": ParsedFeed(
            items=(
                _article("a", 0, 2),
                _article("a", 1, 48),
                _article("a", 2, 200),
            )
        ),
    }

    result, _ = _build(web, feeds, ["a"])

    assert [item.link for item in result.items] == [
        "https://a.example.com/0",
        "https://a.example.com/1",
        "https://a.example.com/2",
    ]


def test_explicit_window_bounds(web):
    feeds = {"a": ParsedFeed(items=tuple(_article("a", n, h) for n, h in enumerate([1, 30, 50])))}
    start = int((NOW - timedelta(hours=40)).timestamp() * 1000)
    end = int((NOW - timedelta(hours=20)).timestamp() * 1000)
    cfg = DigestConfig(max_items=1)

    result, _ = _build(web, feeds, ["a"], DigestOptions(fast=True, start_ms=start, end_ms=end), cfg=cfg)

    assert [item.link for item in result.items] == ["https://a.example.com/1"]


def test_shorts_are_dropped_and_youtube_thumbnails_synthesized(web):
    yt = "https://www.youtube.com/feeds/videos.xml?channel_id=UC1"
    feeds = {
        yt: ParsedFeed(
            items=(
                _article("yt", 0, 1, link="https://www.youtube.com/watch?v=abc123"),
                _article("yt", 1, 1, link="https://www.youtube.com/shorts/def456"),
                _article("yt", 2, 1, link="https://www.youtube.com/watch?v=ghi789", title="Quick #shorts"),
            )
        )
    }

    result, _ = _build(web, feeds, [yt])

    assert [item.link for item in result.items] == ["https://www.youtube.com/watch?v=abc123"]
    assert result.items[0].image == "https://i.ytimg.com/vi/abc123/hqdefault.jpg"


def test_youtube_feeds_are_scanned_first(web):
    yt = "https://www.youtube.com/feeds/videos.xml?channel_id=UC1"
    feeds = {"https://blog.example.com/feed": ParsedFeed(), yt: ParsedFeed()}

    _, parser = _build(web, feeds, ["https://blog.example.com/feed", yt])

    assert parser.calls[0] == yt


def test_failed_feed_is_skipped(web):
    feeds = {"a": FetchError("a", "down"), "b": ParsedFeed(items=(_article("b", 0, 1),))}

    result, _ = _build(web, feeds, ["a", "b"])

    assert [item.link for item in result.items] == ["https://b.example.com/0"]
    assert result.feeds_scanned == 2


def test_budget_exhaustion_stops_scanning(web):
    timer = _Timer()
    feeds = {f"f{i}": ParsedFeed(items=(_article(f"f{i}", 0, 1),)) for i in range(6)}

    def slow(url):
        timer.now += 2.0

    result, parser = _build(web, feeds, list(feeds), timer=timer, on_parse=slow)

    assert len(parser.calls) == 3
    assert result.feeds_scanned == 3


def test_fast_mode_without_images_uses_favicon_fallback(web):
    feeds = {"a": ParsedFeed(items=(_article("a", 0, 1),))}

    result, _ = _build(web, feeds, ["a"])

    assert result.items[0].image == "https://icons.duckduckgo.com/ip3/a.example.com.ico"
    assert web.calls == []


def test_backfill_uses_page_metadata_then_hero_image(web):
    web.add("https://a.example.com/0", '<html><head><meta property="og:image" content="/og.jpg"></head></html>')
    web.add("https://a.example.com/1", '<html><body><article><img src="/hero.jpg"></article></body></html>')
    feeds = {"a": ParsedFeed(items=(_article("a", 0, 1), _article("a", 1, 2)))}

    result, _ = _build(web, feeds, ["a"], DigestOptions(fast=False))

    images = {item.link: item.image for item in result.items}
    assert images["https://a.example.com/0"] == "https://a.example.com/og.jpg"
    assert images["https://a.example.com/1"] == "https://a.example.com/hero.jpg"


def test_to_dict_shape(web):
    feeds = {"a": ParsedFeed(items=(_article("a", 0, 1, image="https://a.example.com/i.jpg"),))}

    result, _ = _build(web, feeds, ["a"])
    data = result.to_dict()

    assert data["items"][0] == {
        "title": "a story 0",
        "link": "https://a.example.com/0",
        "image": "https://a.example.com/i.jpg",
        "summary": "Snippet a 0",
        "host": "a.example.com",
        "pubDate": _iso(1),
    }
    assert data["stats"]["feedsScanned"] == 1
    assert data["stats"]["completedImages"] == 1


def test_dedup_merges_by_link_keeping_richer_fields():
    items = [
        DigestItem(title="Story", link="https://x.com/1", pub_date=_iso(1), content_snippet="short"),
        DigestItem(title="Story", link="https://x.com/1", content_snippet="a longer snippet", image="https://x.com/i.jpg"),
        DigestItem(title="No link", content_snippet="s"),
        DigestItem(title="no LINK", content_snippet="s2"),
    ]

    merged = dedup_items(items)

    assert len(merged) == 2
    assert merged[0].content_snippet == "a longer snippet"
    assert merged[0].image == "https://x.com/i.jpg"
    assert merged[0].pub_date == _iso(1)
    assert merged[1].content_snippet == "s2"


def test_fuzzy_title_dedup_below_100():
    items = [
        DigestItem(title="Apple unveils new iPhone 16 lineup", link="https://a.com/1"),
        DigestItem(title="Apple unveils new iPhone 16 line-up", link="https://b.com/9"),
    ]

    assert len(dedup_items(items)) == 2
    assert len(dedup_items(items, title_threshold=90)) == 1


def test_selection_round_robin_skips_duplicates_without_stalling():
    shared = DigestItem(title="Shared", link="https://x.com/shared")
    groups = [
        FeedGroup("a", [shared, DigestItem(title="A2", link="https://x.com/a2")]),
        FeedGroup("b", [DigestItem(title="Shared again", link="https://x.com/shared"), DigestItem(title="B2", link="https://x.com/b2")]),
    ]
    selection = Selection(10)

    selection.round_robin(groups, 2)

    assert [item.link for item in selection.items] == [
        "https://x.com/shared",
        "https://x.com/b2",
        "https://x.com/a2",
    ]


def test_interleave_two_articles_per_video_with_cap():
    articles = [DigestItem(title=f"A{i}", link=f"https://news.com/{i}") for i in range(8)]
    videos = [DigestItem(title=f"V{i}", link=f"https://www.youtube.com/watch?v=video{i:02d}") for i in range(6)]

    out = interleave_videos(videos + articles, limit=24, max_videos=4)

    assert [item.title for item in out[:6]] == ["A0", "A1", "V0", "A2", "A3", "V1"]
    assert sum(1 for item in out if item.title.startswith("V")) == 4
    assert len(out) == 12


def test_interleave_only_videos_respects_cap():
    videos = [DigestItem(title=f"V{i}", link=f"https://youtu.be/video{i:02d}") for i in range(6)]

    out = interleave_videos(videos, limit=24, max_videos=4)

    assert len(out) == 4
