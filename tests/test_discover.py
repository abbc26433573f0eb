"""Tests for feed discovery."""

from __future__ import annotations

import asyncio

import pytest
from bs4 import BeautifulSoup

from conftest import rss, rss_item
from flux_feed.cache import FeedCache
from flux_feed.config import DiscoverConfig
from flux_feed.discover import CandidateList, FeedDiscoverer, pick_subpage
from flux_feed.errors import NotFoundError
from flux_feed.parser import FeedParser

ORIGIN = "https://site.example.com"
PAGE = ORIGIN + "/about"
FEED_XML = rss([rss_item("Hello", ORIGIN + "/hello", guid="h1")], title="Site Feed")


def _discover(web, url=PAGE, cfg=None, budget_ms=None):
    async def _run():
        async with web.client() as client:
            parser = FeedParser(client, FeedCache())
            discoverer = FeedDiscoverer(client, parser, cfg=cfg)
            return await discoverer.discover(url, budget_ms)

    return asyncio.run(_run())


def test_alternate_link_found_even_when_conventional_paths_fail(web):
    web.add(
        PAGE,
        '<html><head><link rel="alternate" type="application/rss+xml" href="/feed.xml"></head><body></body></html>',
    )
    web.add_feed(ORIGIN + "/feed.xml", FEED_XML)

    result = _discover(web, cfg=DiscoverConfig(feed_paths=["/rss", "/atom.xml"]))

    assert result.feed_url == ORIGIN + "/feed.xml"
    assert result.title == "Site Feed"
    assert result.to_dict() == {"feedUrl": ORIGIN + "/feed.xml", "title": "Site Feed"}


def test_first_success_stops_probing(web):
    web.add(
        PAGE,
        '<html><head><link rel="alternate" type="application/atom+xml" href="/custom/atom"></head></html>',
    )
    web.add_feed(ORIGIN + "/rss", FEED_XML)
    web.add_feed(ORIGIN + "/custom/atom", FEED_XML)

    result = _discover(web, cfg=DiscoverConfig(feed_paths=["/rss", "/atom.xml"]))

    assert result.feed_url == ORIGIN + "/rss"
    assert web.calls_to(ORIGIN + "/atom.xml") == 0
    assert web.calls_to(ORIGIN + "/custom/atom") == 0


def test_input_url_that_is_a_feed_wins(web):
    feed_url = ORIGIN + "/blog/index.rss"
    web.add_feed(feed_url, FEED_XML)

    result = _discover(web, url=feed_url)

    assert result.feed_url == feed_url
    assert set(web.calls) == {feed_url}


def test_feed_without_items_is_skipped(web):
    web.add(PAGE, '<html><body><a href="/empty.rss">RSS</a><a href="/full/feed">Feed</a></body></html>')
    web.add_feed(ORIGIN + "/empty.rss", rss([]))
    web.add_feed(ORIGIN + "/full/feed", FEED_XML)

    result = _discover(web, cfg=DiscoverConfig(feed_paths=[]))

    assert result.feed_url == ORIGIN + "/full/feed"


def test_subpage_alternates_are_tried(web):
    web.add(PAGE, '<html><body><a href="/news">Latest news</a></body></html>')
    web.add(
        ORIGIN + "/news",
        '<html><head><link rel="alternate" type="application/rss+xml" href="/news/latest.xml"></head></html>',
    )
    web.add_feed(ORIGIN + "/news/latest.xml", FEED_XML)

    result = _discover(web, cfg=DiscoverConfig(feed_paths=[]))

    assert result.feed_url == ORIGIN + "/news/latest.xml"


def test_nothing_found_raises_not_found(web):
    web.add(PAGE, "<html><body><p>No feeds here</p></body></html>")

    with pytest.raises(NotFoundError) as excinfo:
        _discover(web)

    assert str(excinfo.value) == "no feed detected"


def test_spent_budget_still_tries_known_candidates(web):
    web.add_feed(PAGE, FEED_XML)

    result = _discover(web, budget_ms=0)

    assert result.feed_url == PAGE
    assert web.calls == [PAGE]


def test_slow_subpage_does_not_starve_conventional_paths(web):
    web.add(PAGE, '<html><body><a href="/blog">Blog</a></body></html>')
    web.add(ORIGIN + "/blog", "<html><head></head></html>")
    web.delays[ORIGIN + "/blog"] = 2.0
    web.add_feed(ORIGIN + "/feed", FEED_XML)

    result = _discover(web, cfg=DiscoverConfig(feed_paths=["/feed"]), budget_ms=300)

    assert result.feed_url == ORIGIN + "/feed"
    assert web.calls_to(ORIGIN + "/blog") == 1
    assert web.calls.index(ORIGIN + "/feed") > web.calls.index(ORIGIN + "/blog")


def test_candidate_list_is_ordered_and_unique():
    candidates = CandidateList(["a", "b"])
    candidates.extend(["b", "c", "a", "d"])
    candidates.add(None)

    assert list(candidates) == ["a", "b", "c", "d"]
    assert len(candidates) == 4


def test_initial_candidates_start_with_input_then_paths():
    discoverer = FeedDiscoverer(None, None, cfg=DiscoverConfig(feed_paths=["/feed", "/rss.xml"]))

    assert list(discoverer.build_initial_candidates(PAGE)) == [PAGE, ORIGIN + "/feed", ORIGIN + "/rss.xml"]


def test_pick_subpage_requires_same_origin():
    soup = BeautifulSoup(
        '<a href="https://other.example.com/blog">x</a><a href="/company/press">y</a>', "html.parser"
    )

    assert pick_subpage(soup, PAGE) == ORIGIN + "/company/press"
