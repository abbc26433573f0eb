"""Tests for article page metadata parsing and loading."""

from __future__ import annotations

import asyncio

from flux_feed.og import (
    EMPTY_METADATA,
    PageMetadata,
    fetch_page_metadata,
    jsonld_description,
    memoized_loader,
    parse_page_metadata,
)

PAGE = "https://news.example.com/2024/story"


def test_image_priority_and_resolution():
    html = (
        "<head>"
        '<meta name="twitter:image" content="https://cdn.example.com/tw.jpg">'
        '<meta property="og:image" content="/img/og.jpg">'
        '<meta property="og:image:secure_url" content="https://secure.example.com/og.jpg">'
        "</head>"
    )

    assert parse_page_metadata(html, PAGE).image == "https://secure.example.com/og.jpg"

    html = '<head><meta property="og:image" content="/img/og.jpg"></head>'
    assert parse_page_metadata(html, PAGE).image == "https://news.example.com/img/og.jpg"

    html = '<head><link rel="image_src" href="//cdn.example.com/src.jpg"></head>'
    assert parse_page_metadata(html, PAGE).image == "https://cdn.example.com/src.jpg"


def test_description_sources_in_order():
    html = (
        '<head><meta name="description" content="plain description">'
        '<meta property="og:description" content="  og   description "></head>'
    )
    assert parse_page_metadata(html, PAGE).description == "og description"

    html = '<head><meta name="description" content="plain description"></head>'
    assert parse_page_metadata(html, PAGE).description == "plain description"


def test_jsonld_description_shapes():
    assert jsonld_description({"description": "object"}) == "object"
    assert jsonld_description([{"name": "x"}, {"description": "array"}]) == "array"
    assert jsonld_description({"@graph": [{"@type": "WebPage"}, {"description": "graph"}]}) == "graph"
    assert jsonld_description({"description": 7}) is None
    assert jsonld_description("nope") is None


def test_jsonld_used_when_meta_missing():
    html = (
        '<head><script type="application/ld+json">'
        '[{"@type": "NewsArticle", "description": "From structured data"}]'
        "</script></head><body></body>"
    )

    assert parse_page_metadata(html, PAGE).description == "From structured data"


def test_invalid_jsonld_is_ignored():
    html = '<head><script type="application/ld+json">{not json</script></head>'

    assert parse_page_metadata(html, PAGE).description is None


def test_first_paragraph_prefers_main():
    html = "<body><p>Cookie banner</p><main><p>Real   first paragraph</p></main></body>"

    assert parse_page_metadata(html, PAGE).first_paragraph == "Real first paragraph"


def test_fetch_page_metadata_degrades_on_failure(web):
    web.add(PAGE, "not html", content_type="application/json")

    async def _run():
        async with web.client() as client:
            missing = await fetch_page_metadata(client, "https://news.example.com/404", 1.0)
            wrong_type = await fetch_page_metadata(client, PAGE, 1.0)
            return missing, wrong_type

    missing, wrong_type = asyncio.run(_run())

    assert missing == EMPTY_METADATA
    assert wrong_type == EMPTY_METADATA


def test_memoized_loader_fetches_once():
    calls = 0

    async def load():
        nonlocal calls
        calls += 1
        return PageMetadata(description="d")

    loader = memoized_loader(load)

    async def _run():
        return await loader(), await loader()

    first, second = asyncio.run(_run())

    assert calls == 1
    assert first is second
