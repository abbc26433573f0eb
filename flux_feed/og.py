"""
Article page metadata: Open Graph, Twitter Card, JSON-LD and first paragraph.

A single page fetch yields both the representative image and a longer
description, so FeedParser loads it at most once per item and shares the
result between the image chain and the snippet enrichment.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Awaitable, Callable

from bs4 import BeautifulSoup
import httpx

from .fetch.fetcher import fetch_html
from .html_utils import collapse_whitespace, resolve_url, visible_text
from .logging_utils import get_logger, log_event


# (selector, attribute) in priority order
IMAGE_META = [
    ("meta[property='og:image:secure_url']", "content"),
    ("meta[property='og:image']", "content"),
    ("meta[name='og:image']", "content"),
    ("meta[name='twitter:image']", "content"),
    ("meta[name='twitter:image:src']", "content"),
    ("link[rel='image_src']", "href"),
]

DESCRIPTION_META = [
    "meta[property='og:description']",
    "meta[name='og:description']",
    "meta[name='twitter:description']",
    "meta[name='description']",
]


@dataclass(frozen=True)
class PageMetadata:
    image: str | None = None
    description: str | None = None
    first_paragraph: str | None = None


EMPTY_METADATA = PageMetadata()

MetadataLoader = Callable[[], Awaitable[PageMetadata]]


def parse_page_metadata(html: str, page_url: str) -> PageMetadata:
    """Read image, description and first paragraph from page HTML."""
    soup = BeautifulSoup(html, "html.parser")
    image = None
    for selector, attr in IMAGE_META:
        value = _attr(soup, selector, attr)
        if value:
            image = resolve_url(value, page_url)
            break

    description = None
    for selector in DESCRIPTION_META:
        value = _attr(soup, selector, "content")
        if value:
            description = collapse_whitespace(value)
            break
    if not description:
        description = _jsonld_description(soup)

    return PageMetadata(
        image=image,
        description=description or None,
        first_paragraph=_first_paragraph(soup),
    )


async def fetch_page_metadata(
    client: httpx.AsyncClient,
    url: str,
    timeout: float,
    logger: logging.Logger | None = None,
) -> PageMetadata:
    """Fetch an article page and parse its metadata.

    Any failure (timeout, non-2xx, non-HTML body) yields empty metadata.
    """
    html = await fetch_html(client, url, timeout)
    if html is None:
        log_event(
            logger or get_logger("og"),
            "Page metadata unavailable",
            level=logging.DEBUG,
            event="og_fetch_miss",
            url=url,
        )
        return EMPTY_METADATA
    return parse_page_metadata(html, url)


def memoized_loader(load: MetadataLoader) -> MetadataLoader:
    """Wrap a loader so the page is fetched at most once."""
    result: list[PageMetadata] = []

    async def _load() -> PageMetadata:
        if not result:
            result.append(await load())
        return result[0]

    return _load


def _attr(soup: BeautifulSoup, selector: str, attr: str) -> str | None:
    el = soup.select_one(selector)
    if el is None:
        return None
    value = el.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    value = (value or "").strip()
    return value or None


def _first_paragraph(soup: BeautifulSoup) -> str | None:
    for selector in ("main p", "p"):
        el = soup.select_one(selector)
        if el is not None:
            text = visible_text(el)
            if text:
                return text
    return None


def _jsonld_description(soup: BeautifulSoup) -> str | None:
    script = soup.select_one("script[type='application/ld+json']")
    if script is None:
        return None
    try:
        data = json.loads(script.string or script.get_text() or "")
    except (TypeError, ValueError):
        return None
    return jsonld_description(data)


def jsonld_description(node: Any) -> str | None:
    """Find a ``description`` string in a JSON-LD payload.

    Shapes handled: an object with a string ``description``, an object with
    an ``@graph`` array, or an array of such objects (first match wins).
    """
    if isinstance(node, list):
        for child in node:
            found = jsonld_description(child)
            if found:
                return found
        return None
    if not isinstance(node, dict):
        return None
    description = node.get("description")
    if isinstance(description, str) and description.strip():
        return collapse_whitespace(description)
    graph = node.get("@graph")
    if isinstance(graph, list):
        return jsonld_description(graph)
    return None
