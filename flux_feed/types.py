"""
Core data types for the feed pipeline.

This module defines the structures exchanged between pipeline stages and
handed to the presentation layer:
- Article: one normalized feed entry
- ParsedFeed: feed-level metadata plus its ordered articles
- ParseOptions: per-call parse profile overrides
- DigestItem: a selected entry in the "today" digest
- ExtractedPage: readable body extracted from an article page

`to_dict()` produces the JSON shape clients cache by (feed URL, article id):
camelCase keys, absent optional fields omitted.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urlsplit


@dataclass(frozen=True)
class Enclosure:
    """Raw enclosure descriptor, passed through unmodified."""

    url: str | None = None
    type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact({"url": self.url, "type": self.type})


@dataclass(frozen=True)
class Article:
    """A single normalized feed entry.

    Attributes:
        id: Feed-provided guid, or ``{link}#{index}`` within the parse batch
        title: Display title, "Untitled" when the feed has none
        link: Absolute URL of the source article
        pub_date: ISO-8601 or RFC-822 string; None when absent or unparseable
        content_snippet: Plain-text excerpt (at most ~280 chars)
        image: Absolute URL of the representative image
        enclosure: Enclosure as found in the feed
    """

    id: str
    title: str
    link: str | None = None
    pub_date: str | None = None
    content_snippet: str | None = None
    image: str | None = None
    enclosure: Enclosure | None = None

    @property
    def timestamp(self) -> float:
        """Publication time in epoch seconds, 0 when missing or unparseable."""
        return parse_timestamp(self.pub_date) or 0.0

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "id": self.id,
                "title": self.title,
                "link": self.link,
                "pubDate": self.pub_date,
                "contentSnippet": self.content_snippet,
                "image": self.image,
                "enclosure": self.enclosure.to_dict() if self.enclosure else None,
            }
        )


@dataclass(frozen=True)
class ParsedFeed:
    """A parsed feed. Items keep the order of the underlying document."""

    title: str | None = None
    link: str | None = None
    items: tuple[Article, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = _compact({"title": self.title, "link": self.link})
        data["items"] = [item.to_dict() for item in self.items]
        return data


@dataclass
class ParseOptions:
    """Per-call overrides for FeedParser.

    Unset fields (None) fall back to the fast or full profile defaults.

    Attributes:
        fast: Select the low-latency profile
        max_items: Cap on returned items, applied before enrichment
        timeout_ms: Network timeout for the feed document itself
        enrich_og: Fetch article pages for Open Graph image/description
        unsplash_key: Enables the stock-image fallback outside fast mode
    """

    fast: bool = False
    max_items: int | None = None
    timeout_ms: int | None = None
    enrich_og: bool | None = None
    unsplash_key: str | None = None

    @property
    def mode(self) -> str:
        return "fast" if self.fast else "full"


@dataclass
class DigestItem:
    """An entry selected for the daily digest.

    Mutable because the image backfill passes fill ``image`` in place.
    """

    title: str
    link: str | None = None
    pub_date: str | None = None
    content_snippet: str = ""
    image: str | None = None
    feed_url: str | None = None

    @property
    def timestamp(self) -> float | None:
        return parse_timestamp(self.pub_date)

    @property
    def host(self) -> str:
        if not self.link:
            return ""
        host = urlsplit(self.link).hostname or ""
        return host[4:] if host.startswith("www.") else host

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "link": self.link,
            "image": self.image,
            "summary": self.content_snippet,
            "host": self.host,
            "pubDate": self.pub_date,
        }


@dataclass
class ExtractedPage:
    """Readable content extracted from an article page.

    Attributes:
        text: Whitespace-collapsed body text
        title: og:title or <title>, when found
        html: Sanitized body HTML, only when sanitizing was requested
        date: article:published_time or <time datetime>, when found
        image: Best-ranked page image, when found
    """

    text: str
    title: str | None = None
    html: str | None = None
    date: str | None = None
    image: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "text": self.text,
                "title": self.title,
                "html": self.html,
                "date": self.date,
                "image": self.image,
            }
        )


def parse_timestamp(value: Any) -> float | None:
    """Parse a feed date into epoch seconds.

    Accepts RFC-822 strings, ISO-8601 strings (with or without a trailing
    ``Z``), ``time.struct_time`` values as produced by feedparser, and
    datetimes. Naive values are read as UTC.

    Returns:
        Epoch seconds, or None when the value cannot be interpreted
    """
    if value is None or value == "":
        return None
    if hasattr(value, "tm_year"):
        return float(calendar.timegm(value))
    if isinstance(value, datetime):
        return _as_utc(value).timestamp()
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return _as_utc(parsedate_to_datetime(text)).timestamp()
    except (TypeError, ValueError, IndexError):
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text)).timestamp()
    except ValueError:
        return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}
