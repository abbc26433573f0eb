"""
Representative image resolution.

Feed items go through an ordered chain of resolvers; the first one that
produces a URL wins:
1. Inline content <img> (src, lazy-load attributes, widest srcset), then <picture><source>
2. Image enclosure
3. Media RSS / iTunes extensions
4. Article page Open Graph / Twitter Card metadata (only when enrichment is on)
5. YouTube thumbnail synthesized from the link
6. Stock-image search keyed by title keywords (full mode with an API key)

Reader views use extract_best_image(), a broader scored heuristic over
meta tags and in-content images, and the digest backfill uses
find_hero_image() which prefers CMS featured-image markup.

No step raises: a failing strategy means "no image from this step".
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any, Awaitable, Callable, Mapping, Sequence

from bs4 import BeautifulSoup, Tag
import httpx

from .fetch.fetcher import fetch_html
from .html_utils import host_of, pick_best_from_srcset, resolve_url, youtube_thumbnail
from .logging_utils import get_logger, log_event
from .og import IMAGE_META, MetadataLoader
from .types import Enclosure


LAZY_ATTRS = (
    "src",
    "data-src",
    "data-lazy-src",
    "data-original",
    "data-image",
    "data-actualsrc",
    "data-src-large",
)
SRCSET_ATTRS = ("srcset", "data-srcset")

MEDIA_KEYS = (
    "media_content",
    "media:content",
    "media_thumbnail",
    "media:thumbnail",
    "media_group",
    "media:group",
    "itunes_image",
    "itunes:image",
    "image",
)


@dataclass
class ImageContext:
    """Everything the resolver chain may look at for one feed item.

    Attributes:
        entry: Raw parsed entry (feedparser dict or equivalent mapping)
        content_html: Item body HTML (content:encoded, content or summary)
        link: Canonical article link, used as the base for relative URLs
        title: Item title, used for stock-image keywords
        enclosure: First enclosure of the item
        load_metadata: Memoized article page metadata loader; None disables step 4
        stock_search: Title-to-image search; None disables step 6
    """

    entry: Mapping[str, Any] = field(default_factory=dict)
    content_html: str = ""
    link: str | None = None
    title: str = ""
    enclosure: Enclosure | None = None
    load_metadata: MetadataLoader | None = None
    stock_search: Callable[[str], Awaitable[str | None]] | None = None


Resolver = Callable[[ImageContext], Awaitable[str | None]]


class ImageResolver:
    """Runs image resolvers in order; the first URL found wins."""

    def __init__(self, resolvers: Sequence[Resolver] | None = None, logger: logging.Logger | None = None):
        self.resolvers = list(resolvers) if resolvers is not None else default_resolvers()
        self.logger = logger or get_logger("images")

    async def resolve(self, ctx: ImageContext) -> str | None:
        for resolver in self.resolvers:
            try:
                url = await resolver(ctx)
            except Exception as exc:  # noqa: BLE001
                log_event(
                    self.logger,
                    "Image resolver failed",
                    level=logging.DEBUG,
                    event="image_resolver_failed",
                    resolver=getattr(resolver, "__name__", repr(resolver)),
                    url=ctx.link,
                    error=f"{type(exc).__name__}: {exc}",
                )
                continue
            if url:
                return url
        return None


async def from_content(ctx: ImageContext) -> str | None:
    return image_from_html(ctx.content_html, ctx.link)


async def from_enclosure(ctx: ImageContext) -> str | None:
    return image_from_enclosure(ctx.enclosure)


async def from_media(ctx: ImageContext) -> str | None:
    return image_from_media(ctx.entry)


async def from_page_metadata(ctx: ImageContext) -> str | None:
    if ctx.load_metadata is None or not ctx.link:
        return None
    meta = await ctx.load_metadata()
    return meta.image


async def from_youtube(ctx: ImageContext) -> str | None:
    return youtube_thumbnail(ctx.link)


async def from_stock_search(ctx: ImageContext) -> str | None:
    if ctx.stock_search is None or not ctx.title:
        return None
    return await ctx.stock_search(ctx.title)


def default_resolvers() -> list[Resolver]:
    return [
        from_content,
        from_enclosure,
        from_media,
        from_page_metadata,
        from_youtube,
        from_stock_search,
    ]


def image_from_html(html: str | None, base: str | None = None) -> str | None:
    """First usable image in an HTML fragment.

    Each <img> is tried in document order: the first non-empty attribute in
    LAZY_ATTRS, else the widest srcset candidate. When no <img> yields a
    URL, <picture><source> srcsets are tried.
    """
    if not html or "<" not in html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for img in soup.find_all("img"):
        src = _pick_from_tag(img)
        if src:
            return resolve_url(src, base)
    for source in soup.select("picture source"):
        src = _best_srcset(source)
        if src:
            return resolve_url(src, base)
    return None


def _pick_from_tag(tag: Tag) -> str | None:
    for attr in LAZY_ATTRS:
        value = (tag.get(attr) or "").strip()
        if value and not value.startswith("data:"):
            return value
    return _best_srcset(tag)


def _best_srcset(tag: Tag) -> str | None:
    for attr in SRCSET_ATTRS:
        best = pick_best_from_srcset(tag.get(attr))
        if best:
            return best
    return None


def image_from_enclosure(enclosure: Enclosure | None) -> str | None:
    if enclosure is None or not enclosure.url:
        return None
    if enclosure.type is None or enclosure.type == "" or enclosure.type.startswith("image/"):
        return enclosure.url
    return None


def image_from_media(entry: Mapping[str, Any]) -> str | None:
    """Probe media:content, media:thumbnail, media:group and itunes:image."""
    for key in MEDIA_KEYS:
        value = entry.get(key) if hasattr(entry, "get") else None
        if value is None:
            continue
        url = url_from_shape(value)
        if url:
            return url
    return None


# Shape matchers: each returns a URL for one known shape, or None.

def _match_string(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _match_sequence(value: Any) -> str | None:
    if isinstance(value, (list, tuple)):
        for child in value:
            url = url_from_shape(child)
            if url:
                return url
    return None


def _is_non_image(rec: Mapping[str, Any]) -> bool:
    medium = rec.get("medium")
    if isinstance(medium, str) and medium and medium != "image":
        return True
    mime = rec.get("type")
    return isinstance(mime, str) and bool(mime) and not mime.startswith("image/")


def _match_url_record(value: Any) -> str | None:
    if isinstance(value, Mapping) and not _is_non_image(value):
        return _match_string(value.get("url"))
    return None


def _match_dollar_record(value: Any) -> str | None:
    if isinstance(value, Mapping):
        inner = value.get("$")
        if isinstance(inner, Mapping) and not _is_non_image(inner):
            return _match_string(inner.get("url"))
    return None


def _match_href_record(value: Any) -> str | None:
    if isinstance(value, Mapping) and not _is_non_image(value):
        return _match_string(value.get("href"))
    return None


def _match_group(value: Any) -> str | None:
    if isinstance(value, Mapping):
        for key in ("media:thumbnail", "media_thumbnail", "media:content", "media_content"):
            if key in value:
                url = url_from_shape(value[key])
                if url:
                    return url
    return None


SHAPE_MATCHERS = (
    _match_string,
    _match_sequence,
    _match_url_record,
    _match_dollar_record,
    _match_href_record,
    _match_group,
)


def url_from_shape(value: Any) -> str | None:
    """Extract a URL from any supported media extension shape."""
    for matcher in SHAPE_MATCHERS:
        url = matcher(value)
        if url:
            return url
    return None


# General scored extraction for reader views.

PAGE_IMAGE_META = [
    ("meta[property='og:image']", "content"),
    ("meta[name='og:image']", "content"),
    ("meta[property='og:image:secure_url']", "content"),
    ("meta[name='twitter:image']", "content"),
    ("meta[name='twitter:image:src']", "content"),
    ("meta[itemprop='image']", "content"),
    ("meta[property='article:image']", "content"),
    ("meta[name='article:image']", "content"),
    ("link[rel='image_src']", "href"),
    ("meta[name='apple-touch-startup-image']", "content"),
]

CONTENT_IMAGE_SELECTORS = [
    "article img",
    ".post-content img",
    ".entry-content img",
    ".article-content img",
    ".content img",
    ".featured-image img",
    ".post-thumbnail img",
    ".hero-image img",
    "main img",
    "#content img",
]

IGNORED_DOMAINS = (
    "google-analytics.com",
    "doubleclick.net",
    "facebook.com",
    "twitter.com",
    "linkedin.com",
)
DECORATIVE_MARKERS = ("icon", "logo", "avatar", "spacer", "sprite")
NOISE_MARKERS = ("tracking", "pixel", "advertisement", "/ads/", "beacon")
ARTICLE_KEYWORDS = ("article", "featured", "hero", "cover", "upload", "wp-content", "media")
MIN_IMAGE_SIZE = 100

_INT_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class ImageCandidate:
    url: str
    width: int = 0
    height: int = 0
    alt: str = ""


def is_noise_image(url: str) -> bool:
    lowered = url.lower()
    if any(domain in lowered for domain in IGNORED_DOMAINS):
        return True
    if any(marker in lowered for marker in NOISE_MARKERS):
        return True
    return lowered.split("?", 1)[0].endswith(".svg")


def candidate_sort_key(candidate: ImageCandidate) -> tuple[int, int, int]:
    """Ranking key, lower sorts first.

    Weights, strongest first: known adequate dimensions, non-empty alt
    text, an article-ish keyword in the URL.
    """
    sized = candidate.width >= MIN_IMAGE_SIZE and candidate.height >= MIN_IMAGE_SIZE
    has_alt = bool(candidate.alt.strip())
    articleish = any(word in candidate.url.lower() for word in ARTICLE_KEYWORDS)
    return (0 if sized else 1, 0 if has_alt else 1, 0 if articleish else 1)


def rank_image_candidates(candidates: Sequence[ImageCandidate]) -> list[ImageCandidate]:
    """Drop noise and tiny images, then rank the rest (stable)."""
    kept = []
    for candidate in candidates:
        if is_noise_image(candidate.url):
            continue
        if candidate.width and candidate.height and (
            candidate.width < MIN_IMAGE_SIZE or candidate.height < MIN_IMAGE_SIZE
        ):
            continue
        kept.append(candidate)
    return sorted(kept, key=candidate_sort_key)


def collect_image_candidates(html: str, page_url: str) -> list[ImageCandidate]:
    soup = BeautifulSoup(html, "html.parser")
    candidates: list[ImageCandidate] = []
    seen: set[str] = set()

    def _add(candidate: ImageCandidate) -> None:
        if candidate.url not in seen:
            seen.add(candidate.url)
            candidates.append(candidate)

    for selector, attr in PAGE_IMAGE_META:
        el = soup.select_one(selector)
        value = (el.get(attr) or "").strip() if el is not None else ""
        if value:
            _add(ImageCandidate(url=resolve_url(value, page_url) or value))

    for selector in CONTENT_IMAGE_SELECTORS:
        for img in soup.select(selector):
            src = (img.get("src") or "").strip()
            if not src or src.startswith("data:"):
                continue
            if any(marker in src.lower() for marker in DECORATIVE_MARKERS):
                continue
            _add(
                ImageCandidate(
                    url=resolve_url(src, page_url) or src,
                    width=_dimension(img.get("width")),
                    height=_dimension(img.get("height")),
                    alt=(img.get("alt") or "").strip(),
                )
            )
    return candidates


def extract_best_image(html: str, page_url: str) -> str | None:
    ranked = rank_image_candidates(collect_image_candidates(html, page_url))
    return ranked[0].url if ranked else None


def _dimension(value: Any) -> int:
    match = _INT_RE.search(str(value or ""))
    return int(match.group(0)) if match else 0


# Hero image scrape used by the digest backfill.

HERO_SELECTORS = ", ".join(
    [
        ".wp-block-post-featured-image img",
        ".wp-post-image",
        ".post-thumbnail img",
        ".featured-image img",
        "figure.wp-block-image img",
        "article img",
        "main img",
        "img[data-nimg]",
        "img.object-cover",
        "header img",
        "div[style*=aspect-ratio] img",
    ]
)


def find_hero_image(html: str, page_url: str) -> str | None:
    """Featured image markup first, then <source media srcset>, then OG tags."""
    soup = BeautifulSoup(html, "html.parser")
    hero = soup.select_one(HERO_SELECTORS)
    if hero is not None:
        src = _pick_from_tag(hero)
        if src:
            return resolve_url(src, page_url)
    source = soup.select_one("source[media][srcset], source[media][data-srcset]")
    if source is not None:
        src = _best_srcset(source)
        if src:
            return resolve_url(src, page_url)
    for selector, attr in IMAGE_META:
        el = soup.select_one(selector)
        value = (el.get(attr) or "").strip() if el is not None else ""
        if value:
            return resolve_url(value, page_url)
    return None


async def fetch_page_image(client: httpx.AsyncClient, url: str, timeout: float) -> str | None:
    html = await fetch_html(client, url, timeout)
    if html is None:
        return None
    return find_hero_image(html, url)


def favicon_url(link: str | None) -> str | None:
    host = host_of(link)
    if not host:
        return None
    return f"https://icons.duckduckgo.com/ip3/{host}.ico"
