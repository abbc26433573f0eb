"""
Shared URL and HTML helpers used by the image, metadata and extraction
heuristics.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urljoin, urlsplit

from bs4 import BeautifulSoup, CData, NavigableString, Tag


_WS_RE = re.compile(r"\s+")
_WIDTH_RE = re.compile(r"^(\d+)w$")
_YT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{6,}$")
_SHORTS_MARKER_RE = re.compile(r"(#shorts\b|\bshorts\b)")

BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "br", "dd", "div", "dl", "dt", "figcaption",
    "figure", "footer", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li", "main",
    "nav", "ol", "p", "pre", "section", "table", "td", "th", "tr", "ul",
}

YOUTUBE_HOSTS = {"youtube.com", "m.youtube.com", "music.youtube.com", "youtu.be"}


def resolve_url(url: str | None, base: str | None = None) -> str | None:
    """Make a URL absolute.

    Protocol-relative URLs become https; relative URLs are joined to
    ``base`` when one is given and otherwise returned unchanged.
    """
    if not url:
        return None
    url = url.strip()
    if not url:
        return None
    if url.startswith("//"):
        return "https:" + url
    if not base:
        return url
    try:
        return urljoin(base, url)
    except ValueError:
        return url


def pick_best_from_srcset(srcset: str | None) -> str | None:
    """Pick the widest candidate from a srcset attribute.

    Candidates without a width descriptor count as width 0; ties keep the
    first candidate.
    """
    if not srcset:
        return None
    best_url: str | None = None
    best_width = -1
    for part in srcset.split(","):
        segments = part.strip().split()
        if not segments:
            continue
        width = 0
        for seg in segments[1:]:
            match = _WIDTH_RE.match(seg)
            if match:
                width = int(match.group(1))
                break
        if width > best_width:
            best_url, best_width = segments[0], width
    return best_url


def strip_html(html: str | None) -> str:
    """Return the visible text of an HTML fragment with whitespace collapsed."""
    if not html:
        return ""
    if "<" not in html:
        return collapse_whitespace(html)
    return visible_text(BeautifulSoup(html, "html.parser"))


def visible_text(node: Tag) -> str:
    """Text of a node with a space at block boundaries only.

    Inline markup (``<b>``, ``<a>``...) is joined without a separator so
    punctuation after it stays attached.
    """
    out: list[str] = []
    _collect_text(node, out)
    return collapse_whitespace("".join(out))


def _collect_text(node: Tag, out: list[str]) -> None:
    for child in node.children:
        if isinstance(child, Tag):
            block = child.name in BLOCK_TAGS
            if block:
                out.append(" ")
            _collect_text(child, out)
            if block:
                out.append(" ")
        elif type(child) in (NavigableString, CData):
            out.append(str(child))


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def origin_of(url: str) -> str | None:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def host_of(url: str | None) -> str:
    if not url:
        return ""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def host_matches(host: str, domain: str) -> bool:
    """True when ``host`` is ``domain`` or one of its subdomains."""
    return host == domain or host.endswith("." + domain)


def youtube_video_id(link: str | None) -> str | None:
    """Extract the video id from a YouTube watch, shorts, embed or youtu.be URL."""
    if not link:
        return None
    try:
        parts = urlsplit(link)
    except ValueError:
        return None
    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    segments = [s for s in parts.path.split("/") if s]
    candidate: str | None = None
    if host == "youtu.be":
        candidate = segments[0] if segments else None
    elif host in YOUTUBE_HOSTS or host.endswith("youtube-nocookie.com"):
        if segments[:1] == ["watch"]:
            candidate = (parse_qs(parts.query).get("v") or [None])[0]
        elif len(segments) >= 2 and segments[0] in ("shorts", "embed", "v", "live"):
            candidate = segments[1]
    if candidate and _YT_ID_RE.match(candidate):
        return candidate
    return None


def youtube_thumbnail(link: str | None) -> str | None:
    video_id = youtube_video_id(link)
    if not video_id:
        return None
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


def is_youtube_short(link: str | None) -> bool:
    """True when any path segment of the link is ``shorts``."""
    if not link:
        return False
    try:
        path = urlsplit(link).path
    except ValueError:
        return False
    return "shorts" in [s.lower() for s in path.split("/") if s]


def has_shorts_marker(title: str | None, snippet: str | None) -> bool:
    text = f"{title or ''} {snippet or ''}".lower()
    return bool(_SHORTS_MARKER_RE.search(text))


def is_youtube_feed(url: str | None) -> bool:
    host = host_of(url)
    if host.startswith("www."):
        host = host[4:]
    return "youtube." in host or "ytimg." in host or "/feeds/videos.xml" in (url or "")


def is_youtube_video(link: str | None) -> bool:
    """True for a regular (non-Shorts) YouTube video link."""
    host = host_of(link)
    if host.startswith("www."):
        host = host[4:]
    if host not in ("youtube.com", "youtu.be", "m.youtube.com") and not host.endswith(
        "youtube-nocookie.com"
    ):
        return False
    return not is_youtube_short(link)
