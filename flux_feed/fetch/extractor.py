"""
Readable-content extraction from article pages.

extract_article() is the reader heuristic:
1. Strip non-content elements
2. Take the first likely content container (article, main, CMS classes)
3. If its text is too short, score block-level elements by
   text length x (1 - link density) + a bounded heading bonus
4. Collapse whitespace; optionally sanitize the chosen block to an
   allow-list of tags and attributes with absolute img/a targets

extract_text() keeps a chain of extraction methods for plain-text callers:
1. heuristic: extract_article() above (default)
2. trafilatura: purpose-built main-content extraction
3. readability: Mozilla's readability algorithm
4. bs4: BeautifulSoup plain text extraction (last resort)
"""

from __future__ import annotations

from typing import Callable

from bs4 import BeautifulSoup, Tag
from readability import Document
import trafilatura

from ..html_utils import collapse_whitespace, resolve_url, visible_text
from ..types import ExtractedPage


NOISE_TAGS = ("script", "style", "nav", "header", "footer", "aside", "form", "noscript", "svg", "iframe")
CONTAINER_SELECTORS = (
    "article",
    "main",
    "[role=main]",
    "#content, .content, #main, .main, .post, .article, .entry-content, .article-content, [itemprop='articleBody']",
)
BLOCK_SELECTOR = "article, main, section, div"

# Block scoring weights
MIN_BLOCK_CHARS = 200
MAX_LINK_DENSITY = 0.9
MAX_HEADING_BONUS = 200

ALLOWED_TAGS = {
    "p", "h1", "h2", "h3", "ul", "ol", "li", "strong", "em", "a", "blockquote",
    "img", "figure", "figcaption", "code", "pre", "hr",
}
ALLOWED_ATTRS = {"href", "src", "alt", "title", "target", "rel"}


def score_block(text_len: int, link_text_len: int, heading_len: int) -> float:
    """Readability score of a block.

    Link density is capped at 0.9 so link-heavy blocks keep a small score;
    the heading bonus is capped at 200 characters.
    """
    if text_len <= 0:
        return 0.0
    density = min(MAX_LINK_DENSITY, link_text_len / text_len)
    return text_len * (1 - density) + min(MAX_HEADING_BONUS, heading_len)


def _joined_text(node: Tag, selector: str) -> str:
    return " ".join(el.get_text() for el in node.select(selector))


def best_container(soup: BeautifulSoup) -> tuple[Tag | None, str]:
    """First container selector that matches non-empty text, in priority order."""
    for selector in CONTAINER_SELECTORS:
        el = soup.select_one(selector)
        if el is None:
            continue
        text = visible_text(el)
        if text:
            return el, text
    return None, ""


def best_scored_block(soup: BeautifulSoup) -> tuple[Tag | None, str]:
    """Highest-scoring block by paragraph/list text; blocks under 200 chars are ignored."""
    top: Tag | None = None
    top_text = ""
    top_score = 0.0
    for el in soup.select(BLOCK_SELECTOR):
        text = _joined_text(el, "p, li").strip()
        if len(text) < MIN_BLOCK_CHARS:
            continue
        score = score_block(len(text), len(_joined_text(el, "a")), len(_joined_text(el, "h1, h2")))
        if score > top_score:
            top, top_text, top_score = el, text, score
    return top, collapse_whitespace(top_text)


def _longest_paragraph_parent(soup: BeautifulSoup) -> Tag | None:
    longest: Tag | None = None
    longest_len = 0
    for p in soup.find_all("p"):
        size = len(p.get_text().strip())
        if size > longest_len:
            longest, longest_len = p, size
    if longest is not None and isinstance(longest.parent, Tag):
        return longest.parent
    return soup.body


def page_title(soup: BeautifulSoup) -> str | None:
    og = soup.select_one("meta[property='og:title']")
    if og is not None and (og.get("content") or "").strip():
        return og["content"].strip()
    if soup.title is not None:
        title = collapse_whitespace(soup.title.get_text())
        return title or None
    return None


def published_date(soup: BeautifulSoup) -> str | None:
    meta = soup.select_one("meta[property='article:published_time']")
    if meta is not None and (meta.get("content") or "").strip():
        return meta["content"].strip()
    time_el = soup.select_one("time[datetime]")
    if time_el is not None:
        return (time_el.get("datetime") or "").strip() or None
    return None


def sanitize_html(node: Tag, page_url: str) -> str:
    """Render the inner HTML of a block keeping only allow-listed tags and attributes.

    Disallowed tags are unwrapped (their children stay); img/a targets become
    absolute.
    """
    fragment = BeautifulSoup(node.decode_contents(), "html.parser")
    for tag in fragment.find_all(True):
        if tag.name == "img" and tag.get("src"):
            tag["src"] = resolve_url(tag["src"], page_url)
        elif tag.name == "a" and tag.get("href"):
            tag["href"] = resolve_url(tag["href"], page_url)

    # Children before parents
    for tag in reversed(fragment.find_all(True)):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        for attr in list(tag.attrs):
            if attr not in ALLOWED_ATTRS:
                del tag[attr]
    return str(fragment).strip()


def extract_article(html: str, page_url: str, sanitize: bool = False, min_text_chars: int = 300) -> ExtractedPage:
    """Extract readable body content from an HTML page.

    Args:
        html: Page HTML
        page_url: URL the page was fetched from, for absolute links
        sanitize: Also return allow-listed HTML of the chosen block
        min_text_chars: Container text shorter than this triggers block scoring

    Returns:
        ExtractedPage with collapsed text, title and date when found
    """
    soup = BeautifulSoup(html or "", "html.parser")
    title = page_title(soup)
    date = published_date(soup)
    for tag in soup(list(NOISE_TAGS)):
        tag.decompose()

    node, text = best_container(soup)
    strategy = "container" if node is not None else "none"
    if len(text) < min_text_chars:
        block, block_text = best_scored_block(soup)
        if block is not None:
            node, text, strategy = block, block_text, "scored"
    if node is None:
        node = _longest_paragraph_parent(soup)
        if node is not None:
            text = visible_text(node)
            strategy = "paragraph"

    body = sanitize_html(node, page_url) if sanitize and node is not None else None
    return ExtractedPage(text=text, title=title, html=body, date=date, meta={"strategy": strategy})


def extract_text(html: str, primary: str, fallback: list[str]) -> str | None:
    """Extract plain text from HTML using a chain of extractors.

    Tries each extraction method in order until one produces non-empty
    output.

    Args:
        html: The HTML content to extract text from
        primary: Name of the primary extraction method to try first
        fallback: List of fallback method names to try if primary fails

    Returns:
        Extracted plain text with leading/trailing whitespace stripped,
        or None if all methods fail

    Examples:
        >>> extract_text(html, "heuristic", ["trafilatura", "bs4"])
        "Article content here..."
    """
    order = [primary] + [name for name in fallback if name != primary]
    for method in order:
        extractor = _get_extractor(method)
        if not extractor:
            continue
        text = extractor(html)
        if text:
            return text.strip()
    return None


def _get_extractor(name: str) -> Callable[[str], str | None] | None:
    if name == "heuristic":
        return _extract_heuristic
    if name == "trafilatura":
        return _extract_trafilatura
    if name == "readability":
        return _extract_readability
    if name == "bs4":
        return _extract_bs4
    return None


def _extract_heuristic(html: str) -> str | None:
    return extract_article(html, "").text or None


def _extract_trafilatura(html: str) -> str | None:
    return trafilatura.extract(html)


def _extract_readability(html: str) -> str | None:
    """Readability returns simplified HTML; bs4 turns it into text."""
    doc = Document(html)
    return _extract_bs4(doc.summary())


def _extract_bs4(html: str) -> str | None:
    """Plain text with script/style removed, non-empty lines only."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text(separator="\n")
    cleaned = "\n".join([line.strip() for line in text.splitlines() if line.strip()])
    return cleaned if cleaned else None
