"""
Page fetching and readable-content extraction.

This package handles bounded HTTP fetching and article text extraction.
"""

from .fetcher import FetchResult, build_client, fetch_html, fetch_page_html, fetch_url
from .extractor import extract_article, extract_text

__all__ = [
    "FetchResult",
    "build_client",
    "fetch_html",
    "fetch_page_html",
    "fetch_url",
    "extract_article",
    "extract_text",
]
