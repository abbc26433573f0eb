"""
Error taxonomy for the feed pipeline.

- FetchError: network, timeout or non-2xx response for a feed or page
- ParseError: body could not be read as RSS/Atom/XML feed
- NotFoundError: discovery exhausted every candidate without a feed

Enrichment failures (images, snippets, page metadata) never surface as
exceptions; they degrade the affected field to absent.
"""

from __future__ import annotations


class FluxError(Exception):
    """Base class for all pipeline errors."""


class FetchError(FluxError):
    def __init__(self, url: str, reason: str, status_code: int | None = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        detail = f"HTTP {status_code}: {reason}" if status_code is not None else reason
        super().__init__(f"Failed to fetch {url} ({detail})")


class ParseError(FluxError):
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to parse feed {url} ({reason})")


class NotFoundError(FluxError):
    def __init__(self, url: str, message: str = "no feed detected"):
        self.url = url
        super().__init__(message)
