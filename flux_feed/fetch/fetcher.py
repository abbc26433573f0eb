"""
Async HTTP fetching for feeds and article pages.

Every request runs through a shared httpx.AsyncClient and is bounded by a
hard wall-clock timeout (asyncio.wait_for), so a fired timeout aborts only
that single request. There are no retries at this layer: callers fall back
to cache, to the next candidate, or to an absent field.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx

from ..config import FetchConfig
from ..errors import FetchError


@dataclass
class FetchResult:
    """Result of an HTTP fetch operation.

    Either content will be populated (success) or error will be populated
    (failure), but never both. status_code may be None for network-level
    failures.

    Attributes:
        url: The URL that was requested
        status_code: HTTP status code, or None if the request never got a response
        content: The raw response body, or None on error
        content_type: The response Content-Type header (lowercased)
        final_url: URL after redirects
        error: Error message if the fetch failed, None on success
    """

    url: str
    status_code: int | None
    content: bytes | None
    content_type: str = ""
    final_url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None

    @property
    def is_html(self) -> bool:
        return "html" in self.content_type

    @property
    def text(self) -> str:
        if self.content is None:
            return ""
        try:
            return self.content.decode(_charset(self.content_type) or "utf-8", errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")


def build_client(cfg: FetchConfig) -> httpx.AsyncClient:
    """Create the process-wide HTTP client."""
    return httpx.AsyncClient(
        headers={"User-Agent": cfg.user_agent},
        follow_redirects=True,
        trust_env=cfg.trust_env,
    )


async def fetch_url(
    client: httpx.AsyncClient,
    url: str,
    timeout: float,
    headers: dict[str, str] | None = None,
) -> FetchResult:
    """Fetch a URL with a hard timeout.

    Non-2xx responses are reported as failures with their status code.

    Args:
        client: Shared async HTTP client
        url: The URL to fetch
        timeout: Wall-clock timeout in seconds for the whole request
        headers: Extra request headers

    Returns:
        FetchResult with content on success or error message on failure
    """
    try:
        resp = await asyncio.wait_for(
            client.get(url, headers=headers, timeout=timeout), timeout=timeout
        )
    except asyncio.TimeoutError:
        return FetchResult(url=url, status_code=None, content=None, error="TimeoutError: request timed out")
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        return FetchResult(url=url, status_code=None, content=None, error=f"{type(exc).__name__}: {exc}")

    content_type = resp.headers.get("content-type", "").lower()
    if not resp.is_success:
        return FetchResult(
            url=url,
            status_code=resp.status_code,
            content=None,
            content_type=content_type,
            final_url=str(resp.url),
            error=f"HTTP {resp.status_code}",
        )
    return FetchResult(
        url=url,
        status_code=resp.status_code,
        content=resp.content,
        content_type=content_type,
        final_url=str(resp.url),
    )


async def fetch_html(client: httpx.AsyncClient, url: str, timeout: float) -> str | None:
    """Fetch a page for scraping; None unless the response is 2xx HTML."""
    result = await fetch_url(client, url, timeout)
    if not result.ok or not result.is_html:
        return None
    return result.text


async def fetch_page_html(client: httpx.AsyncClient, url: str, timeout: float) -> tuple[str, str]:
    """Fetch an HTML page, returning (html, final_url).

    Raises:
        FetchError: The page could not be fetched or is not HTML
    """
    result = await fetch_url(client, url, timeout)
    if not result.ok:
        raise FetchError(url, result.error or "empty response", result.status_code)
    if not result.is_html:
        raise FetchError(url, f"unsupported content type {result.content_type or 'unknown'}", result.status_code)
    return result.text, result.final_url or url


def _charset(content_type: str) -> str | None:
    for part in content_type.split(";"):
        part = part.strip()
        if part.startswith("charset="):
            return part.split("=", 1)[1].strip("\"' ") or None
    return None
