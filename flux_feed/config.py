"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- FetchConfig: HTTP client settings shared by every network call
- ParseConfig: Fast/full parse profiles and snippet rules
- CacheConfig: Feed cache freshness and stale-fallback windows
- DiscoverConfig: Feed discovery budget and conventional paths
- AggregateConfig: Batch merge settings
- DigestConfig: "Today" digest selection and time budgets
- UnsplashConfig: Stock-image search fallback
- ExtractConfig: Article text extraction chain
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import os
from typing import Any

import yaml


DEFAULT_FEED_PATHS = [
    "/feed",
    "/rss",
    "/rss.xml",
    "/feed.xml",
    "/atom.xml",
    "/index.xml",
    "/feeds",
    "/posts.rss",
    "/blog/feed",
    "/blog/rss.xml",
    "/blog/atom.xml",
    "/news/feed",
    "/news/rss.xml",
    "/press/rss.xml",
    "/newsroom/rss-feed.rss",
]


@dataclass
class FetchConfig:
    """Configuration for outbound HTTP requests.

    Attributes:
        user_agent: User-Agent header sent with every request
        trust_env: Whether to respect system proxy settings
        page_timeout_seconds: Timeout for article page metadata fetches
        article_timeout_seconds: Timeout for reader-view article fetches
    """

    user_agent: str = "FluxRSS/1.0"
    trust_env: bool = True
    page_timeout_seconds: float = 3.5
    article_timeout_seconds: float = 7.0


@dataclass
class ParseConfig:
    """Configuration for the fast and full parse profiles.

    Attributes:
        fast_max_items: Item cap in fast mode
        fast_timeout_ms: Feed fetch timeout in fast mode
        fast_enrich_og: Whether fast mode fetches article pages for metadata
        full_max_items: Item cap in full mode
        full_timeout_ms: Feed fetch timeout in full mode
        full_enrich_og: Whether full mode fetches article pages for metadata
        snippet_max_chars: Cap for snippets stripped from item content
        enriched_snippet_max_chars: Cap for snippets taken from the article page
        short_snippet_chars: Snippets shorter than this trigger page enrichment
        low_quality_hosts: Hosts whose feed descriptions are always enriched
    """

    fast_max_items: int = 20
    fast_timeout_ms: int = 4000
    fast_enrich_og: bool = False
    full_max_items: int = 60
    full_timeout_ms: int = 10000
    full_enrich_og: bool = True
    snippet_max_chars: int = 240
    enriched_snippet_max_chars: int = 280
    short_snippet_chars: int = 30
    low_quality_hosts: list[str] = field(default_factory=lambda: ["producthunt.com"])


@dataclass
class CacheConfig:
    """Configuration for the in-process feed cache.

    Attributes:
        ttl_fresh_seconds: Entries younger than this are served without fetching
        ttl_stale_seconds: Entries younger than this are served when a fetch fails
        single_flight: Share one in-flight fetch between identical concurrent calls
    """

    ttl_fresh_seconds: float = 30 * 60
    ttl_stale_seconds: float = 6 * 60 * 60
    single_flight: bool = False


@dataclass
class DiscoverConfig:
    """Configuration for feed discovery.

    Attributes:
        budget_ms: Overall time budget for one discovery call
        min_attempt_ms: Floor for the per-candidate wait
        max_attempt_ms: Ceiling for each feed fetch and each page scrape
        max_items: Item cap used when validating a candidate
        feed_paths: Conventional feed paths tried on the page origin
    """

    budget_ms: int = 20000
    min_attempt_ms: int = 3000
    max_attempt_ms: int = 5000
    max_items: int = 40
    feed_paths: list[str] = field(default_factory=lambda: list(DEFAULT_FEED_PATHS))


@dataclass
class AggregateConfig:
    """Configuration for batch aggregation.

    Attributes:
        max_items: Item cap per feed
        timeout_ms: Feed fetch timeout per feed
        exclude_shorts: Drop short-form video items from the merge
    """

    max_items: int = 60
    timeout_ms: int = 5000
    exclude_shorts: bool = False


@dataclass
class DigestConfig:
    """Configuration for the daily digest.

    Attributes:
        fast_max_feeds: Feeds scanned in fast mode
        full_max_feeds: Feeds scanned in full mode
        chunk_size: Feeds fetched concurrently per batch
        fast_budget_ms: Wall-clock budget in fast mode
        full_budget_ms: Wall-clock budget in full mode
        feed_max_items: Item cap per feed parse
        feed_timeout_ms: Feed fetch timeout per feed parse
        per_feed_cap: Items kept per feed while scanning
        scan_cap: Stop scanning feeds once this many items are collected
        max_items: Size of the final selection
        max_youtube: Videos allowed in the final selection
        window_hours: Default look-back window
        fallback_hours: Wider window used to fill a thin day
        snippet_max_chars: Snippet cap for digest entries
        fast_backfill_limit: Items whose images are backfilled in fast mode
        backfill_timeout_ms: Page fetch timeout for the first backfill pass
        hero_timeout_ms: Page fetch timeout for the hero-image pass
        title_similarity_threshold: Fuzzy title dedup threshold (100 = exact)
    """

    fast_max_feeds: int = 16
    full_max_feeds: int = 30
    chunk_size: int = 3
    fast_budget_ms: int = 3500
    full_budget_ms: int = 8000
    feed_max_items: int = 40
    feed_timeout_ms: int = 4000
    per_feed_cap: int = 50
    scan_cap: int = 200
    max_items: int = 24
    max_youtube: int = 4
    window_hours: int = 24
    fallback_hours: int = 72
    snippet_max_chars: int = 420
    fast_backfill_limit: int = 12
    backfill_timeout_ms: int = 1200
    hero_timeout_ms: int = 3000
    title_similarity_threshold: int = 100


@dataclass
class UnsplashConfig:
    """Configuration for the stock-image fallback.

    Attributes:
        api_key: Inline access key (overrides the environment variable)
        api_key_env: Environment variable containing the access key
        base_url: Search endpoint base URL
        per_page: Results requested per search
        timeout_seconds: Search request timeout
    """

    api_key: str | None = None
    api_key_env: str = "UNSPLASH_ACCESS_KEY"
    base_url: str = "https://api.unsplash.com"
    per_page: int = 12
    timeout_seconds: float = 12.0


@dataclass
class ExtractConfig:
    """Configuration for article text extraction.

    Attributes:
        primary: First extraction method ("heuristic", "trafilatura", "readability", "bs4")
        fallback: Methods tried in order when the primary yields nothing
        min_text_chars: Container text shorter than this triggers block scoring
    """

    primary: str = "heuristic"
    fallback: list[str] = field(default_factory=lambda: ["trafilatura", "readability", "bs4"])
    min_text_chars: int = 300


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the log file
    """

    level: str = "INFO"
    console: bool = True
    file: bool = False
    format: str = "jsonl"
    filename: str = "flux-feed.jsonl"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    fetch: FetchConfig = field(default_factory=FetchConfig)
    parse: ParseConfig = field(default_factory=ParseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    discover: DiscoverConfig = field(default_factory=DiscoverConfig)
    aggregate: AggregateConfig = field(default_factory=AggregateConfig)
    digest: DigestConfig = field(default_factory=DigestConfig)
    unsplash: UnsplashConfig = field(default_factory=UnsplashConfig)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig.

    Unknown sections and unknown keys inside a section are ignored.
    """
    data = asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            known = {k: v for k, v in value.items() if k in data[key]}
            data[key].update(known)
    return _fromdict(data)


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    return AppConfig(
        fetch=FetchConfig(**data["fetch"]),
        parse=ParseConfig(**data["parse"]),
        cache=CacheConfig(**data["cache"]),
        discover=DiscoverConfig(**data["discover"]),
        aggregate=AggregateConfig(**data["aggregate"]),
        digest=DigestConfig(**data["digest"]),
        unsplash=UnsplashConfig(**data["unsplash"]),
        extract=ExtractConfig(**data["extract"]),
        logging=LoggingConfig(**data["logging"]),
    )


def get_unsplash_key(cfg: UnsplashConfig) -> str | None:
    """Get the Unsplash key from inline config or environment variable."""
    if cfg.api_key:
        return cfg.api_key
    return os.getenv(cfg.api_key_env) or None
