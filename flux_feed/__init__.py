"""
flux-feed - RSS/Atom ingestion, discovery and aggregation.

This package turns feed URLs into normalized, image-enriched articles,
finds feeds for arbitrary web pages, merges many feeds into one
chronological list and builds a time-windowed "today" digest.

Main entry point is the CLI via the `flux-feed` command.

Example:
    $ flux-feed parse https://example.com/feed.xml --fast
"""

__all__ = [
    "__version__",
    "AppConfig",
    "Article",
    "FeedAggregator",
    "FeedCache",
    "FeedDiscoverer",
    "FeedParser",
    "ParsedFeed",
    "ParseOptions",
    "build_pipeline",
    "load_config",
]
__version__ = "0.1.0"

from .aggregator import FeedAggregator
from .cache import FeedCache
from .config import AppConfig, load_config
from .discover import FeedDiscoverer
from .parser import FeedParser
from .runner import build_pipeline
from .types import Article, ParsedFeed, ParseOptions
