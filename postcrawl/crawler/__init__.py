"""Crawl engine: platform client contract, content extraction, BFS orchestration."""

from postcrawl.crawler.base import BasePlatformClient, ChannelContext, ChannelStats, Message
from postcrawl.crawler.errors import CrawlerError, ExtractionError, PlatformError

__all__ = [
    "BasePlatformClient",
    "ChannelContext",
    "ChannelStats",
    "CrawlerError",
    "ExtractionError",
    "Message",
    "PlatformError",
]
