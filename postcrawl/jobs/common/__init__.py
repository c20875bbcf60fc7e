"""Common configuration, statistics and log formatting for jobs."""

from .formatter import UTCFormatter
from .base import (
    CrawlJobConfig,
    CrawlStats,
    format_summary,
)

__all__ = [
    "UTCFormatter",
    "CrawlJobConfig",
    "CrawlStats",
    "format_summary",
]
