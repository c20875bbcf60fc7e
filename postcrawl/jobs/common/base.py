"""Configuration and statistics shared by crawl jobs."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


# =============================================================================
# Crawl Job - Configuration & Statistics
# =============================================================================

@dataclass
class CrawlJobConfig:
    """Configuration for one crawl run.

    Storage locations, timeouts and platform endpoints come from settings;
    this only holds what varies per invocation.
    """
    # Seeds (ignored when the crawl already has stored state)
    seeds: List[str] = field(default_factory=list)

    # Resume
    crawl_id: Optional[str] = None  # None = start a new crawl
    resume_latest: bool = False  # Pick the most recent stored crawl

    # Platform client (None = PlatformSettings.name)
    platform: Optional[str] = None

    # Housekeeping
    clear_downloads: bool = True  # Empty the temporary download dir first

    # Logging
    verbose: bool = True


@dataclass
class CrawlStats:
    """Statistics for a crawl run.

    Page counters are maintained by the orchestrator, message counters by the
    channel visitor.
    """
    crawl_id: str = ""
    pages_visited: int = 0
    pages_fetched: int = 0
    pages_errored: int = 0
    outlinks_discovered: int = 0
    layers: int = 0
    checkpoints_saved: int = 0
    checkpoints_failed: int = 0
    messages_processed: int = 0
    posts_extracted: int = 0
    posts_filtered: int = 0
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


def format_summary(stats: CrawlStats) -> str:
    """Render the end-of-job summary block."""
    lines = [
        "=" * 70,
        " CRAWL SUMMARY",
        "=" * 70,
        f"Crawl id: {stats.crawl_id}",
        f"Duration: {stats.duration_seconds:.1f} seconds",
        f"Layers: {stats.layers}",
        f"Pages visited: {stats.pages_visited} "
        f"(fetched {stats.pages_fetched}, errored {stats.pages_errored})",
        f"New pages discovered: {stats.outlinks_discovered}",
        f"Messages processed: {stats.messages_processed}",
        f"Posts extracted: {stats.posts_extracted} (filtered {stats.posts_filtered})",
        f"Checkpoints: {stats.checkpoints_saved} saved, {stats.checkpoints_failed} failed",
        f"Errors: {len(stats.errors)}",
    ]
    if stats.cancelled:
        lines.append("Stopped early: shutdown requested")
    lines.append("=" * 70)
    return "\n".join(lines)
