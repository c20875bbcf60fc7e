"""Crawl job: wires settings, platform client, storage and the crawl engine.

USAGE:
  # Start a new crawl
  python -m postcrawl --urls durov,telegram

  # Resume the most recent crawl
  python -m postcrawl --resume

The job raises for setup problems (no seeds, unknown client, bootstrap
failure) before any crawl work starts. Once the crawl runs, faults stay
inside the page they happened on.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from postcrawl.config import CrawlerSettings, get_settings
from postcrawl.crawler.base import BasePlatformClient
from postcrawl.crawler.errors import (
    BootstrapError,
    BootstrapTimeout,
    NoSeedsError,
    PlatformError,
)
from postcrawl.crawler.extractor import ContentExtractor
from postcrawl.crawler.orchestrator import CrawlOrchestrator
from postcrawl.crawler.registry import get_client, registered_clients
from postcrawl.crawler.visitor import ChannelVisitor
from postcrawl.database import Database
from postcrawl.jobs.common import CrawlJobConfig, CrawlStats, format_summary
from postcrawl.services import SqlFrontierStore
from postcrawl.storage import FilesystemBlobSink
from postcrawl.utils.seeds import clear_directory, generate_crawl_id

logger = logging.getLogger(__name__)


def create_client(name: Optional[str] = None) -> BasePlatformClient:
    """Instantiate the registered platform client ``name`` (default from settings)."""
    # Registers the built-in bridge client
    import postcrawl.crawler.bridge  # noqa: F401

    name = name or get_settings().platform.name
    client_class = get_client(name)
    if client_class is None:
        raise BootstrapError(
            f"Unknown platform client {name!r} (registered: {', '.join(registered_clients())})"
        )
    return client_class()


async def bootstrap_client(client: BasePlatformClient, settings: CrawlerSettings) -> None:
    """Connect the client within the bootstrap timeout.

    Raises:
        BootstrapTimeout: If the client did not come up in time.
        BootstrapError: If the platform rejected the connection.
    """
    try:
        await asyncio.wait_for(client.connect(), timeout=settings.bootstrap_timeout)
    except asyncio.TimeoutError as e:
        raise BootstrapTimeout(
            f"Platform client did not connect within {settings.bootstrap_timeout:.0f}s"
        ) from e
    except PlatformError as e:
        raise BootstrapError(f"Platform client failed to connect: {e}") from e


async def run_login(client: Optional[BasePlatformClient] = None) -> dict[str, Any]:
    """Bootstrap the platform session and return the authenticated account."""
    settings = get_settings().crawler
    client = client or create_client()
    try:
        await bootstrap_client(client, settings)
        me = await asyncio.wait_for(client.get_me(), timeout=settings.call_timeout)
    finally:
        await client.disconnect()
    logger.info(f"Login OK: {me}")
    return me


def resolve_crawl_id(config: CrawlJobConfig, db: Database) -> str:
    """Pick the crawl to run: an explicit id, the latest stored one, or a new one."""
    if config.crawl_id:
        return config.crawl_id
    if config.resume_latest:
        latest = SqlFrontierStore.latest_crawl_id(db)
        if latest:
            return latest
        logger.warning("No stored crawl to resume, starting a new one")
    return generate_crawl_id()


async def run_crawl_job(
    config: Optional[CrawlJobConfig] = None,
    *,
    client: Optional[BasePlatformClient] = None,
    shutdown_event: Optional[asyncio.Event] = None,
) -> CrawlStats:
    """Run one crawl to completion (or until shutdown) and return its statistics."""
    config = config or CrawlJobConfig()
    settings = get_settings().crawler

    resuming = bool(config.crawl_id) or config.resume_latest
    if not config.seeds and not resuming:
        raise NoSeedsError("No seeds given: pass --urls or --url-file")

    client = client or create_client(config.platform)

    settings.ensure_dirs()
    if config.clear_downloads:
        clear_directory(settings.download_dir)

    db = Database(settings.db_path)
    stats = CrawlStats()
    try:
        crawl_id = resolve_crawl_id(config, db)
        stats.crawl_id = crawl_id
        store = SqlFrontierStore(crawl_id, db)
        if not config.seeds and not store.has_state():
            raise NoSeedsError(f"No seeds given and no stored state for crawl {crawl_id}")
        await bootstrap_client(client, settings)

        if config.verbose:
            print("=" * 70)
            print(" CRAWL JOB")
            print("=" * 70)
            print(f"Crawl id: {crawl_id}")
            print(f"Seeds: {len(config.seeds)}")
            print(f"Cutoff year: {settings.cutoff_year}")
            print("=" * 70)

        sink = FilesystemBlobSink(settings.media_dir)
        extractor = ContentExtractor(client, sink, store, settings)
        visitor = ChannelVisitor(client, extractor, crawl_id, settings, stats=stats)
        orchestrator = CrawlOrchestrator(store, visitor, shutdown_event=shutdown_event, stats=stats)
        await orchestrator.run(config.seeds)
    finally:
        await client.disconnect()
        db.dispose()
        if stats.completed_at is None:
            stats.completed_at = datetime.now(timezone.utc)

    if config.verbose:
        print("\n" + format_summary(stats))

    return stats
