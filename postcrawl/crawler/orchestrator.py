"""Layered breadth-first crawl with a checkpoint after every page.

Layer ``d + 1`` is built from the outlinks of layer ``d``. While a layer is
being visited its discoveries are staged, not appended, so the pass works on
a fixed list; they are published into the next layer once the pass ends. Each
checkpoint writes the frontier with the staged pages included, so a crash
mid-layer loses no discoveries.

Pages whose status is not ``fetched`` are visited, which includes pages that
errored on a previous run. A page is attempted at most once per run.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import datetime, timezone

from postcrawl.crawler.errors import StoreError
from postcrawl.jobs.common.base import CrawlStats
from postcrawl.models.frontier import Frontier, Page, PageStatus
from postcrawl.storage.base import FrontierStore

logger = logging.getLogger(__name__)

VisitFn = Callable[[Page], Awaitable[list[Page]]]


class CrawlOrchestrator:
    """Drives a crawl over the frontier held by ``store``.

    Usage:
        orchestrator = CrawlOrchestrator(store, visitor, shutdown_event=event)
        stats = await orchestrator.run(["durov"])
    """

    def __init__(
        self,
        store: FrontierStore,
        visit: VisitFn,
        *,
        shutdown_event: asyncio.Event | None = None,
        stats: CrawlStats | None = None,
    ):
        self.store = store
        self.visit = visit
        self.shutdown_event = shutdown_event
        self.stats = stats or CrawlStats(crawl_id=getattr(store, "crawl_id", ""))

    def _stopping(self) -> bool:
        return self.shutdown_event is not None and self.shutdown_event.is_set()

    async def run(self, seeds: Sequence[str]) -> CrawlStats:
        """Run the crawl until no unattempted, unfetched page remains or shutdown is requested."""
        stats = self.stats
        stats.started_at = datetime.now(timezone.utc)

        frontier = await self.store.load_or_seed(seeds)
        attempted: set[str] = set()

        depth = 0
        while depth < len(frontier.layers) and not self._stopping():
            layer = frontier.layers[depth]
            staged: dict[str, Page] = {}

            for page in list(layer.pages):
                if page.status == PageStatus.FETCHED or page.url in attempted:
                    continue
                if self._stopping():
                    break
                attempted.add(page.url)

                outlinks = await self._visit_page(page)
                self._stage(frontier, outlinks, staged)
                await self._checkpoint(frontier.with_staged(depth + 1, staged.values()))

            if staged:
                frontier.merge_into(depth + 1, staged.values())
                logger.info("Layer %d: %d new pages", depth + 1, len(staged))
            depth += 1

        stats.cancelled = self._stopping()
        stats.layers = len(frontier.layers)
        stats.completed_at = datetime.now(timezone.utc)
        if stats.cancelled:
            logger.info("Shutdown requested, stopped after %d pages", stats.pages_visited)
        return stats

    async def _visit_page(self, page: Page) -> list[Page]:
        """Visit one page, recording the outcome on the page itself."""
        page.timestamp = datetime.now(timezone.utc)
        self.stats.pages_visited += 1
        logger.info("Visiting %s", page.url)

        try:
            outlinks = await self.visit(page)
        except Exception as e:
            logger.error("Error visiting %s: %s", page.url, e, exc_info=True)
            page.status = PageStatus.ERROR
            self.stats.pages_errored += 1
            self.stats.errors.append(f"{page.url}: {e}")
            return []

        page.status = PageStatus.FETCHED
        self.stats.pages_fetched += 1
        return outlinks

    def _stage(self, frontier: Frontier, outlinks: Iterable[Page], staged: dict[str, Page]) -> None:
        """Stage outlinks not seen before. Within one batch the last page per identifier wins."""
        batch: dict[str, Page] = {}
        for page in outlinks:
            batch[page.url] = page

        for url, page in batch.items():
            if url in frontier.seen:
                continue
            frontier.seen.add(url)
            staged[url] = page
            self.stats.outlinks_discovered += 1

    async def _checkpoint(self, snapshot: Frontier) -> None:
        try:
            await self.store.save_layers(snapshot)
        except StoreError as e:
            logger.error("Checkpoint failed: %s", e)
            self.stats.checkpoints_failed += 1
            self.stats.errors.append(f"checkpoint: {e}")
            return
        self.stats.checkpoints_saved += 1
