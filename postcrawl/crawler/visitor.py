"""Channel visitor: the per-page step of a crawl.

Visiting a page resolves the channel, walks its message history newest first,
runs every message through the extractor and collects the channels the
messages point at. Those become outlinks for the next layer.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Iterator
from typing import TypeVar

from postcrawl.config import CrawlerSettings, get_settings
from postcrawl.crawler.base import BasePlatformClient, Message, TextContent
from postcrawl.crawler.extractor import ContentExtractor
from postcrawl.jobs.common.base import CrawlStats
from postcrawl.models.frontier import Page

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Public channel links, e.g. t.me/durov, https://t.me/s/durov/123
CHANNEL_LINK_PATTERN = re.compile(r"(?:https?://)?t\.me/(?:s/)?([A-Za-z][A-Za-z0-9_]{3,31})")

# Path prefixes on t.me that are not channels
RESERVED_PATHS = frozenset({
    "joinchat", "addstickers", "addemoji", "addlist", "share", "proxy", "socks", "login", "boost",
})


def _message_text(message: Message) -> str:
    content = message.content
    if isinstance(content, TextContent):
        return content.text
    return getattr(content, "caption", "") or ""


def discover_outlinks(message: Message) -> Iterator[str]:
    """Yield channel identifiers a message refers to, in order of appearance."""
    if message.forward_from:
        yield message.forward_from
    for match in CHANNEL_LINK_PATTERN.finditer(_message_text(message)):
        name = match.group(1)
        if name.lower() not in RESERVED_PATHS:
            yield name


class ChannelVisitor:
    """Visits one frontier page and returns its outlinks.

    The instance is the ``visit`` callable handed to the orchestrator.
    Extraction failures are not caught here: the page is marked errored and
    revisited on the next run.
    """

    def __init__(
        self,
        client: BasePlatformClient,
        extractor: ContentExtractor,
        crawl_id: str,
        settings: CrawlerSettings | None = None,
        stats: CrawlStats | None = None,
    ):
        self.client = client
        self.extractor = extractor
        self.crawl_id = crawl_id
        self.settings = settings or get_settings().crawler
        self.stats = stats or CrawlStats(crawl_id=crawl_id)

    async def _call(self, aw: Awaitable[T]) -> T:
        return await asyncio.wait_for(aw, timeout=self.settings.call_timeout)

    async def __call__(self, page: Page) -> list[Page]:
        return await self.visit(page)

    async def visit(self, page: Page) -> list[Page]:
        context, channel_stats = await self._call(self.client.resolve_channel(page.url))
        own_names = {page.url, context.username}
        limit = self.settings.max_messages_per_channel
        cutoff_year = self.settings.cutoff_year

        outlinks: dict[str, Page] = {}
        processed = 0
        from_message_id = 0

        while True:
            batch = await self._call(
                self.client.fetch_messages(
                    context.chat_id,
                    from_message_id=from_message_id,
                    limit=self.settings.message_batch_size,
                )
            )
            if not batch:
                break

            reached_cutoff = True
            for message in batch:
                if limit and processed >= limit:
                    break
                post = await self.extractor.extract(self.crawl_id, message, context, channel_stats)
                processed += 1
                self.stats.messages_processed += 1
                if post.is_empty:
                    self.stats.posts_filtered += 1
                else:
                    self.stats.posts_extracted += 1
                if message.published_at.year >= cutoff_year:
                    reached_cutoff = False

                for identifier in discover_outlinks(message):
                    if identifier not in own_names:
                        outlinks[identifier] = Page(url=identifier, parent_url=page.url)

            if limit and processed >= limit:
                break
            if reached_cutoff:
                logger.debug("Reached cutoff year in %s history", page.url)
                break

            oldest_id = min(message.id for message in batch)
            if from_message_id and oldest_id >= from_message_id:
                logger.warning("History of %s did not advance past message %d", page.url, from_message_id)
                break
            from_message_id = oldest_id

        logger.info(
            "Visited %s: %d messages, %d outlinks", page.url, processed, len(outlinks)
        )
        return list(outlinks.values())
