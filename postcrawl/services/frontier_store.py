"""SQLAlchemy-backed frontier store.

One crawl is identified by its crawl id. The frontier is written as a full
snapshot on every checkpoint (delete + insert in one transaction), so a
crash mid-write leaves the previous snapshot intact.
"""

import logging
from collections.abc import Generator, Sequence
from contextlib import contextmanager

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from postcrawl.crawler.errors import StoreError
from postcrawl.database import CrawlPage, Database, PostRecord
from postcrawl.models.frontier import Frontier, Layer, PageStatus
from postcrawl.models.post import Post
from postcrawl.storage.base import FrontierStore

logger = logging.getLogger(__name__)


class SqlFrontierStore(FrontierStore):
    """Frontier and post persistence for a single crawl.

    Usage:
        store = SqlFrontierStore(crawl_id, Database("data/crawl.db"))
        frontier = await store.load_or_seed(["durov", "telegram"])
        ...
        await store.save_layers(frontier)
    """

    def __init__(self, crawl_id: str, db: Database):
        self.crawl_id = crawl_id
        self.db = db
        self.db.init_db()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Context manager for database transactions."""
        session = self.db.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def latest_crawl_id(db: Database) -> str | None:
        """Most recent crawl id with stored state (ids sort chronologically)."""
        db.init_db()
        with db.get_session() as session:
            return session.scalar(select(func.max(CrawlPage.crawl_id)))

    def has_state(self) -> bool:
        """Whether any frontier pages are stored for this crawl."""
        try:
            with self.db.get_session() as session:
                row = session.scalar(
                    select(CrawlPage.id).where(CrawlPage.crawl_id == self.crawl_id).limit(1)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to query crawl {self.crawl_id}: {e}") from e
        return row is not None

    async def load_or_seed(self, seeds: Sequence[str]) -> Frontier:
        try:
            with self.transaction() as session:
                rows = session.scalars(
                    select(CrawlPage)
                    .where(CrawlPage.crawl_id == self.crawl_id)
                    .order_by(CrawlPage.depth, CrawlPage.position)
                ).all()
                pages = [(row.depth, row.to_page()) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load frontier for crawl {self.crawl_id}: {e}") from e

        if not pages:
            frontier = Frontier.from_seeds(seeds)
            logger.info(f"Seeded crawl {self.crawl_id} with {frontier.total_pages} pages")
            await self.save_layers(frontier)
            return frontier

        max_depth = max(depth for depth, _ in pages)
        layers = [Layer(depth=d) for d in range(max_depth + 1)]
        for depth, page in pages:
            layers[depth].pages.append(page)

        frontier = Frontier(layers=layers)
        frontier.rebuild_seen()
        if seeds:
            logger.info(
                "Resuming crawl %s from stored state; ignoring %d given seeds",
                self.crawl_id, len(seeds),
            )
        logger.info(
            "Loaded crawl %s: %d layers, %d pages (%d fetched)",
            self.crawl_id, len(layers), frontier.total_pages,
            frontier.count(PageStatus.FETCHED),
        )
        return frontier

    async def save_layers(self, frontier: Frontier) -> None:
        try:
            with self.transaction() as session:
                session.query(CrawlPage).filter(CrawlPage.crawl_id == self.crawl_id).delete()
                for layer in frontier.layers:
                    for position, page in enumerate(layer.pages):
                        session.add(
                            CrawlPage(
                                crawl_id=self.crawl_id,
                                depth=layer.depth,
                                position=position,
                                url=page.url,
                                status=page.status.value,
                                timestamp=page.timestamp,
                                parent_url=page.parent_url,
                            )
                        )
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to save frontier for crawl {self.crawl_id}: {e}") from e

    async def store_record(self, crawl_id: str, channel_name: str, post: Post) -> None:
        if post.is_empty:
            raise StoreError("Refusing to store an empty post")

        try:
            with self.transaction() as session:
                record = session.scalar(
                    select(PostRecord)
                    .where(PostRecord.crawl_id == crawl_id)
                    .where(PostRecord.post_uid == post.post_uid)
                )
                if record is None:
                    record = PostRecord(crawl_id=crawl_id, post_uid=post.post_uid)
                    session.add(record)
                record.channel_name = channel_name
                record.set_post(post)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to store post {post.post_uid}: {e}") from e

    def get_records(self, crawl_id: str | None = None) -> list[Post]:
        """Return stored posts for a crawl (this store's crawl by default)."""
        crawl_id = crawl_id or self.crawl_id
        with self.transaction() as session:
            rows = session.scalars(
                select(PostRecord)
                .where(PostRecord.crawl_id == crawl_id)
                .order_by(PostRecord.id)
            ).all()
            return [row.get_post() for row in rows]
