"""SQLite database models using SQLAlchemy.

Time field conventions:
- created_at: Record creation time (immutable)
- updated_at: Last modification time (auto-updated)
- timestamp: Last visit attempt of a frontier page
"""

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from postcrawl.models.frontier import Page, PageStatus
from postcrawl.models.post import Post


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class CrawlPage(Base):
    """One frontier page of a crawl.

    The seen set is not stored separately: every identifier ever seen is a
    page in some layer, so it is rebuilt from these rows on load.
    """

    __tablename__ = "crawl_pages"

    id = Column(Integer, primary_key=True)
    crawl_id = Column(String(32), nullable=False, index=True)

    depth = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)  # Insertion order within the layer

    url = Column(Text, nullable=False)
    status = Column(String(16), default=PageStatus.UNVISITED.value)  # unvisited/fetched/error
    timestamp = Column(DateTime(timezone=True))
    parent_url = Column(Text)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("crawl_id", "url", name="uq_crawl_page_url"),
    )

    def to_page(self) -> Page:
        return Page(
            url=self.url,
            status=PageStatus(self.status),
            timestamp=self.timestamp,
            parent_url=self.parent_url,
        )


class PostRecord(Base):
    """Extracted post.

    Core fields are native columns for filtering/querying.
    The full canonical record is kept as JSON in ``data``.
    """

    __tablename__ = "posts"

    id = Column(Integer, primary_key=True)
    crawl_id = Column(String(32), nullable=False, index=True)
    post_uid = Column(String(512), nullable=False, index=True)
    channel_name = Column(String(256), index=True)

    post_link = Column(Text)
    content_type = Column(String(32))
    published_at = Column(DateTime(timezone=True), index=True)

    view_count = Column(Integer, default=0)
    share_count = Column(Integer, default=0)
    comment_count = Column(Integer, default=0)

    data = Column(Text, nullable=False)  # Post as JSON

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Re-extracting a message overwrites its row within a crawl
    __table_args__ = (
        UniqueConstraint("crawl_id", "post_uid", name="uq_crawl_post_uid"),
    )

    def get_post(self) -> Post:
        return Post.model_validate_json(self.data)

    def set_post(self, post: Post) -> None:
        self.post_link = post.post_link
        self.content_type = post.post_type[0] if post.post_type else None
        self.published_at = post.published_at
        self.view_count = post.view_count
        self.share_count = post.share_count
        self.comment_count = post.comment_count
        self.data = post.model_dump_json()


class Database:
    """Database connection and session management."""

    def __init__(self, db_path: str = "data/crawl.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(f"sqlite:///{db_path}", echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def init_db(self):
        """Create all tables."""
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()
