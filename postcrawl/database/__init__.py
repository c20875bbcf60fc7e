from postcrawl.database.models import (
    Base,
    CrawlPage,
    Database,
    PostRecord,
)

__all__ = [
    "Base",
    "CrawlPage",
    "Database",
    "PostRecord",
]
