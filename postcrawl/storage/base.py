"""Storage collaborators consumed by the crawler core.

Both are treated as externally synchronized: the crawler calls them from a
single control flow and never races against them.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from postcrawl.models.frontier import Frontier
from postcrawl.models.post import Post


class BlobSink(ABC):
    """Durable storage target for media files."""

    @abstractmethod
    async def upload_and_delete(
        self,
        crawl_id: str,
        channel_name: str,
        source_link: str,
        local_path: str,
    ) -> str:
        """Store a local file durably and delete the local copy.

        Content is keyed by ``(crawl_id, channel_name, source_link)``.

        Returns:
            Reference to the stored blob (never a local filesystem path).

        Raises:
            BlobUploadError: If the file could not be stored. The local
                file's fate is unspecified in that case.
        """


class FrontierStore(ABC):
    """Persistence for the crawl frontier and extracted records."""

    crawl_id: str

    @abstractmethod
    async def load_or_seed(self, seeds: Sequence[str]) -> Frontier:
        """Load the stored frontier for this crawl, or seed a new one.

        Seeds are ignored when state already exists.
        """

    @abstractmethod
    async def save_layers(self, frontier: Frontier) -> None:
        """Persist a full snapshot of the frontier.

        Raises:
            StoreError: If the snapshot could not be written.
        """

    @abstractmethod
    async def store_record(self, crawl_id: str, channel_name: str, post: Post) -> None:
        """Persist one extracted post. Storing the same ``post_uid`` again overwrites it.

        Raises:
            StoreError: If the record could not be written.
        """
