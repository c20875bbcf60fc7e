"""Frontier model: layered crawl targets plus the set of every identifier seen.

Layer ``d`` holds the pages first discovered while visiting pages at depth
``d - 1`` (layer 0 holds the seeds). Layers are contiguous and created
lazily. No identifier appears in two layers, and ``seen`` is the union of
every identifier ever placed in a layer.
"""

from collections.abc import Iterable, Iterator
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class PageStatus(str, Enum):
    """Visit status of a frontier page."""

    UNVISITED = "unvisited"
    FETCHED = "fetched"
    ERROR = "error"


class Page(BaseModel):
    """One crawl target.

    Attributes:
        url: Opaque identifier (channel handle, URL, video id). Compared by exact string match.
        status: Result of the last visit attempt
        timestamp: Time of the last visit attempt
        parent_url: Page whose visit discovered this one (None for seeds)
    """

    url: str
    status: PageStatus = PageStatus.UNVISITED
    timestamp: datetime | None = None
    parent_url: str | None = None


class Layer(BaseModel):
    """All pages discovered at one BFS depth, in insertion order."""

    depth: int = Field(ge=0)
    pages: list[Page] = Field(default_factory=list)

    def merge(self, pages: Iterable[Page]) -> None:
        """Merge pages by identifier. Existing positions are kept, last write wins."""
        by_url = {p.url: p for p in self.pages}
        for page in pages:
            by_url[page.url] = page
        self.pages = list(by_url.values())


class Frontier(BaseModel):
    """The crawl's working state and durable checkpoint."""

    layers: list[Layer] = Field(default_factory=list)
    seen: set[str] = Field(default_factory=set)

    @classmethod
    def from_seeds(cls, seeds: Iterable[str]) -> "Frontier":
        """Build layer 0 from seeds. Repeated seeds collapse to one page."""
        frontier = cls()
        pages = []
        for url in seeds:
            if url in frontier.seen:
                continue
            frontier.seen.add(url)
            pages.append(Page(url=url))
        frontier.layers.append(Layer(depth=0, pages=pages))
        return frontier

    def layer_at(self, depth: int) -> Layer | None:
        if 0 <= depth < len(self.layers):
            return self.layers[depth]
        return None

    def merge_into(self, depth: int, pages: Iterable[Page]) -> Layer:
        """Merge pages into the layer at ``depth``, creating it if it is the next one.

        Raises:
            ValueError: If creating the layer would leave a gap in depths.
        """
        layer = self.layer_at(depth)
        if layer is None:
            if depth != len(self.layers):
                raise ValueError(
                    f"Cannot create layer {depth}: frontier has {len(self.layers)} layers"
                )
            layer = Layer(depth=depth)
            self.layers.append(layer)
        layer.merge(pages)
        return layer

    def with_staged(self, depth: int, staged: Iterable[Page]) -> "Frontier":
        """Return a deep copy with ``staged`` pages merged into layer ``depth``."""
        staged = list(staged)
        snapshot = self.model_copy(deep=True)
        if staged:
            snapshot.merge_into(depth, [p.model_copy() for p in staged])
        return snapshot

    def rebuild_seen(self) -> None:
        """Recompute ``seen`` from the pages in every layer."""
        self.seen = {page.url for page in self.iter_pages()}

    def iter_pages(self) -> Iterator[Page]:
        for layer in self.layers:
            yield from layer.pages

    def count(self, status: PageStatus) -> int:
        return sum(1 for page in self.iter_pages() if page.status == status)

    @property
    def total_pages(self) -> int:
        return sum(len(layer.pages) for layer in self.layers)
