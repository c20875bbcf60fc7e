"""Shared fakes and fixtures.

The fakes implement the same abstract collaborators the real code does, so
tests drive the crawler through its public seams without a network or disk
database.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

import pytest

from postcrawl.config import CrawlerSettings
from postcrawl.crawler.base import (
    BasePlatformClient,
    ChannelContext,
    ChannelStats,
    Message,
    RemoteFile,
)
from postcrawl.crawler.errors import (
    BlobUploadError,
    ContentNotFoundError,
    PlatformError,
    RemoteFileError,
    StoreError,
)
from postcrawl.crawler.extractor import ContentExtractor
from postcrawl.models.frontier import Frontier
from postcrawl.models.post import Comment, Post
from postcrawl.storage.base import BlobSink, FrontierStore

CRAWL_ID = "20240101000000"


def ts(year: int, month: int = 1, day: int = 1) -> int:
    return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp())


def make_message(
    message_id: int,
    content: Optional[dict[str, Any]] = None,
    *,
    chat_id: int = 100,
    year: int = 2024,
    forward_from: Optional[str] = None,
    reply_count: int = 0,
    reactions: Optional[list[Any]] = None,
    edit_date: int = 0,
) -> Message:
    return Message.model_validate(
        {
            "id": message_id,
            "chat_id": chat_id,
            "date": ts(year),
            "edit_date": edit_date,
            "content": content or {"kind": "text", "text": f"message {message_id}"},
            "interaction_info": {
                "view_count": 0,
                "reply_info": {"reply_count": reply_count},
                "reactions": reactions or [],
            },
            "forward_from": forward_from,
        }
    )


class FakePlatformClient(BasePlatformClient):
    """In-memory platform with scripted channels, history and files."""

    platform = "fake"

    def __init__(self, download_dir: Optional[Path] = None):
        self.download_dir = Path(download_dir) if download_dir else None
        self.channels: dict[str, ChannelContext] = {}
        self.channel_stats: dict[str, ChannelStats] = {}
        self.history: dict[int, list[Message]] = {}
        self.comments: dict[int, list[Comment]] = {}
        self.files: dict[str, bytes] = {}
        self.links: dict[int, str] = {}
        self._file_ids: list[str] = []

        self.fail_links = False
        self.fail_comments = False
        self.fail_shares = False
        self.fail_files: set[str] = set()

        self.connected = False
        self.calls: list[str] = []

    def add_channel(
        self,
        username: str,
        messages: Sequence[Message] = (),
        *,
        title: str = "",
        stats: Optional[ChannelStats] = None,
    ) -> int:
        chat_id = 1000 + len(self.channels)
        self.channels[username] = ChannelContext(chat_id=chat_id, username=username, title=title or username)
        self.channel_stats[username] = stats or ChannelStats(member_count=10, post_count=len(messages))
        self.history[chat_id] = sorted(
            (m.model_copy(update={"chat_id": chat_id}) for m in messages),
            key=lambda m: m.id,
            reverse=True,
        )
        return chat_id

    def _username(self, chat_id: int) -> str:
        for username, context in self.channels.items():
            if context.chat_id == chat_id:
                return username
        return "unknown"

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def get_me(self) -> dict[str, Any]:
        return {"id": 1, "username": "tester"}

    async def resolve_channel(self, identifier: str) -> tuple[ChannelContext, ChannelStats]:
        self.calls.append(f"resolve:{identifier}")
        if identifier not in self.channels:
            raise ContentNotFoundError(f"No channel {identifier}")
        return self.channels[identifier], self.channel_stats[identifier]

    async def fetch_messages(self, chat_id: int, from_message_id: int = 0, limit: int = 100) -> list[Message]:
        self.calls.append(f"messages:{chat_id}:{from_message_id}")
        history = self.history.get(chat_id, [])
        if from_message_id:
            history = [m for m in history if m.id < from_message_id]
        return history[:limit]

    async def fetch_message_link(self, chat_id: int, message_id: int) -> str:
        self.calls.append(f"link:{message_id}")
        if self.fail_links:
            raise RuntimeError("link service exploded")
        if message_id in self.links:
            return self.links[message_id]
        return f"https://t.me/{self._username(chat_id)}/{message_id}"

    async def fetch_comments(self, chat_id: int, message_id: int) -> list[Comment]:
        if self.fail_comments:
            raise RuntimeError("comment thread exploded")
        return self.comments.get(message_id, [])

    async def fetch_view_count(self, chat_id: int, message_id: int) -> int:
        return 7

    async def fetch_share_count(self, chat_id: int, message_id: int) -> int:
        if self.fail_shares:
            raise PlatformError("shares unavailable")
        return 3

    async def fetch_remote_file(self, remote_id: str) -> RemoteFile:
        if remote_id not in self.files or remote_id in self.fail_files:
            raise RemoteFileError(f"No file {remote_id}")
        self._file_ids.append(remote_id)
        return RemoteFile(id=len(self._file_ids), remote_id=remote_id, size=len(self.files[remote_id]))

    async def download_file(self, file_id: int) -> str:
        remote_id = self._file_ids[file_id - 1]
        self.download_dir.mkdir(parents=True, exist_ok=True)
        path = self.download_dir / f"{remote_id}.bin"
        path.write_bytes(self.files[remote_id])
        return str(path)


class MemoryStore(FrontierStore):
    """Frontier store that keeps deep-copied snapshots in memory."""

    def __init__(self, crawl_id: str = CRAWL_ID, frontier: Optional[Frontier] = None):
        self.crawl_id = crawl_id
        self.frontier = frontier
        self.snapshots: list[Frontier] = []
        self.records: dict[tuple[str, str], Post] = {}
        self.fail_saves = 0
        self.fail_records = False

    async def load_or_seed(self, seeds: Sequence[str]) -> Frontier:
        if self.frontier is None:
            return Frontier.from_seeds(seeds)
        frontier = self.frontier.model_copy(deep=True)
        frontier.rebuild_seen()
        return frontier

    async def save_layers(self, frontier: Frontier) -> None:
        if self.fail_saves:
            self.fail_saves -= 1
            raise StoreError("disk full")
        self.frontier = frontier.model_copy(deep=True)
        self.snapshots.append(self.frontier)

    async def store_record(self, crawl_id: str, channel_name: str, post: Post) -> None:
        if self.fail_records:
            raise StoreError("database locked")
        self.records[(crawl_id, post.post_uid)] = post


class MemorySink(BlobSink):
    """Blob sink that reads files into memory and deletes them."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.fail = False

    async def upload_and_delete(self, crawl_id: str, channel_name: str, source_link: str, local_path: str) -> str:
        if self.fail:
            raise BlobUploadError("bucket unavailable")
        path = Path(local_path)
        reference = f"mem://{crawl_id}/{channel_name}/{len(self.blobs)}/{path.name}"
        self.blobs[reference] = path.read_bytes()
        path.unlink()
        return reference


@pytest.fixture
def settings(tmp_path):
    return CrawlerSettings(
        storage_root=str(tmp_path / "data"),
        db_path=str(tmp_path / "data" / "crawl.db"),
        media_dir=str(tmp_path / "data" / "media"),
        download_dir=str(tmp_path / "downloads"),
        call_timeout=5.0,
        bootstrap_timeout=5.0,
        max_retries=0,
        retry_delay=0.0,
        language_code="en",
    )


@pytest.fixture
def client(tmp_path):
    return FakePlatformClient(download_dir=tmp_path / "downloads")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def extractor(client, sink, store, settings):
    return ContentExtractor(client, sink, store, settings)
