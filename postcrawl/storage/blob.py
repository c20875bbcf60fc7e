"""Filesystem-backed blob sink.

Blobs live under ``<base_dir>/<crawl_id>/<channel_name>/<link digest>/<file name>``
and are referenced as ``blob://<crawl_id>/<channel_name>/<link digest>/<file name>``.
"""

import asyncio
import hashlib
import logging
import shutil
from pathlib import Path

from postcrawl.crawler.errors import BlobUploadError
from postcrawl.storage.base import BlobSink

logger = logging.getLogger(__name__)

BLOB_SCHEME = "blob://"


def _link_digest(source_link: str) -> str:
    return hashlib.sha256(source_link.encode("utf-8")).hexdigest()[:16]


def _safe_segment(value: str, fallback: str) -> str:
    cleaned = "".join(c if c.isalnum() or c in "-_." else "_" for c in value).strip(".")
    return cleaned or fallback


class FilesystemBlobSink(BlobSink):
    """Moves downloaded media into a durable directory tree.

    Moving (not copying) means the download directory never keeps a second
    copy: after a successful upload the sink holds the only one.
    """

    def __init__(self, base_dir: str = "data/media"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def blob_key(self, crawl_id: str, channel_name: str, source_link: str, file_name: str) -> str:
        return "/".join(
            [
                _safe_segment(crawl_id, "crawl"),
                _safe_segment(channel_name, "channel"),
                _link_digest(source_link),
                _safe_segment(file_name, "blob"),
            ]
        )

    def resolve(self, reference: str) -> Path:
        """Map a blob reference back to where the sink keeps it."""
        if not reference.startswith(BLOB_SCHEME):
            raise ValueError(f"Not a blob reference: {reference}")
        return self.base_dir / reference[len(BLOB_SCHEME):]

    async def upload_and_delete(
        self,
        crawl_id: str,
        channel_name: str,
        source_link: str,
        local_path: str,
    ) -> str:
        if not local_path:
            raise BlobUploadError("Empty local path")

        src = Path(local_path)
        if not src.is_file():
            raise BlobUploadError(f"Local file not found: {local_path}")

        key = self.blob_key(crawl_id, channel_name, source_link, src.name)
        dest = self.base_dir / key

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.move, str(src), str(dest))
        except OSError as e:
            raise BlobUploadError(f"Failed to store {local_path}: {e}") from e

        logger.debug("Stored blob %s (%d bytes)", key, dest.stat().st_size)
        return f"{BLOB_SCHEME}{key}"
