"""Seed list and crawl housekeeping helpers."""

import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import aiohttp

logger = logging.getLogger(__name__)

CRAWL_ID_FORMAT = "%Y%m%d%H%M%S"

SEED_DOWNLOAD_TIMEOUT = aiohttp.ClientTimeout(total=60)


def generate_crawl_id(now: datetime | None = None) -> str:
    """Return a 14-digit ``YYYYMMDDHHMMSS`` crawl id (UTC)."""
    now = now or datetime.now(timezone.utc)
    return now.strftime(CRAWL_ID_FORMAT)


def parse_seed_lines(text: str) -> list[str]:
    """Split seed text into identifiers. Blank lines and ``#`` comments are ignored."""
    seeds = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            seeds.append(line)
    return seeds


def read_seeds_from_file(path: str | Path) -> list[str]:
    """Read a newline-delimited seed file."""
    return parse_seed_lines(Path(path).read_text(encoding="utf-8"))


async def download_seed_file(url: str, dest_dir: str | Path | None = None) -> Path:
    """Download a seed list over http(s) into a local file and return its path.

    Raises:
        ValueError: If ``url`` is not an http(s) URL.
        aiohttp.ClientError: If the request fails or returns a non-200 status.
    """
    if not url.startswith(("http://", "https://")):
        raise ValueError(f"Not an http(s) URL: {url}")

    async with aiohttp.ClientSession(timeout=SEED_DOWNLOAD_TIMEOUT) as session:
        async with session.get(url) as resp:
            if resp.status != 200:
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message=f"Seed file download returned HTTP {resp.status}",
                )
            body = await resp.read()

    if dest_dir is not None:
        Path(dest_dir).mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix="seeds-", suffix=".txt", dir=dest_dir)
    with open(fd, "wb") as f:
        f.write(body)

    logger.info("Downloaded seed file %s -> %s (%d bytes)", url, name, len(body))
    return Path(name)


def clear_directory(path: str | Path) -> int:
    """Remove everything inside ``path`` but keep the directory.

    Does nothing if the directory does not exist.

    Returns:
        Number of top-level entries removed.
    """
    root = Path(path)
    if not root.exists():
        return 0
    if not root.is_dir():
        raise NotADirectoryError(str(root))

    removed = 0
    for entry in root.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
        removed += 1

    if removed:
        logger.info("Cleared %d entries from %s", removed, root)
    return removed
