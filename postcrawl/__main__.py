"""Command-line entry point.

    python -m postcrawl --urls durov,telegram
    python -m postcrawl --url-file seeds.txt
    python -m postcrawl --url-file https://example.com/seeds.txt
    python -m postcrawl --resume
    python -m postcrawl --login
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional, Sequence

import aiohttp
from pydantic import ValidationError

from postcrawl.crawler.errors import CrawlerError
from postcrawl.jobs.common import CrawlJobConfig, UTCFormatter
from postcrawl.jobs.crawl_job import run_crawl_job, run_login
from postcrawl.utils.seeds import download_seed_file, read_seeds_from_file

logger = logging.getLogger("postcrawl")


def configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    handler = logging.StreamHandler()
    handler.setFormatter(UTCFormatter(fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[handler],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="postcrawl",
        description="Breadth-first crawl of public channels into canonical post records",
    )
    parser.add_argument(
        "--urls",
        type=str,
        default="",
        help="Comma-separated seed channel identifiers",
    )
    parser.add_argument(
        "--url-file",
        type=str,
        default=None,
        help="Seed file (local path or http(s) URL), one identifier per line",
    )
    parser.add_argument(
        "--crawl-id",
        type=str,
        default=None,
        help="Resume the crawl with this id",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Resume the most recent crawl",
    )
    parser.add_argument(
        "--platform",
        type=str,
        default=None,
        help="Registered platform client to use (default: PLATFORM_NAME)",
    )
    parser.add_argument(
        "--login",
        action="store_true",
        help="Bootstrap the platform session and exit",
    )
    parser.add_argument(
        "--keep-downloads",
        action="store_true",
        help="Do not clear the temporary download directory on start",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not print the job banner and summary",
    )
    return parser


async def collect_seeds(urls: str, url_file: Optional[str]) -> list[str]:
    """Merge ``--urls`` and ``--url-file`` seeds, keeping first-seen order."""
    seeds = [u.strip() for u in urls.split(",") if u.strip()]

    if url_file:
        if url_file.startswith(("http://", "https://")):
            path = await download_seed_file(url_file)
            try:
                seeds.extend(read_seeds_from_file(path))
            finally:
                path.unlink(missing_ok=True)
        else:
            seeds.extend(read_seeds_from_file(url_file))

    return list(dict.fromkeys(seeds))


def _handle_shutdown(sig: signal.Signals, shutdown_event: asyncio.Event) -> None:
    logger.info("Received %s, stopping after the current page...", sig.name)
    shutdown_event.set()


def install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle_shutdown, sig, shutdown_event)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable here, %s will not stop the crawl cleanly", sig.name)


async def run(args: argparse.Namespace) -> int:
    if args.login:
        await run_login()
        return 0

    seeds = await collect_seeds(args.urls, args.url_file)

    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event)

    config = CrawlJobConfig(
        seeds=seeds,
        crawl_id=args.crawl_id,
        resume_latest=args.resume,
        platform=args.platform,
        clear_downloads=not args.keep_downloads,
        verbose=not args.quiet,
    )
    stats = await run_crawl_job(config, shutdown_event=shutdown_event)
    logger.info(
        "Crawl %s finished: %d pages fetched, %d errored, %d posts",
        stats.crawl_id, stats.pages_fetched, stats.pages_errored, stats.posts_extracted,
    )
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)

    try:
        return asyncio.run(run(args))
    except (CrawlerError, ValidationError, aiohttp.ClientError, OSError) as e:
        logger.critical("Fatal: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
