"""Crawler error hierarchy."""


class CrawlerError(Exception):
    """Base error for crawl operations."""


class PlatformError(CrawlerError):
    """A call to the source platform failed."""


class AuthError(PlatformError):
    """Platform rejected our credentials (401/403)."""


class RateLimitError(PlatformError):
    """Rate limited by the platform (429)."""

    def __init__(self, retry_after: int | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limited by platform"
        if retry_after:
            msg += f" (retry after {retry_after}s)"
        super().__init__(msg)


class ContentNotFoundError(PlatformError):
    """Requested channel, message or file does not exist."""


class RemoteFileError(PlatformError):
    """Fetching remote file metadata or downloading the file failed."""


class MalformedContentError(CrawlerError):
    """A message's content does not have the structure its kind promises."""


class ExtractionError(CrawlerError):
    """Unexpected fault while extracting a post from a message."""


class BlobUploadError(CrawlerError):
    """Media could not be moved into blob storage."""


class StoreError(CrawlerError):
    """Frontier or record persistence failed."""


class BootstrapError(CrawlerError):
    """Platform client could not be brought up."""


class BootstrapTimeout(BootstrapError):
    """Platform client did not come up within the bootstrap window."""


class NoSeedsError(CrawlerError):
    """Neither a seed list nor a seed file was supplied."""
