"""HTTP client for a platform bridge service.

The bridge owns the platform session (login, MTProto/API quirks, file
cache) and exposes it as plain JSON over HTTP. Endpoints used:

    GET /me
    GET /channels/{identifier}                        -> {"chat": {...}, "stats": {...}}
    GET /chats/{chat_id}/messages                     -> {"messages": [...]}
    GET /chats/{chat_id}/messages/{id}/link           -> {"link": "..."}
    GET /chats/{chat_id}/messages/{id}/comments       -> {"comments": [...]}
    GET /chats/{chat_id}/messages/{id}/views          -> {"view_count": n}
    GET /chats/{chat_id}/messages/{id}/shares         -> {"share_count": n}
    GET /files/remote/{remote_id}                     -> {"id": n, "size": n}
    GET /files/{file_id}/content                      -> file body
"""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from postcrawl.config import get_settings
from postcrawl.crawler.base import (
    BasePlatformClient,
    ChannelContext,
    ChannelStats,
    Message,
    RemoteFile,
)
from postcrawl.crawler.errors import (
    AuthError,
    ContentNotFoundError,
    PlatformError,
    RateLimitError,
    RemoteFileError,
)
from postcrawl.models.post import Comment
from postcrawl.utils.retry import RetryConfig, retry_async, retry_with_result

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Transport failures and rate limits are retried; auth and not-found are not
RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, RateLimitError)


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return max(int(value), 0)
    except ValueError:
        return None


class BridgeClient(BasePlatformClient):
    """Platform client backed by a bridge service.

    Usage:
        async with BridgeClient("http://localhost:8080", api_token="...") as client:
            context, stats = await client.resolve_channel("durov")
    """

    platform = "bridge"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        download_dir: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        request_timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.platform.base_url).rstrip("/")
        self.api_token = settings.platform.api_token if api_token is None else api_token
        self.download_dir = Path(download_dir or settings.crawler.download_dir)
        self.retry_config = retry_config or RetryConfig(
            max_retries=settings.crawler.max_retries,
            delay=settings.crawler.retry_delay,
            exceptions=RETRYABLE_ERRORS,
        )
        self.timeout = aiohttp.ClientTimeout(total=request_timeout or settings.crawler.call_timeout)
        self._session: Optional[aiohttp.ClientSession] = None
        self._get_json_with_retry = retry_async(self.retry_config)(self._get_json)

    # =========================================================================
    # Session
    # =========================================================================

    async def connect(self) -> None:
        """Open the HTTP session and check that the bridge accepts our token."""
        if self._session is None:
            headers = {"Accept": "application/json"}
            if self.api_token:
                headers["Authorization"] = f"Bearer {self.api_token}"
            self._session = aiohttp.ClientSession(headers=headers, timeout=self.timeout)
        me = await self.get_me()
        logger.info("Connected to bridge %s as %s", self.base_url, me.get("username") or me.get("id"))

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise PlatformError("Bridge client is not connected")
        return self._session

    # =========================================================================
    # Transport
    # =========================================================================

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _raise_for_status(resp: aiohttp.ClientResponse, path: str) -> None:
        """Map error statuses onto the platform error hierarchy.

        5xx responses raise ``aiohttp.ClientResponseError`` so they are retried.
        """
        status = resp.status
        if status < 400:
            return
        if status in (401, 403):
            raise AuthError(f"Bridge rejected credentials for {path} (HTTP {status})")
        if status == 404:
            raise ContentNotFoundError(f"Not found: {path}")
        if status == 429:
            raise RateLimitError(retry_after=_parse_retry_after(resp.headers.get("Retry-After")))
        if status >= 500:
            raise aiohttp.ClientResponseError(
                resp.request_info,
                resp.history,
                status=status,
                message=f"Bridge error for {path}",
            )
        raise PlatformError(f"Bridge returned HTTP {status} for {path}")

    async def _get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        session = self._require_session()
        async with session.get(self._url(path), params=params) as resp:
            self._raise_for_status(resp, path)
            return await resp.json()

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        try:
            return await self._get_json_with_retry(path, params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PlatformError(f"Request to {path} failed: {e}") from e

    # =========================================================================
    # Platform API
    # =========================================================================

    async def get_me(self) -> dict[str, Any]:
        return await self._get("/me")

    async def resolve_channel(self, identifier: str) -> tuple[ChannelContext, ChannelStats]:
        data = await self._get(f"/channels/{quote(identifier, safe='')}")
        try:
            context = ChannelContext.model_validate(data["chat"])
            stats = ChannelStats.model_validate(data.get("stats") or {})
        except (KeyError, TypeError, ValidationError) as e:
            raise PlatformError(f"Malformed channel response for {identifier}: {e}") from e
        if not context.username:
            context.username = identifier
        return context, stats

    async def fetch_messages(
        self,
        chat_id: int,
        from_message_id: int = 0,
        limit: int = 100,
    ) -> list[Message]:
        data = await self._get(
            f"/chats/{chat_id}/messages",
            params={"from_message_id": from_message_id, "limit": limit},
        )
        try:
            raw_messages = list(data.get("messages") or [])
        except (AttributeError, TypeError) as e:
            raise PlatformError(f"Malformed messages response for chat {chat_id}: {e}") from e
        messages = []
        for raw in raw_messages:
            try:
                messages.append(Message.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping unparseable message in chat %s: %s", chat_id, e)
        return messages

    async def fetch_message_link(self, chat_id: int, message_id: int) -> str:
        data = await self._get(f"/chats/{chat_id}/messages/{message_id}/link")
        try:
            link = data.get("link") or ""
        except AttributeError as e:
            raise PlatformError(f"Malformed link response for message {message_id}: {e}") from e
        if not isinstance(link, str):
            raise PlatformError(f"Malformed link response for message {message_id}: {link!r}")
        return link

    async def fetch_comments(self, chat_id: int, message_id: int) -> list[Comment]:
        data = await self._get(f"/chats/{chat_id}/messages/{message_id}/comments")
        try:
            raw_comments = list(data.get("comments") or [])
        except (AttributeError, TypeError) as e:
            raise PlatformError(f"Malformed comments response for message {message_id}: {e}") from e
        comments = []
        for raw in raw_comments:
            try:
                comments.append(Comment.model_validate(raw))
            except ValidationError as e:
                logger.debug("Skipping malformed comment on message %s: %s", message_id, e)
        return comments

    async def _fetch_count(self, path: str, field: str) -> int:
        data = await self._get(path)
        try:
            return int(data[field])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PlatformError(f"Malformed {field} in response from {path}: {e!r}") from e

    async def fetch_view_count(self, chat_id: int, message_id: int) -> int:
        return await self._fetch_count(f"/chats/{chat_id}/messages/{message_id}/views", "view_count")

    async def fetch_share_count(self, chat_id: int, message_id: int) -> int:
        return await self._fetch_count(f"/chats/{chat_id}/messages/{message_id}/shares", "share_count")

    async def fetch_remote_file(self, remote_id: str) -> RemoteFile:
        data = await self._get(f"/files/remote/{quote(remote_id, safe='')}")
        try:
            return RemoteFile(id=data["id"], remote_id=remote_id, size=data.get("size", 0))
        except (KeyError, TypeError, ValidationError) as e:
            raise RemoteFileError(f"Malformed remote file response for {remote_id}: {e}") from e

    # =========================================================================
    # Downloads
    # =========================================================================

    @staticmethod
    def _extension(resp: aiohttp.ClientResponse) -> str:
        disposition = resp.content_disposition
        if disposition and disposition.filename:
            suffix = Path(disposition.filename).suffix
            if suffix:
                return suffix
        return mimetypes.guess_extension(resp.content_type or "") or ""

    async def _do_download(self, file_id: int) -> Path:
        session = self._require_session()
        path = f"/files/{file_id}/content"
        self.download_dir.mkdir(parents=True, exist_ok=True)

        async with session.get(self._url(path)) as resp:
            self._raise_for_status(resp, path)
            dest = self.download_dir / f"{file_id}{self._extension(resp)}"
            try:
                with open(dest, "wb") as f:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        f.write(chunk)
            except BaseException:
                dest.unlink(missing_ok=True)
                raise
        return dest

    async def download_file(self, file_id: int) -> str:
        """Stream a file into ``download_dir`` with retry and return its path."""
        result = await retry_with_result(self._do_download, file_id, config=self.retry_config)
        if not result.success:
            raise RemoteFileError(
                f"Download of file {file_id} failed after {result.attempts} attempts: {result.error}"
            )
        logger.debug("Downloaded file %s -> %s (%d attempts)", file_id, result.value, result.attempts)
        return str(result.value)
