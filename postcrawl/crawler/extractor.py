"""Content extractor: maps one platform message onto a canonical ``Post``.

Per message the outcome is one of:

- filtered: published before the cutoff year, or the permalink has no
  usable last segment. Returns the empty ``Post()`` and stores nothing.
- extracted: returns the populated post after handing it to the store.
- failed: an unexpected fault anywhere in extraction. Raises
  ``ExtractionError``; the caller marks the page as errored.

Content kinds are dispatched through ``CONTENT_HANDLERS``. A handler is a
pure function from content to ``ContentExtraction`` (description plus the
remote ids of a thumbnail and a media body); fetching and uploading those
files is done by the extractor. Adding a kind means adding a content model in
``crawler.base`` and one entry here.

Degradations never fail the message: corrupt content gives an empty
description, failed media leaves the reference unset, failed comment, view
or share lookups give empty/zero values, and a failed store write is logged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import urlparse

from pydantic import ValidationError

from postcrawl.config import CrawlerSettings, get_settings
from postcrawl.crawler.base import (
    AnimatedEmojiContent,
    AnimationContent,
    BasePlatformClient,
    ChannelContext,
    ChannelStats,
    DocumentContent,
    GiveawayContent,
    Message,
    MessageContent,
    PaidMediaContent,
    PhotoContent,
    PollContent,
    Reaction,
    RemoteFileRef,
    StickerContent,
    TextContent,
    Thumbnail,
    VideoContent,
    VideoNoteContent,
)
from postcrawl.crawler.errors import (
    BlobUploadError,
    ExtractionError,
    MalformedContentError,
    PlatformError,
    StoreError,
)
from postcrawl.models.post import ChannelData, Comment, EngagementData, Post
from postcrawl.storage.base import BlobSink, FrontierStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ContentExtraction:
    """What a content kind contributes to a post."""

    description: str = ""
    thumbnail_id: str | None = None
    media_id: str | None = None


# =============================================================================
# Content handlers
# =============================================================================


def _remote_id(ref: RemoteFileRef | None, what: str) -> str:
    if ref is None or not ref.remote_id:
        raise MalformedContentError(f"missing {what}")
    return ref.remote_id


def _thumbnail_id(thumbnail: Thumbnail | None, what: str) -> str:
    if thumbnail is None:
        raise MalformedContentError(f"missing {what} thumbnail")
    return _remote_id(thumbnail.file, f"{what} thumbnail file")


def _extract_text(content: TextContent) -> ContentExtraction:
    return ContentExtraction(description=content.text)


def _extract_photo(content: PhotoContent) -> ContentExtraction:
    if not content.sizes:
        raise MalformedContentError("photo has no sizes")
    return ContentExtraction(
        description=content.caption,
        thumbnail_id=_remote_id(content.sizes[0].photo, "photo file"),
    )


def _extract_video(content: VideoContent) -> ContentExtraction:
    if content.video is None:
        raise MalformedContentError("missing video")
    return ContentExtraction(
        description=content.caption,
        thumbnail_id=_thumbnail_id(content.video.thumbnail, "video"),
        media_id=_remote_id(content.video.video, "video file"),
    )


def _extract_video_note(content: VideoNoteContent) -> ContentExtraction:
    if content.video_note is None:
        raise MalformedContentError("missing video note")
    return ContentExtraction(
        thumbnail_id=_thumbnail_id(content.video_note.thumbnail, "video note"),
        media_id=_remote_id(content.video_note.video, "video note file"),
    )


def _extract_animation(content: AnimationContent) -> ContentExtraction:
    if content.animation is None:
        raise MalformedContentError("missing animation")
    return ContentExtraction(
        description=content.caption,
        thumbnail_id=_thumbnail_id(content.animation.thumbnail, "animation"),
    )


def _extract_document(content: DocumentContent) -> ContentExtraction:
    if content.document is None:
        raise MalformedContentError("missing document")
    return ContentExtraction(
        description=content.caption or content.document.file_name,
        thumbnail_id=_thumbnail_id(content.document.thumbnail, "document"),
        media_id=_remote_id(content.document.document, "document file"),
    )


def _extract_sticker(content: StickerContent) -> ContentExtraction:
    if content.sticker is None:
        raise MalformedContentError("missing sticker")
    return ContentExtraction(thumbnail_id=_remote_id(content.sticker.sticker, "sticker file"))


def _extract_animated_emoji(content: AnimatedEmojiContent) -> ContentExtraction:
    return ContentExtraction(description=content.emoji)


def _extract_poll(content: PollContent) -> ContentExtraction:
    return ContentExtraction(description=content.question)


def _extract_giveaway(content: GiveawayContent) -> ContentExtraction:
    if content.prize is None:
        raise MalformedContentError("giveaway has no prize")
    return ContentExtraction(description=content.prize.kind)


def _extract_giveaway_result(content: MessageContent) -> ContentExtraction:
    logger.debug("Giveaway result message (%s): %s", content.kind, content)
    return ContentExtraction()


def _extract_paid_media(content: PaidMediaContent) -> ContentExtraction:
    return ContentExtraction(description=content.caption)


def _extract_unknown(content: MessageContent) -> ContentExtraction:
    logger.debug("Unknown message content type: %s", content.kind)
    return ContentExtraction()


CONTENT_HANDLERS: dict[str, Callable[[Any], ContentExtraction]] = {
    "text": _extract_text,
    "photo": _extract_photo,
    "video": _extract_video,
    "video_note": _extract_video_note,
    "animation": _extract_animation,
    "document": _extract_document,
    "sticker": _extract_sticker,
    "animated_emoji": _extract_animated_emoji,
    "poll": _extract_poll,
    "giveaway": _extract_giveaway,
    "giveaway_winners": _extract_giveaway_result,
    "giveaway_completed": _extract_giveaway_result,
    "paid_media": _extract_paid_media,
    "unknown": _extract_unknown,
}


def extract_content(content: MessageContent) -> ContentExtraction:
    """Run the handler for a content kind. Corrupt content yields an empty extraction."""
    handler = CONTENT_HANDLERS.get(content.kind, _extract_unknown)
    try:
        return handler(content)
    except MalformedContentError as e:
        logger.warning("Invalid or corrupt %s message structure: %s", content.kind, e)
        return ContentExtraction()


def message_number_from_link(link: str) -> str | None:
    """Last non-empty path segment of a permalink, or None if there is none."""
    if not link:
        return None
    segments = [s for s in urlparse(link).path.split("/") if s]
    return segments[-1] if segments else None


def aggregate_reactions(raw_reactions: list[Any]) -> dict[str, int]:
    """Sum emoji reaction totals. Malformed and non-emoji entries are skipped."""
    reactions: dict[str, int] = {}
    for entry in raw_reactions:
        try:
            reaction = Reaction.model_validate(entry)
        except ValidationError:
            logger.debug("Skipping malformed reaction entry: %r", entry)
            continue
        if reaction.type is None or reaction.type.kind != "emoji" or not reaction.type.emoji:
            continue
        if reaction.total_count < 0:
            continue
        emoji = reaction.type.emoji
        reactions[emoji] = reactions.get(emoji, 0) + reaction.total_count
    return reactions


# =============================================================================
# Extractor
# =============================================================================


class ContentExtractor:
    """Turns messages into stored posts.

    Usage:
        extractor = ContentExtractor(client, sink, store)
        post = await extractor.extract(crawl_id, message, context, stats)
        if post.is_empty:
            ...  # filtered
    """

    def __init__(
        self,
        client: BasePlatformClient,
        sink: BlobSink,
        store: FrontierStore,
        settings: CrawlerSettings | None = None,
    ):
        self.client = client
        self.sink = sink
        self.store = store
        self.settings = settings or get_settings().crawler

    async def _call(self, aw: Awaitable[T]) -> T:
        return await asyncio.wait_for(aw, timeout=self.settings.call_timeout)

    async def extract(
        self,
        crawl_id: str,
        message: Message,
        context: ChannelContext,
        stats: ChannelStats,
    ) -> Post:
        """Extract and store one message.

        Returns:
            The stored post, or the empty ``Post()`` if the message was filtered.

        Raises:
            ExtractionError: On any unexpected fault during extraction.
        """
        channel_name = context.username or str(context.chat_id)
        try:
            return await self._extract(crawl_id, message, context, stats, channel_name)
        except Exception as e:
            logger.error(
                "Recovered from fault while parsing message %s for channel %s: %s",
                message.id, channel_name, e,
                exc_info=True,
            )
            raise ExtractionError(
                f"failed to parse message {message.id} for channel {channel_name}"
            ) from e

    async def _extract(
        self,
        crawl_id: str,
        message: Message,
        context: ChannelContext,
        stats: ChannelStats,
        channel_name: str,
    ) -> Post:
        published_at = message.published_at
        if published_at.year < self.settings.cutoff_year:
            logger.debug(
                "Skipping message %s of %s published %s (before %d)",
                message.id, channel_name, published_at.date(), self.settings.cutoff_year,
            )
            return Post()

        link = await self._call(self.client.fetch_message_link(message.chat_id, message.id))
        message_number = message_number_from_link(link)
        if message_number is None:
            logger.debug("Skipping message %s of %s: unusable permalink %r", message.id, channel_name, link)
            return Post()

        comments = await self._fetch_comments(message, channel_name)

        extraction = extract_content(message.content)
        thumb_url, media_url = await self._store_media(crawl_id, channel_name, link, extraction)

        reactions = self._collect_reactions(message)
        view_count = await self._fetch_count(self.client.fetch_view_count, message, "view")
        share_count = await self._fetch_count(self.client.fetch_share_count, message, "share")

        channel_title = context.title or channel_name
        post = Post(
            post_uid=f"{message_number}-{channel_name}",
            post_link=link,
            url=link,
            channel_id=message.chat_id,
            channel_name=channel_title,
            published_at=published_at,
            created_at=message.edited_at if message.edit_date else published_at,
            language_code=self.settings.language_code,
            platform_name=self.settings.platform_name,
            post_type=[message.content_type],
            description=extraction.description,
            thumb_url=thumb_url,
            media_url=media_url,
            engagement=view_count,
            view_count=view_count,
            share_count=share_count,
            comment_count=len(comments),
            channel_data=ChannelData(
                channel_id=context.chat_id,
                channel_name=channel_title,
                channel_engagement_data=EngagementData(
                    follower_count=stats.member_count,
                    post_count=stats.post_count,
                    views_count=stats.view_count,
                ),
                channel_url_external=self.settings.channel_url_template.format(channel=channel_name),
            ),
            comments=comments,
            reactions=reactions,
        )

        try:
            await self.store.store_record(crawl_id, channel_name, post)
        except StoreError as e:
            logger.error("Failed to store post %s: %s", post.post_uid, e)

        return post

    async def _fetch_comments(self, message: Message, channel_name: str) -> list[Comment]:
        if message.reply_count <= 0:
            return []
        try:
            return await self._call(self.client.fetch_comments(message.chat_id, message.id))
        except Exception as e:
            logger.error(
                "Recovered from fault while fetching comments for message %s of %s: %s",
                message.id, channel_name, e,
            )
            return []

    def _collect_reactions(self, message: Message) -> dict[str, int]:
        info = message.interaction_info
        if info is None or not info.reactions:
            return {}
        try:
            return aggregate_reactions(info.reactions)
        except Exception as e:
            logger.error("Recovered from fault while processing reactions of message %s: %s", message.id, e)
            return {}

    async def _fetch_count(
        self,
        fetch: Callable[[int, int], Awaitable[int]],
        message: Message,
        what: str,
    ) -> int:
        try:
            return await self._call(fetch(message.chat_id, message.id))
        except (PlatformError, asyncio.TimeoutError) as e:
            logger.warning("Failed to fetch %s count for message %s: %s", what, message.id, e)
            return 0

    async def _store_media(
        self,
        crawl_id: str,
        channel_name: str,
        link: str,
        extraction: ContentExtraction,
    ) -> tuple[str | None, str | None]:
        """Fetch and upload thumbnail and media body concurrently."""
        thumb_url, media_url = await asyncio.gather(
            self._fetch_and_upload(crawl_id, channel_name, link, extraction.thumbnail_id),
            self._fetch_and_upload(crawl_id, channel_name, link, extraction.media_id),
        )
        return thumb_url, media_url

    async def _fetch_and_upload(
        self,
        crawl_id: str,
        channel_name: str,
        link: str,
        remote_id: str | None,
    ) -> str | None:
        """Download a platform file and move it into blob storage.

        Returns:
            Blob reference, or None if there was nothing to fetch or any step failed.
        """
        if not remote_id:
            return None

        try:
            remote = await self._call(self.client.fetch_remote_file(remote_id))
            local_path = await self._call(self.client.download_file(remote.id))
        except (PlatformError, asyncio.TimeoutError) as e:
            logger.error("Error fetching remote file %s: %s", remote_id, e)
            return None

        if not local_path:
            logger.debug("Downloaded file path is empty for %s", remote_id)
            return None

        try:
            return await self.sink.upload_and_delete(crawl_id, channel_name, link, local_path)
        except BlobUploadError as e:
            logger.error("Upload of %s failed: %s", local_path, e)
            return None
