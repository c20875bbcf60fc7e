"""Platform-side types and the abstract platform client.

A platform client hands the crawler channel context, message history and
media files. Messages carry exactly one content kind; the kind is the
``kind`` tag of the content payload and selects the content model from
``CONTENT_TYPES``. Unrecognized tags parse as ``UnknownContent`` instead of
failing the whole message.

Sub-objects that a well-formed message always has (a video's file, a
document's thumbnail, ...) are still optional here so that a corrupt
message parses and the extractor can decide what to do with it.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, SerializeAsAny, field_validator

from postcrawl.models.post import Comment


class RemoteFileRef(BaseModel):
    """Pointer to a file stored on the platform."""

    remote_id: str = ""


class Thumbnail(BaseModel):
    file: RemoteFileRef | None = None


class PhotoSize(BaseModel):
    photo: RemoteFileRef | None = None
    width: int = 0
    height: int = 0


class VideoMedia(BaseModel):
    thumbnail: Thumbnail | None = None
    video: RemoteFileRef | None = None


class AnimationMedia(BaseModel):
    thumbnail: Thumbnail | None = None
    animation: RemoteFileRef | None = None


class DocumentMedia(BaseModel):
    file_name: str = ""
    thumbnail: Thumbnail | None = None
    document: RemoteFileRef | None = None


class StickerMedia(BaseModel):
    emoji: str = ""
    sticker: RemoteFileRef | None = None


class GiveawayPrize(BaseModel):
    kind: str = ""  # "premium", "stars", ...


# =============================================================================
# Content kinds
# =============================================================================


class MessageContent(BaseModel):
    """Base for all content kinds."""

    kind: str = "unknown"


class TextContent(MessageContent):
    kind: Literal["text"] = "text"
    text: str = ""


class PhotoContent(MessageContent):
    kind: Literal["photo"] = "photo"
    caption: str = ""
    sizes: list[PhotoSize] = []


class VideoContent(MessageContent):
    kind: Literal["video"] = "video"
    caption: str = ""
    video: VideoMedia | None = None


class VideoNoteContent(MessageContent):
    kind: Literal["video_note"] = "video_note"
    video_note: VideoMedia | None = None


class AnimationContent(MessageContent):
    kind: Literal["animation"] = "animation"
    caption: str = ""
    animation: AnimationMedia | None = None


class DocumentContent(MessageContent):
    kind: Literal["document"] = "document"
    caption: str = ""
    document: DocumentMedia | None = None


class StickerContent(MessageContent):
    kind: Literal["sticker"] = "sticker"
    sticker: StickerMedia | None = None


class AnimatedEmojiContent(MessageContent):
    kind: Literal["animated_emoji"] = "animated_emoji"
    emoji: str = ""


class PollContent(MessageContent):
    kind: Literal["poll"] = "poll"
    question: str = ""


class GiveawayContent(MessageContent):
    kind: Literal["giveaway"] = "giveaway"
    prize: GiveawayPrize | None = None


class GiveawayWinnersContent(MessageContent):
    kind: Literal["giveaway_winners"] = "giveaway_winners"
    winner_count: int = 0


class GiveawayCompletedContent(MessageContent):
    kind: Literal["giveaway_completed"] = "giveaway_completed"
    winner_count: int = 0


class PaidMediaContent(MessageContent):
    kind: Literal["paid_media"] = "paid_media"
    caption: str = ""


class UnknownContent(MessageContent):
    """Any content kind this crawler does not know about."""

    model_config = ConfigDict(extra="allow")


CONTENT_TYPES: dict[str, type[MessageContent]] = {
    cls.model_fields["kind"].default: cls
    for cls in (
        TextContent,
        PhotoContent,
        VideoContent,
        VideoNoteContent,
        AnimationContent,
        DocumentContent,
        StickerContent,
        AnimatedEmojiContent,
        PollContent,
        GiveawayContent,
        GiveawayWinnersContent,
        GiveawayCompletedContent,
        PaidMediaContent,
    )
}


# =============================================================================
# Messages
# =============================================================================


class ReactionType(BaseModel):
    kind: str = ""  # "emoji", "custom_emoji", "paid"
    emoji: str = ""


class Reaction(BaseModel):
    type: ReactionType | None = None
    total_count: int = 0


class ReplyInfo(BaseModel):
    reply_count: int = 0


class InteractionInfo(BaseModel):
    """Engagement attached to a message.

    ``reactions`` is kept raw; entries are validated one by one when they are
    aggregated so a single malformed entry can be skipped.
    """

    view_count: int = 0
    forward_count: int = 0
    reply_info: ReplyInfo | None = None
    reactions: list[Any] = []


class Message(BaseModel):
    """A single message from a channel's history.

    Attributes:
        id: Platform message id
        chat_id: Id of the chat the message belongs to
        date: Publish time as unix seconds
        edit_date: Last edit time as unix seconds (0 if never edited)
        content: Exactly one content kind
        interaction_info: Views, forwards, replies and reactions
        forward_from: Username of the channel this message was forwarded from
    """

    id: int
    chat_id: int
    date: int
    edit_date: int = 0
    content: SerializeAsAny[MessageContent] = UnknownContent()
    interaction_info: InteractionInfo | None = None
    forward_from: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def parse_content(cls, v: Any) -> Any:
        if isinstance(v, MessageContent):
            return v
        if isinstance(v, dict):
            content_cls = CONTENT_TYPES.get(v.get("kind", ""), UnknownContent)
            return content_cls.model_validate(v)
        return v

    @property
    def content_type(self) -> str:
        return self.content.kind

    @property
    def published_at(self) -> datetime:
        return datetime.fromtimestamp(self.date, tz=timezone.utc)

    @property
    def edited_at(self) -> datetime:
        return datetime.fromtimestamp(self.edit_date, tz=timezone.utc)

    @property
    def reply_count(self) -> int:
        if self.interaction_info and self.interaction_info.reply_info:
            return self.interaction_info.reply_info.reply_count
        return 0


class ChannelContext(BaseModel):
    """The conversation a message lives in."""

    chat_id: int
    username: str = ""
    title: str = ""


class ChannelStats(BaseModel):
    """Channel-level counters captured once per visit."""

    member_count: int = 0
    post_count: int = 0
    view_count: int = 0


class RemoteFile(BaseModel):
    """Platform file metadata resolved from a remote id."""

    id: int
    remote_id: str = ""
    size: int = 0


# =============================================================================
# Client
# =============================================================================


class BasePlatformClient(ABC):
    """Base class for all platform clients.

    Session and authentication handling are entirely the client's concern.
    All calls are coroutines; the crawler bounds each one with a timeout.

    Usage:
        async with SomeClient(...) as client:
            context, stats = await client.resolve_channel("durov")
            messages = await client.fetch_messages(context.chat_id)
    """

    platform: str = "unknown"  # Subclasses must override

    @abstractmethod
    async def connect(self) -> None:
        """Bring up the session (bootstrap/login)."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Tear down the session."""

    @abstractmethod
    async def get_me(self) -> dict[str, Any]:
        """Return the authenticated account."""

    @abstractmethod
    async def resolve_channel(self, identifier: str) -> tuple[ChannelContext, ChannelStats]:
        """Resolve an identifier to its chat and channel counters."""

    @abstractmethod
    async def fetch_messages(
        self,
        chat_id: int,
        from_message_id: int = 0,
        limit: int = 100,
    ) -> list[Message]:
        """Fetch a page of history, newest first, older than ``from_message_id`` (0 = latest)."""

    @abstractmethod
    async def fetch_message_link(self, chat_id: int, message_id: int) -> str:
        """Return the public permalink of a message."""

    @abstractmethod
    async def fetch_comments(self, chat_id: int, message_id: int) -> list[Comment]:
        """Fetch the comment thread of a message."""

    @abstractmethod
    async def fetch_view_count(self, chat_id: int, message_id: int) -> int:
        ...

    @abstractmethod
    async def fetch_share_count(self, chat_id: int, message_id: int) -> int:
        ...

    @abstractmethod
    async def fetch_remote_file(self, remote_id: str) -> RemoteFile:
        """Resolve a remote file id to downloadable file metadata."""

    @abstractmethod
    async def download_file(self, file_id: int) -> str:
        """Download a file and return its local path."""

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        await self.disconnect()
