"""Canonical post record produced for every extracted message.

All platforms map onto this one shape. Media fields hold blob storage
references returned by the sink, never local filesystem paths.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class EngagementData(BaseModel):
    """Aggregate engagement counters for a channel."""

    follower_count: int = 0
    following_count: int = 0
    like_count: int = 0
    post_count: int = 0
    views_count: int = 0
    comment_count: int = 0
    share_count: int = 0


class ChannelData(BaseModel):
    """Channel identity plus its engagement snapshot at crawl time."""

    channel_id: int = 0
    channel_name: str = ""
    channel_profile_image: str = ""
    channel_engagement_data: EngagementData = Field(default_factory=EngagementData)
    channel_url_external: str = ""
    channel_url: str = ""


class Comment(BaseModel):
    """A reply in a post's comment thread.

    Attributes:
        author: Display name or handle of the commenter
        text: Comment body
        published_at: When the comment was posted
        reply_count: Number of replies to this comment
        reactions: Emoji -> count
    """

    author: str = ""
    text: str = ""
    published_at: datetime | None = None
    reply_count: int = 0
    reactions: dict[str, int] = Field(default_factory=dict)


class Post(BaseModel):
    """Normalized post built from one platform message.

    ``post_uid`` is ``"{message_number}-{channel_name}"``, so extracting the
    same message twice yields the same id and storing it twice overwrites.
    A default-constructed ``Post()`` is the empty record returned for
    filtered or unparseable messages.
    """

    post_uid: str = ""
    post_link: str = ""
    url: str = ""
    channel_id: int = 0
    channel_name: str = ""

    published_at: datetime | None = None
    created_at: datetime | None = None

    language_code: str = ""
    platform_name: str = ""
    post_type: list[str] = Field(default_factory=list)
    is_ad: bool = False

    description: str = ""
    transcript_text: str = ""
    image_text: str = ""

    thumb_url: str | None = None
    media_url: str | None = None

    engagement: int = 0
    view_count: int = 0
    like_count: int = 0
    share_count: int = 0
    comment_count: int = 0

    channel_data: ChannelData = Field(default_factory=ChannelData)
    comments: list[Comment] = Field(default_factory=list)
    reactions: dict[str, int] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.post_uid
