from postcrawl.models.frontier import Frontier, Layer, Page, PageStatus
from postcrawl.models.post import ChannelData, Comment, EngagementData, Post

__all__ = [
    "ChannelData",
    "Comment",
    "EngagementData",
    "Frontier",
    "Layer",
    "Page",
    "PageStatus",
    "Post",
]
