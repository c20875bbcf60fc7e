from postcrawl.storage.base import BlobSink, FrontierStore
from postcrawl.storage.blob import FilesystemBlobSink

__all__ = [
    "BlobSink",
    "FilesystemBlobSink",
    "FrontierStore",
]
