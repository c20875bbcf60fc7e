import asyncio

import pytest

from postcrawl.crawler.errors import BlobUploadError
from postcrawl.storage.blob import BLOB_SCHEME, FilesystemBlobSink


def test_upload_moves_file_and_returns_reference(tmp_path):
    sink = FilesystemBlobSink(str(tmp_path / "media"))
    local = tmp_path / "downloads" / "photo.jpg"
    local.parent.mkdir()
    local.write_bytes(b"jpeg")

    reference = asyncio.run(sink.upload_and_delete("20240101000000", "durov", "https://t.me/durov/42", str(local)))

    assert reference.startswith(BLOB_SCHEME)
    assert not local.exists()
    assert sink.resolve(reference).read_bytes() == b"jpeg"
    assert reference.endswith("/photo.jpg")


def test_same_file_name_from_different_links_does_not_collide(tmp_path):
    sink = FilesystemBlobSink(str(tmp_path / "media"))
    refs = []
    for i, link in enumerate(["https://t.me/durov/1", "https://t.me/durov/2"]):
        local = tmp_path / f"thumb{i}"
        local.mkdir()
        (local / "thumb.jpg").write_bytes(str(i).encode())
        refs.append(asyncio.run(sink.upload_and_delete("c", "durov", link, str(local / "thumb.jpg"))))

    assert refs[0] != refs[1]
    assert sink.resolve(refs[1]).read_bytes() == b"1"


def test_unsafe_segments_are_sanitized(tmp_path):
    sink = FilesystemBlobSink(str(tmp_path / "media"))
    key = sink.blob_key("../crawl", "a/b", "link", "..")

    assert ".." not in key.split("/")
    assert key.count("/") == 3


@pytest.mark.parametrize("local_path", ["", "does/not/exist.jpg"])
def test_missing_local_file_fails(tmp_path, local_path):
    sink = FilesystemBlobSink(str(tmp_path / "media"))

    with pytest.raises(BlobUploadError):
        asyncio.run(sink.upload_and_delete("c", "durov", "link", local_path))


def test_resolve_rejects_foreign_reference(tmp_path):
    sink = FilesystemBlobSink(str(tmp_path / "media"))

    with pytest.raises(ValueError):
        sink.resolve("/tmp/photo.jpg")
