# tests/unit/test_s3_storage.py
"""
Unit tests for the `S3Storage` backend.

The backend is driven with `FakeS3Client`, which answers listing, download
and upload calls from an in-memory dictionary.
"""

from typing import Dict, List

import pytest
from fakes import FakeS3Client, MemoryStream, make_item

from bucketferry.exceptions import OpenError, WriteError
from bucketferry.item import Item
from bucketferry.storage.s3 import OWNER_ACL, S3Storage

OBJECTS: Dict[str, bytes] = {
    "backup/a.txt": b"a",
    "backup/b.txt": b"bb",
    "backup/dir/": b"",
    "backup/dir/c.txt": b"ccc",
    "backup/dir/d.txt": b"dddd",
    "backup/e.txt": b"eeeee",
    "other/f.txt": b"f",
}


async def _list(storage: S3Storage) -> List[Item]:
    items: List[Item] = []
    async for item in storage.list_files():
        items.append(item)
    return items


@pytest.mark.asyncio
async def test_list_files_follows_pages(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Tests that listing walks every page, resuming after the last key seen.

    Arrange:
        - Six objects under `backup/`, one of them a folder placeholder, and a
          page size of two keys.
    Act:
        - List the prefix.
    Assert:
        - All five regular objects are listed in key order with their sizes.
        - Each request after the first starts after the previous page's last
          key, placeholders included.
    """
    monkeypatch.setattr("bucketferry.storage.s3.PAGE_SIZE", 2)
    client: FakeS3Client = FakeS3Client(OBJECTS)

    items: List[Item] = await _list(S3Storage(client, "bucket", prefix="backup/"))

    assert [i.relative_path for i in items] == [
        "a.txt",
        "b.txt",
        "dir/c.txt",
        "dir/d.txt",
        "e.txt",
    ]
    assert [i.size for i in items] == [1, 2, 3, 4, 5]
    assert {i.prefix for i in items} == {"backup/"}
    assert [c.get("StartAfter") for c in client.list_calls] == [
        None,
        "backup/b.txt",
        "backup/dir/c.txt",
    ]
    assert all(c["MaxKeys"] == 2 for c in client.list_calls)


@pytest.mark.asyncio
async def test_list_files_key_equal_to_prefix() -> None:
    """
    Tests that an object named exactly like the prefix is reported by its
    base name.
    """
    client: FakeS3Client = FakeS3Client({"backup/report.csv": b"1,2"})

    items: List[Item] = await _list(
        S3Storage(client, "bucket", prefix="backup/report.csv")
    )

    assert len(items) == 1
    assert items[0].prefix == "backup/"
    assert items[0].relative_path == "report.csv"


@pytest.mark.asyncio
async def test_list_files_failure_ends_stream() -> None:
    """
    Tests that a failed listing request ends the stream instead of raising.
    """
    client: FakeS3Client = FakeS3Client(OBJECTS, fail_list=True)

    assert await _list(S3Storage(client, "bucket")) == []
    assert len(client.list_calls) == 1


@pytest.mark.asyncio
async def test_listed_items_download_lazily() -> None:
    """
    Tests that listing issues no download and that reading fetches the body.

    Arrange:
        - One object in the bucket.
    Act:
        - List it, then read and release the item.
    Assert:
        - No GET was sent before the first read, exactly one after it, and the
          body was closed on release.
    """
    client: FakeS3Client = FakeS3Client({"a.txt": b"payload"})

    items: List[Item] = await _list(S3Storage(client, "bucket"))
    assert client.get_calls == []

    async with items[0] as item:
        assert await item.read(3) == b"pay"
        assert await item.read() == b"load"

    assert client.get_calls == ["a.txt"]
    assert client.bodies[0].closed


@pytest.mark.asyncio
async def test_read_of_vanished_object_raises_open_error() -> None:
    """
    Tests that an object deleted after listing fails with `OpenError`.
    """
    client: FakeS3Client = FakeS3Client({"a.txt": b"payload"})
    items: List[Item] = await _list(S3Storage(client, "bucket"))
    del client.objects["a.txt"]

    with pytest.raises(OpenError, match="s3://bucket/a.txt"):
        await items[0].read()
    await items[0].aclose()


@pytest.mark.parametrize(
    "prefix, expected_key",
    [
        ("backup/", "backup/sub/a.txt"),
        ("backup", "backup/sub/a.txt"),
        ("", "sub/a.txt"),
    ],
)
@pytest.mark.asyncio
async def test_put_file_writes_under_prefix(prefix: str, expected_key: str) -> None:
    """
    Tests the destination key and request parameters of an upload.

    Args:
        prefix (str): The destination prefix.
        expected_key (str): The key the item must be written to.
    """
    client: FakeS3Client = FakeS3Client()
    stream: MemoryStream = MemoryStream(b"hello")

    await S3Storage(client, "bucket", prefix=prefix).put_file(
        make_item("sub/a.txt", stream=stream)
    )

    assert client.objects == {expected_key: b"hello"}
    call = client.put_calls[0]
    assert call["Bucket"] == "bucket"
    assert call["ContentLength"] == 5
    assert call["ContentType"] == "text/plain"
    assert call["ACL"] == OWNER_ACL
    assert stream.close_count == 1


@pytest.mark.asyncio
async def test_put_file_without_acl() -> None:
    """
    Tests that no canned ACL is sent when the storage is built without one.
    """
    client: FakeS3Client = FakeS3Client()

    await S3Storage(client, "bucket", acl=None).put_file(make_item("a.bin", b"x"))

    assert "ACL" not in client.put_calls[0]
    assert client.put_calls[0]["ContentType"] == "application/octet-stream"


@pytest.mark.asyncio
async def test_put_file_rejected_raises_write_error() -> None:
    """
    Tests that a refused upload surfaces as `WriteError` and releases the item.
    """
    client: FakeS3Client = FakeS3Client(fail_put_keys=["a.txt"])
    stream: MemoryStream = MemoryStream(b"data")

    with pytest.raises(WriteError, match="s3://bucket/a.txt"):
        await S3Storage(client, "bucket").put_file(make_item("a.txt", stream=stream))

    assert client.objects == {}
    assert stream.close_count == 1
