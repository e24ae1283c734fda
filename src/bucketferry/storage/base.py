# src/bucketferry/storage/base.py
"""
The storage capability shared by every backend.

A backend enumerates the items under its configured root or prefix and
writes single items below that same root or prefix. The copy engine only
ever sees these two operations.
"""

import mimetypes
import posixpath
from abc import ABC, abstractmethod
from typing import AsyncIterator

from bucketferry.item import Item
from bucketferry.stream import ItemStream

DEFAULT_CONTENT_TYPE: str = "application/octet-stream"


def guess_content_type(path: str) -> str:
    """
    Guesses a MIME type from the extension of a path or key.

    Args:
        path (str): The path or key.

    Returns:
        str: The MIME type, `application/octet-stream` when unknown.
    """
    content_type, _ = mimetypes.guess_type(path)
    return content_type or DEFAULT_CONTENT_TYPE


def object_key(prefix: str, relative_path: str) -> str:
    """
    Joins a relative item path under an object key prefix.

    Args:
        prefix (str): The destination prefix, possibly empty.
        relative_path (str): The item's relative path.

    Returns:
        str: The destination object key.
    """
    return posixpath.join(prefix, relative_path) if prefix else relative_path


def listing_prefix(key: str, prefix: str) -> str:
    """
    Picks the `Item.prefix` for a key found under a listing prefix.

    A key equal to the listing prefix itself is reported under its parent
    "directory", so that its relative path is its base name.

    Args:
        key (str): The listed object key.
        prefix (str): The listing prefix.

    Returns:
        str: The prefix to record on the item.
    """
    if key != prefix:
        return prefix
    parent: str = posixpath.dirname(key)
    return f"{parent}/" if parent else ""


class Storage(ABC):
    """
    A storage backend exposing enumeration and single-item writes.

    Subclasses implement `_discover` and `put_file`.
    """

    def __init__(self, queue_size: int = 0) -> None:
        """
        Args:
            queue_size (int): Capacity of the stream returned by `list_files`,
                0 for unbounded.
        """
        self._queue_size: int = queue_size

    @abstractmethod
    def _discover(self) -> AsyncIterator[Item]:
        """
        Enumerates the items under this backend's root or prefix.

        Failures are logged and end the enumeration early; they are never
        raised to the consumer.
        """

    @abstractmethod
    async def put_file(self, item: Item) -> None:
        """
        Writes one item below this backend's root or prefix.

        The item's stream is released before returning, whatever the outcome.

        Args:
            item (Item): The item to write.

        Raises:
            WriteError: If the backend did not accept the item.
            OpenError: If the item's source stream could not be opened.
        """

    def list_files(self) -> ItemStream:
        """
        Starts enumerating this backend in the background.

        Returns:
            ItemStream: The lazy, non-restartable stream of discovered items.
        """
        return open_item_stream(self, maxsize=self._queue_size)


def open_item_stream(*sources: Storage, maxsize: int = 0) -> ItemStream:
    """
    Merges the enumerations of several backends into one stream.

    Args:
        *sources (Storage): The backends to enumerate.
        maxsize (int): Capacity of the stream, 0 for unbounded.

    Returns:
        ItemStream: One stream fed by a producer task per backend.
    """
    return ItemStream([source._discover() for source in sources], maxsize=maxsize)
