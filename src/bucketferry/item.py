# src/bucketferry/item.py
"""
The transferable unit handed from a producer to a copy worker.

An `Item` couples the identity of one file or object with an exclusively
owned byte stream. Whoever holds the item last is responsible for releasing
that stream; `Item.aclose` makes the release safe to call from every exit
path while closing the underlying stream only once.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Protocol

logger: logging.Logger = logging.getLogger(__name__)


class ByteStream(Protocol):
    """An asynchronous, readable and closable byte stream."""

    async def read(self, size: int = -1) -> bytes: ...

    async def close(self) -> None: ...


@dataclass(eq=False)
class Item:
    """
    One transferable unit and its content stream.

    Attributes:
        prefix (str): The enumeration root the item was discovered under.
        path (str): The absolute path or backend-native key of the item.
        content (ByteStream): The exclusively owned content stream.
        size (int): Byte length when known in advance, else 0. Advisory only.
    """

    prefix: str
    path: str
    content: ByteStream = field(repr=False)
    size: int = 0
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.path.startswith(self.prefix):
            raise ValueError(
                f"Item path '{self.path}' is not below its prefix '{self.prefix}'."
            )

    def __str__(self) -> str:
        return f"(Prefix: {self.prefix}) {self.path}"

    @property
    def relative_path(self) -> str:
        """
        The path to reproduce at the destination, `/`-separated.

        Returns:
            str: `path` without `prefix` and without leading separators.
        """
        relative: str = self.path[len(self.prefix) :]
        if os.sep != "/":
            relative = relative.replace(os.sep, "/")
        return relative.lstrip("/")

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, size: int = -1) -> bytes:
        """
        Reads from the content stream.

        Args:
            size (int): Maximum number of bytes to read, -1 for everything.

        Returns:
            bytes: The data read, empty at end of stream.
        """
        if self._closed:
            raise ValueError(f"Read from released item {self}.")
        return await self.content.read(size)

    async def aclose(self) -> None:
        """Releases the content stream. Only the first call has an effect."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.content.close()
        except Exception as e:
            logger.warning(f"Could not release {self}: {e}")

    async def __aenter__(self) -> "Item":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
