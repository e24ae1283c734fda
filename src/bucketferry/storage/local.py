# src/bucketferry/storage/local.py
"""Local filesystem backend."""

import asyncio
import logging
import os
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, List, Tuple

import aiofiles
import aiofiles.os

from bucketferry.exceptions import EnumerationError, OpenError, WriteError
from bucketferry.item import Item
from bucketferry.storage.base import Storage

logger: logging.Logger = logging.getLogger(__name__)

CHUNK_SIZE: int = 1024 * 1024

# (path, is_dir, size) for each entry of a directory, in name order.
_DirEntry = Tuple[str, bool, int]


def _scan_dir(path: str) -> List[_DirEntry]:
    """
    Lists one directory, keeping subdirectories and regular files.

    Args:
        path (str): The directory to list.

    Returns:
        List[_DirEntry]: The entries, sorted by name.
    """
    entries: List[_DirEntry] = []
    try:
        with os.scandir(path) as it:
            for entry in sorted(it, key=lambda e: e.name):
                if entry.is_dir(follow_symlinks=False):
                    entries.append((entry.path, True, 0))
                elif entry.is_file():
                    entries.append((entry.path, False, entry.stat().st_size))
    except OSError as e:
        raise EnumerationError(f"Could not read directory '{path}': {e}") from e
    return entries


class LocalStorage(Storage):
    """A directory tree on the local filesystem."""

    def __init__(self, root: Path, queue_size: int = 0) -> None:
        """
        Args:
            root (Path): The walk root for listing, the target root for writes.
            queue_size (int): Capacity of the stream returned by `list_files`.
        """
        super().__init__(queue_size)
        self.root: Path = Path(root)

    async def _open_item(self, prefix: str, path: str, size: int) -> Item:
        try:
            handle = await aiofiles.open(path, "rb")
        except OSError as e:
            raise OpenError(f"Could not open {path}: {e}") from e
        return Item(prefix=prefix, path=path, content=handle, size=size)

    async def _discover(self) -> AsyncIterator[Item]:
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        root: str = os.path.abspath(self.root)
        try:
            root_stat: os.stat_result = await loop.run_in_executor(None, os.stat, root)
        except OSError as e:
            logger.error(f"Could not stat {root}: {e}")
            return

        if not os.path.isdir(root):
            # A single file is reported relative to its parent directory.
            try:
                yield await self._open_item(
                    os.path.dirname(root), root, root_stat.st_size
                )
            except OpenError as e:
                logger.error(str(e))
            return

        logger.info(f"Traversing {root}...")
        try:
            entries: List[_DirEntry] = await loop.run_in_executor(
                None, _scan_dir, root
            )
        except EnumerationError as e:
            logger.error(str(e))
            return

        # Depth-first, in name order: entries are pushed reversed so the
        # lowest name is popped first.
        pending: List[_DirEntry] = list(reversed(entries))
        while pending:
            path, is_dir, size = pending.pop()
            if not is_dir:
                try:
                    yield await self._open_item(root, path, size)
                except OpenError as e:
                    logger.error(str(e))
                continue
            try:
                entries = await loop.run_in_executor(None, _scan_dir, path)
            except EnumerationError as e:
                logger.warning(f"{e}. Skipping subtree.")
                continue
            pending.extend(reversed(entries))

    def _target_path(self, item: Item) -> Path:
        relative: PurePosixPath = PurePosixPath(item.relative_path)
        if not relative.parts or relative.is_absolute() or ".." in relative.parts:
            raise WriteError(f"Refusing unsafe relative path '{item.relative_path}'.")
        return self.root.joinpath(*relative.parts)

    async def _discard(self, partial: Path) -> None:
        try:
            await aiofiles.os.remove(partial)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial file {partial}: {e}")

    async def put_file(self, item: Item) -> None:
        async with item:
            target: Path = self._target_path(item)
            # The first read opens lazy sources, so an item that cannot be
            # opened never touches the destination tree.
            chunk: bytes = await item.read(CHUNK_SIZE)
            partial: Path = target.with_name(f".{target.name}.part")
            try:
                await aiofiles.os.makedirs(target.parent, exist_ok=True)
                async with aiofiles.open(partial, "wb") as f:
                    while chunk:
                        await f.write(chunk)
                        chunk = await item.read(CHUNK_SIZE)
                await aiofiles.os.replace(partial, target)
            except OSError as e:
                await self._discard(partial)
                raise WriteError(f"Could not write {target}: {e}") from e
            except BaseException:
                await self._discard(partial)
                raise
