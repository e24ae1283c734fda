# src/bucketferry/stream.py
"""
The shared item queue between producers and copy workers.

Each enumeration source runs as its own producer task that publishes items
into a single FIFO. Any number of consumers pull from it; every item is
handed to exactly one of them. The stream is finite and cannot be restarted.
"""

import asyncio
import logging
from typing import AsyncIterator, Iterable, List, Optional, Union

from bucketferry.item import Item

logger: logging.Logger = logging.getLogger(__name__)


class _End:
    """Sentinel published once every producer has finished."""


_END: _End = _End()


class ItemStream:
    """
    A lazy stream of items fed concurrently by one or more producers.

    Must be created inside a running event loop, since the producers start
    immediately.
    """

    def __init__(
        self,
        producers: Iterable[AsyncIterator[Item]],
        maxsize: int = 0,
    ) -> None:
        """
        Start one producer task per source.

        Args:
            producers (Iterable[AsyncIterator[Item]]): Async iterators that
                discover items.
            maxsize (int): Maximum number of items waiting in the queue, 0
                for no limit.
        """
        # The queue itself is unbounded so the end marker can always be
        # published; capacity is enforced by the slots semaphore.
        self._queue: asyncio.Queue[Union[Item, _End]] = asyncio.Queue()
        self._slots: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(maxsize) if maxsize > 0 else None
        )
        self._closed: bool = False
        sources: List[AsyncIterator[Item]] = list(producers)
        self._active: int = len(sources)
        self._tasks: List[asyncio.Task[None]] = [
            asyncio.create_task(self._produce(source)) for source in sources
        ]
        if not sources:
            self._queue.put_nowait(_END)

    async def _produce(self, source: AsyncIterator[Item]) -> None:
        """
        Drains one source into the queue.

        Args:
            source (AsyncIterator[Item]): The producer to drain.
        """
        try:
            async for item in source:
                try:
                    if self._slots is not None:
                        await self._slots.acquire()
                    self._queue.put_nowait(item)
                except BaseException:
                    await item.aclose()
                    raise
        except asyncio.CancelledError:
            logger.debug("Producer cancelled.")
        except Exception:
            logger.exception("Enumeration failed, item stream ends early.")
        finally:
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
            self._active -= 1
            if self._active == 0:
                self._queue.put_nowait(_END)

    async def get(self) -> Optional[Item]:
        """
        Waits for the next item.

        Returns:
            Optional[Item]: The next item, or None once the stream is exhausted.
        """
        entry: Union[Item, _End] = await self._queue.get()
        if isinstance(entry, _End):
            # Leave the marker in place for the other consumers.
            self._queue.put_nowait(entry)
            return None
        if self._slots is not None:
            self._slots.release()
        return entry

    async def stop(self) -> None:
        """Stops discovery. Items already queued stay available."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        # A producer cancelled before its first step never reaches its
        # cleanup, so the end marker may still be missing.
        if self._active:
            self._active = 0
            self._queue.put_nowait(_END)

    async def aclose(self) -> None:
        """Stops discovery and releases every item nobody has taken yet."""
        if self._closed:
            return
        self._closed = True
        await self.stop()
        released: int = 0
        while not self._queue.empty():
            entry: Union[Item, _End] = self._queue.get_nowait()
            if isinstance(entry, _End):
                continue
            await entry.aclose()
            released += 1
        self._queue.put_nowait(_END)
        if released:
            logger.info(f"Released {released} queued items without copying them.")

    def __aiter__(self) -> "ItemStream":
        return self

    async def __anext__(self) -> Item:
        item: Optional[Item] = await self.get()
        if item is None:
            raise StopAsyncIteration
        return item
