# src/bucketferry/copier.py
"""
The concurrent copy engine.

A fixed pool of worker tasks drains a shared item stream into a destination
storage. Each worker owns at most one item at a time, so no more than
`concurrency` items are ever in flight.

On a write failure the run either discards the item and carries on, or,
in fail-fast mode, aborts: no new item is dispatched, writes already in
flight on other workers are allowed to finish, and `copy_items` raises
`FatalCopyError` once every worker has stopped.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from bucketferry.exceptions import ConfigError, FatalCopyError, OpenError, WriteError
from bucketferry.item import Item
from bucketferry.storage.base import Storage
from bucketferry.stream import ItemStream

if TYPE_CHECKING:
    from rich.progress import Progress, TaskID

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class CopyStats:
    """
    Outcome counters of one copy run.

    Attributes:
        copied (int): Items committed to the destination.
        failed (int): Items the destination did not accept.
        skipped (int): Items whose source stream could not be opened.
        first_failure (Exception, optional): The failure that aborted a
            fail-fast run.
    """

    copied: int = 0
    failed: int = 0
    skipped: int = 0
    first_failure: Optional[Exception] = None


async def copy_worker(
    worker_id: int,
    destination: Storage,
    items: ItemStream,
    continue_on_error: bool,
    abort_event: asyncio.Event,
    stats: CopyStats,
    progress_bar: Optional["Progress"] = None,
    progress_task_id: Optional["TaskID"] = None,
) -> None:
    """
    A worker task that copies items until the stream ends or the run aborts.

    The item taken from the stream is released on every exit path.

    Args:
        worker_id (int): A unique identifier for this worker.
        destination (Storage): The storage to write to.
        items (ItemStream): The shared stream to pull items from.
        continue_on_error (bool): Discard failed items instead of aborting.
        abort_event (asyncio.Event): Set once a fail-fast run must stop.
        stats (CopyStats): Shared outcome counters.
        progress_bar (Progress, optional): The rich Progress instance for UI updates.
        progress_task_id (TaskID, optional): The TaskID of the progress bar.
    """
    logger.debug(f"Worker {worker_id} started.")
    while True:
        item: Optional[Item] = await items.get()
        if item is None:
            break
        if abort_event.is_set():
            await item.aclose()
            break
        try:
            await destination.put_file(item)
            stats.copied += 1
            logger.debug(f"Transfer of {item} done")
        except OpenError as e:
            stats.skipped += 1
            logger.warning(f"Skipping {item}: {e}")
        except Exception as e:
            stats.failed += 1
            if isinstance(e, WriteError):
                logger.error(f"Transfer of {item} failed: {e}")
            else:
                logger.exception(f"An unexpected error occurred transferring {item}")
            if not continue_on_error and not abort_event.is_set():
                stats.first_failure = e
                abort_event.set()
                logger.critical("Aborting run: no further items will be copied.")
                await items.stop()
        finally:
            await item.aclose()
            if progress_bar is not None and progress_task_id is not None:
                progress_bar.update(progress_task_id, advance=1)
    logger.debug(f"Worker {worker_id} finished.")


async def copy_items(
    destination: Storage,
    items: ItemStream,
    concurrency: int,
    continue_on_error: bool,
    progress_bar: Optional["Progress"] = None,
    progress_task_id: Optional["TaskID"] = None,
) -> None:
    """
    Copies every item of a stream into a destination storage.

    Returns once every worker has exhausted the stream. The stream is closed
    on return, releasing anything still queued.

    Args:
        destination (Storage): The storage to write to.
        items (ItemStream): The items to copy.
        concurrency (int): Number of workers, at least 1.
        continue_on_error (bool): Log and skip failed items instead of aborting.
        progress_bar (Progress, optional): The rich Progress instance for UI updates.
        progress_task_id (TaskID, optional): The TaskID of the progress bar.

    Raises:
        ConfigError: If `concurrency` is below 1.
        FatalCopyError: If a write failed and `continue_on_error` is False.
    """
    if concurrency < 1:
        await items.aclose()
        raise ConfigError("Concurrency must be at least 1.")

    abort_event: asyncio.Event = asyncio.Event()
    stats: CopyStats = CopyStats()

    logger.info(f"Starting {concurrency} workers...")
    worker_tasks: List[asyncio.Task[None]] = [
        asyncio.create_task(
            copy_worker(
                worker_id=i,
                destination=destination,
                items=items,
                continue_on_error=continue_on_error,
                abort_event=abort_event,
                stats=stats,
                progress_bar=progress_bar,
                progress_task_id=progress_task_id,
            )
        )
        for i in range(concurrency)
    ]
    try:
        await asyncio.gather(*worker_tasks)
    finally:
        for task in worker_tasks:
            task.cancel()
        await asyncio.gather(*worker_tasks, return_exceptions=True)
        await items.aclose()

    logger.info(
        f"Copy finished: {stats.copied} copied, {stats.failed} failed, "
        f"{stats.skipped} skipped."
    )
    if stats.first_failure is not None:
        raise FatalCopyError(
            f"Run aborted after a failed transfer: {stats.first_failure}"
        ) from stats.first_failure
