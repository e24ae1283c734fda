# src/bucketferry/pipeline.py
"""Core orchestration logic for a bucketferry run."""

import logging
from contextlib import AsyncExitStack
from pathlib import Path
from typing import List

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from bucketferry.config import Config
from bucketferry.copier import copy_items
from bucketferry.storage.base import Storage, open_item_stream
from bucketferry.storage.gcs import connect_gcs
from bucketferry.storage.local import LocalStorage
from bucketferry.storage.s3 import connect_s3
from bucketferry.stream import ItemStream

logger: logging.Logger = logging.getLogger(__name__)


class FerryPipeline:
    """Copies between the local filesystem and an object store."""

    def __init__(self, config: Config) -> None:
        """
        Initializes the pipeline with the given configuration.

        Args:
            config (Config): The application configuration.
        """
        self._config: Config = config

    async def _open_remote(self, stack: AsyncExitStack) -> Storage:
        """
        Connects to the configured object store for the lifetime of `stack`.

        Args:
            stack (AsyncExitStack): Owns the client connection.

        Returns:
            Storage: The object store backend.
        """
        if self._config.s3 is not None:
            return await stack.enter_async_context(
                connect_s3(self._config.s3, self._config.app)
            )
        if self._config.gcs is not None:
            return await stack.enter_async_context(
                connect_gcs(self._config.gcs, self._config.app)
            )
        raise ValueError("No object store is configured.")

    async def run(self) -> None:
        """
        Executes the copy in the configured direction.

        `put` merges every local root into one stream and writes it to the
        object store; `get` lists the object store and writes to the single
        local directory.
        """
        app = self._config.app
        logger.info(f"Starting bucketferry {app.direction} via {app.backend}.")
        async with AsyncExitStack() as stack:
            remote: Storage = await self._open_remote(stack)
            destination: Storage
            items: ItemStream
            if app.direction == "put":
                sources: List[LocalStorage] = [
                    LocalStorage(Path(path)) for path in app.local_paths
                ]
                items = open_item_stream(*sources, maxsize=app.queue_size)
                destination = remote
            else:
                items = remote.list_files()
                destination = LocalStorage(app.local_paths[0])

            await self._run_copy(destination, items)
        logger.info("bucketferry run completed.")

    async def _run_copy(self, destination: Storage, items: ItemStream) -> None:
        """
        Drains the stream into the destination, with a progress bar if enabled.

        Args:
            destination (Storage): Where items are written.
            items (ItemStream): The items to copy.
        """
        app = self._config.app
        if not app.show_progress:
            await copy_items(
                destination, items, app.concurrency, app.continue_on_error
            )
            return

        # The total is unknown while enumeration is still running.
        progress: Progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            transient=True,
        )
        with progress:
            task_id: TaskID = progress.add_task("Copying...", total=None)
            await copy_items(
                destination,
                items,
                app.concurrency,
                app.continue_on_error,
                progress_bar=progress,
                progress_task_id=task_id,
            )
