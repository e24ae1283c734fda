# src/bucketferry/storage/gcs.py
"""
Google Cloud Storage backend.

The google-cloud-storage client is blocking, so every request runs in the
default executor to keep the event loop free for the other workers.
"""

import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from typing import IO, AsyncIterator, List, Optional, Tuple

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from bucketferry.config import AppConfig, GCSConfig
from bucketferry.exceptions import ConfigError, OpenError, WriteError
from bucketferry.item import Item
from bucketferry.storage.base import (
    Storage,
    guess_content_type,
    listing_prefix,
    object_key,
)

logger: logging.Logger = logging.getLogger(__name__)

PAGE_SIZE: int = 1000

_GCS_ERRORS: Tuple[type, ...] = (GoogleAPIError, GoogleAuthError)


class GCSBlobStream:
    """The media of one blob, downloaded on first read."""

    def __init__(self, blob: storage.Blob) -> None:
        self._blob: storage.Blob = blob
        self._uri: str = f"gs://{blob.bucket.name}/{blob.name}"
        self._reader: Optional[IO[bytes]] = None

    async def read(self, size: int = -1) -> bytes:
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        try:
            if self._reader is None:
                self._reader = await loop.run_in_executor(None, self._blob.open, "rb")
            return await loop.run_in_executor(None, self._reader.read, size)
        except _GCS_ERRORS as e:
            raise OpenError(f"Could not get '{self._uri}': {e}") from e

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None


class GCSStorage(Storage):
    """A name prefix inside a GCS bucket."""

    def __init__(
        self,
        client: storage.Client,
        bucket: str,
        prefix: str = "",
        queue_size: int = 0,
    ) -> None:
        """
        Args:
            client (storage.Client): An authenticated storage client.
            bucket (str): The bucket name.
            prefix (str): Listing filter, and the prefix for written names.
            queue_size (int): Capacity of the stream returned by `list_files`.
        """
        super().__init__(queue_size)
        self._client: storage.Client = client
        self._bucket: storage.Bucket = client.bucket(bucket)
        self.bucket_name: str = bucket
        self.prefix: str = prefix

    def _fetch_page(
        self, marker: Optional[str]
    ) -> Tuple[List[storage.Blob], Optional[str]]:
        """
        Requests one listing page.

        Args:
            marker (str, optional): Continuation token of the previous page.

        Returns:
            Tuple[List[storage.Blob], Optional[str]]: The blobs of the page and
                the token for the next one, None on the last page.
        """
        blobs = self._client.list_blobs(
            self.bucket_name,
            prefix=self.prefix or None,
            page_size=PAGE_SIZE,
            page_token=marker,
        )
        page = next(blobs.pages, None)
        return (list(page) if page is not None else []), blobs.next_page_token

    async def _discover(self) -> AsyncIterator[Item]:
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        marker: Optional[str] = None
        while True:
            try:
                blobs, marker = await loop.run_in_executor(
                    None, self._fetch_page, marker
                )
            except _GCS_ERRORS as e:
                logger.error(f"Could not list items in bucket {self.bucket_name}: {e}")
                return

            for blob in blobs:
                if blob.name.endswith("/"):
                    logger.debug(f"Skipping folder placeholder '{blob.name}'.")
                    continue
                yield Item(
                    prefix=listing_prefix(blob.name, self.prefix),
                    path=blob.name,
                    content=GCSBlobStream(blob),
                    size=blob.size or 0,
                )

            if not marker:
                break

    async def put_file(self, item: Item) -> None:
        loop: asyncio.AbstractEventLoop = asyncio.get_running_loop()
        async with item:
            name: str = object_key(self.prefix, item.relative_path)
            data: bytes = await item.read()
            blob: storage.Blob = self._bucket.blob(name)
            upload = functools.partial(
                blob.upload_from_string,
                data,
                content_type=guess_content_type(item.path),
            )
            try:
                await loop.run_in_executor(None, upload)
            except _GCS_ERRORS as e:
                raise WriteError(
                    f"Could not create 'gs://{self.bucket_name}/{name}' "
                    f"from {item}: {e}"
                ) from e


@asynccontextmanager
async def connect_gcs(
    config: GCSConfig, app_config: AppConfig
) -> AsyncIterator[GCSStorage]:
    """
    Authenticates a storage client and wraps it in a `GCSStorage`.

    Args:
        config (GCSConfig): Bucket and service account credentials.
        app_config (AppConfig): Prefix and queue size.

    Yields:
        GCSStorage: The storage, valid until the block exits.
    """
    try:
        client: storage.Client = storage.Client.from_service_account_json(
            str(config.credentials_file), project=config.project
        )
    except (ValueError, OSError, GoogleAuthError) as e:
        raise ConfigError(
            f"Could not load GCS credentials from '{config.credentials_file}': {e}"
        ) from e
    try:
        yield GCSStorage(
            client,
            config.bucket,
            prefix=app_config.prefix,
            queue_size=app_config.queue_size,
        )
    finally:
        client.close()
