# src/bucketferry/storage/s3.py
"""S3-compatible object store backend, built on aiobotocore."""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Optional

from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from bucketferry.config import DEFAULT_S3_ACL, AppConfig, S3Config
from bucketferry.exceptions import OpenError, WriteError
from bucketferry.item import Item
from bucketferry.storage.base import (
    Storage,
    guess_content_type,
    listing_prefix,
    object_key,
)

if TYPE_CHECKING:
    from aiobotocore.response import StreamingBody
    from types_aiobotocore_s3.client import S3Client
    from types_aiobotocore_s3.type_defs import (
        GetObjectOutputTypeDef,
        ListObjectsV2OutputTypeDef,
    )

logger: logging.Logger = logging.getLogger(__name__)

PAGE_SIZE: int = 1000
OWNER_ACL: str = DEFAULT_S3_ACL


class S3ObjectStream:
    """
    The body of one object, fetched on first read.

    Opening lazily keeps listing cheap: no GET is issued for an object until a
    worker starts copying it.
    """

    def __init__(self, client: "S3Client", bucket: str, key: str) -> None:
        self._client: "S3Client" = client
        self._bucket: str = bucket
        self._key: str = key
        self._uri: str = f"s3://{bucket}/{key}"
        self._body: Optional["StreamingBody"] = None

    async def _open(self) -> "StreamingBody":
        try:
            response: "GetObjectOutputTypeDef" = await self._client.get_object(
                Bucket=self._bucket, Key=self._key
            )
        except (ClientError, BotoCoreError) as e:
            raise OpenError(f"Could not receive '{self._uri}': {e}") from e
        return response["Body"]

    async def read(self, size: int = -1) -> bytes:
        if self._body is None:
            self._body = await self._open()
        try:
            return await self._body.read(None if size < 0 else size)
        except (ClientError, BotoCoreError) as e:
            raise OpenError(f"Could not read '{self._uri}': {e}") from e

    async def close(self) -> None:
        if self._body is not None:
            self._body.close()
            self._body = None


class S3Storage(Storage):
    """A key prefix inside an S3-compatible bucket."""

    def __init__(
        self,
        client: "S3Client",
        bucket: str,
        prefix: str = "",
        queue_size: int = 0,
        acl: Optional[str] = OWNER_ACL,
    ) -> None:
        """
        Args:
            client (S3Client): An initialized, authenticated S3 client.
            bucket (str): The bucket name.
            prefix (str): Listing filter, and the prefix for written keys.
            queue_size (int): Capacity of the stream returned by `list_files`.
            acl (str, optional): Canned ACL for uploads, None to send none.
        """
        super().__init__(queue_size)
        self._client: "S3Client" = client
        self.bucket: str = bucket
        self.prefix: str = prefix
        self._acl: Optional[str] = acl

    async def _discover(self) -> AsyncIterator[Item]:
        marker: str = ""
        while True:
            params: Dict[str, Any] = {
                "Bucket": self.bucket,
                "Prefix": self.prefix,
                "MaxKeys": PAGE_SIZE,
            }
            if marker:
                params["StartAfter"] = marker
            try:
                page: "ListObjectsV2OutputTypeDef" = (
                    await self._client.list_objects_v2(**params)
                )
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Could not list items in bucket {self.bucket}: {e}")
                return

            for obj in page.get("Contents", []):
                key: str = obj["Key"]
                marker = key
                if key.endswith("/"):
                    logger.debug(f"Skipping folder placeholder '{key}'.")
                    continue
                yield Item(
                    prefix=listing_prefix(key, self.prefix),
                    path=key,
                    content=S3ObjectStream(self._client, self.bucket, key),
                    size=obj.get("Size", 0),
                )

            if not page.get("IsTruncated"):
                break

    async def put_file(self, item: Item) -> None:
        async with item:
            key: str = object_key(self.prefix, item.relative_path)
            # Providers that require Content-Length reject chunked uploads,
            # so the body is buffered.
            body: bytes = await item.read()
            if item.size and item.size != len(body):
                logger.debug(
                    f"{item} announced {item.size} bytes but has {len(body)}."
                )
            params: Dict[str, Any] = {
                "Bucket": self.bucket,
                "Key": key,
                "Body": body,
                "ContentLength": len(body),
                "ContentType": guess_content_type(item.path),
            }
            if self._acl:
                params["ACL"] = self._acl
            try:
                await self._client.put_object(**params)
            except (ClientError, BotoCoreError) as e:
                raise WriteError(
                    f"Could not upload {item} to 's3://{self.bucket}/{key}': {e}"
                ) from e


@asynccontextmanager
async def connect_s3(
    config: S3Config,
    app_config: AppConfig,
    session: Optional[AioSession] = None,
) -> AsyncIterator[S3Storage]:
    """
    Opens an S3 client scoped to the block and wraps it in an `S3Storage`.

    Args:
        config (S3Config): Endpoint, credentials and bucket.
        app_config (AppConfig): Prefix, queue size and SDK settings.
        session (AioSession, optional): Session to create the client from.

    Yields:
        S3Storage: The storage, valid until the block exits.
    """
    # Signature v4 without payload signing is what non-AWS providers that
    # require Content-Length accept.
    boto_config: BotoConfig = BotoConfig(
        signature_version="s3v4",
        max_pool_connections=app_config.concurrency + 10,
        retries={"max_attempts": app_config.request_max_attempts},
        s3={"payload_signing_enabled": False},
    )
    session = session or get_session()
    async with session.create_client(
        "s3", **config.as_boto_dict(), config=boto_config
    ) as client:
        yield S3Storage(
            client,
            config.bucket,
            prefix=app_config.prefix,
            queue_size=app_config.queue_size,
            acl=config.acl,
        )
