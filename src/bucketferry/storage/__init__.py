# src/bucketferry/storage/__init__.py
"""Storage backends exposing the `{list_files, put_file}` capability."""

from typing import List

from bucketferry.storage.base import Storage, open_item_stream
from bucketferry.storage.gcs import GCSStorage, connect_gcs
from bucketferry.storage.local import LocalStorage
from bucketferry.storage.s3 import S3Storage, connect_s3

__all__: List[str] = [
    "Storage",
    "open_item_stream",
    "LocalStorage",
    "S3Storage",
    "GCSStorage",
    "connect_s3",
    "connect_gcs",
]
