# src/bucketferry/__init__.py
"""
bucketferry: A concurrent copier between local files and object stores.

This package moves discrete items (files or objects) between the local
filesystem, S3-compatible buckets and GCS buckets through one storage
abstraction, draining a lazily enumerated item stream with a fixed-size
worker pool.

The primary entry points for programmatic use are `copy_items`, the storage
backends and the `FerryPipeline` class.
"""

from typing import List

from bucketferry.copier import copy_items
from bucketferry.item import Item
from bucketferry.pipeline import FerryPipeline
from bucketferry.storage import (
    GCSStorage,
    LocalStorage,
    S3Storage,
    Storage,
    open_item_stream,
)
from bucketferry.stream import ItemStream

__all__: List[str] = [
    "FerryPipeline",
    "Item",
    "ItemStream",
    "Storage",
    "LocalStorage",
    "S3Storage",
    "GCSStorage",
    "copy_items",
    "open_item_stream",
]
