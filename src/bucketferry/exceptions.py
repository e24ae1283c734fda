# src/bucketferry/exceptions.py
"""Custom exceptions for the bucketferry application."""


class BucketFerryError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigError(BucketFerryError):
    """Raised for configuration-related issues, before any copying starts."""

    pass


class EnumerationError(BucketFerryError):
    """Raised when a source cannot be listed or walked."""

    pass


class OpenError(BucketFerryError):
    """Raised when the content stream of a single item cannot be opened."""

    pass


class WriteError(BucketFerryError):
    """Raised when a destination fails to accept an item."""

    pass


class FatalCopyError(WriteError):
    """Raised when a write failure aborts a fail-fast copy run."""

    pass
