# src/bucketferry/config.py
"""
Configuration for the bucketferry pipeline.

This module centralizes all configuration, loading sensitive values from
environment variables and providing typed, immutable dataclasses that are
constructed once and handed to the copy engine and to each storage backend.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import ParseResult, urlparse

from botocore.session import get_session

from bucketferry.exceptions import ConfigError

BACKENDS: Tuple[str, ...] = ("s3", "gcs")
DIRECTIONS: Tuple[str, ...] = ("put", "get")
DEFAULT_S3_ACL: str = "bucket-owner-full-control"


def _get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Retrieves a required environment variable.

    Args:
        name (str): The name of the environment variable.
        default (str, optional): The default value if the variable is not set.

    Returns:
        str: The value of the environment variable.
    """
    value: Optional[str] = os.environ.get(name, default)
    if not value:
        raise ConfigError(f"Environment variable '{name}' must be set.")
    return value


def parse_bucket_url(value: str) -> Tuple[Optional[str], str]:
    """
    Splits a bucket reference into an endpoint URL and a bucket name.

    Accepts a plain bucket name, ``s3://bucket``, ``gs://bucket`` or a
    path-style URL such as ``https://s3.eu-west-1.amazonaws.com/bucket``,
    where the bucket is the first path segment.

    Args:
        value (str): The bucket reference.

    Returns:
        Tuple[Optional[str], str]: The endpoint URL (None when the reference
            carries none) and the bucket name.
    """
    if "://" not in value:
        return None, value.strip("/")

    url: ParseResult = urlparse(value)
    if url.scheme in ("s3", "gs"):
        bucket: str = url.netloc
        endpoint: Optional[str] = None
    elif url.scheme in ("http", "https") and url.netloc:
        bucket = url.path.lstrip("/").split("/", 1)[0]
        endpoint = f"{url.scheme}://{url.netloc}"
    else:
        raise ConfigError(f"Unsupported bucket URL '{value}'.")

    if not bucket:
        raise ConfigError(f"Bucket URL '{value}' does not name a bucket.")
    return endpoint, bucket


@dataclass(frozen=True)
class S3Config:
    """
    Represents the configuration for an S3-compatible endpoint.

    Attributes:
        access_key_id (str): The access key ID.
        secret_access_key (str): The secret access key.
        bucket (str): The bucket name.
        region (str): The AWS region.
        endpoint_url (str, optional): The S3 endpoint URL. None means the
            regular AWS endpoint for `region`.
        acl (str, optional): Canned ACL sent with every upload, None for none.
    """

    access_key_id: str
    secret_access_key: str
    bucket: str
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    acl: Optional[str] = DEFAULT_S3_ACL

    def __post_init__(self) -> None:
        # Custom endpoints (MinIO, Ceph, ...) accept arbitrary region names.
        if self.endpoint_url is None:
            known_regions = get_session().get_available_regions("s3")
            if known_regions and self.region not in known_regions:
                raise ConfigError(f"Invalid region name '{self.region}'.")

    @classmethod
    def from_env(cls) -> "S3Config":
        """
        Builds the S3 configuration from `FERRY_S3_*` environment variables.

        Returns:
            S3Config: The resolved configuration.
        """
        endpoint_url, bucket = parse_bucket_url(_get_env_var("FERRY_S3_BUCKET"))
        return cls(
            access_key_id=_get_env_var("FERRY_S3_ACCESS_KEY_ID"),
            secret_access_key=_get_env_var("FERRY_S3_SECRET_ACCESS_KEY"),
            bucket=bucket,
            region=_get_env_var("FERRY_S3_REGION", "us-east-1"),
            endpoint_url=os.environ.get("FERRY_S3_ENDPOINT_URL") or endpoint_url,
            acl=os.environ.get("FERRY_S3_ACL", DEFAULT_S3_ACL) or None,
        )

    def as_boto_dict(self) -> Dict[str, Optional[str]]:
        """
        Returns the configuration as a dictionary suitable for aiobotocore clients.

        Returns:
            Dict[str, Optional[str]]: A dictionary of client parameters.
        """
        return {
            "endpoint_url": self.endpoint_url,
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "region_name": self.region,
        }


@dataclass(frozen=True)
class GCSConfig:
    """
    Represents the configuration for a Google Cloud Storage bucket.

    Attributes:
        bucket (str): The bucket name.
        credentials_file (Path): Service account JSON key file.
        project (str, optional): The project owning the bucket.
    """

    bucket: str
    credentials_file: Path
    project: Optional[str] = None

    @classmethod
    def from_env(cls) -> "GCSConfig":
        """
        Builds the GCS configuration from `FERRY_GCS_*` environment variables.

        Returns:
            GCSConfig: The resolved configuration.
        """
        credentials_file: Path = Path(_get_env_var("FERRY_GCS_CREDENTIALS_FILE"))
        if not credentials_file.is_file():
            raise ConfigError(
                f"GCS credentials file '{credentials_file}' does not exist."
            )
        return cls(
            bucket=parse_bucket_url(_get_env_var("FERRY_GCS_BUCKET"))[1],
            credentials_file=credentials_file,
            project=os.environ.get("FERRY_GCS_PROJECT") or None,
        )


@dataclass(frozen=True)
class AppConfig:
    """
    Defines the application's operational parameters.

    Attributes:
        direction (str): `put` copies local files into the bucket, `get`
            copies bucket objects into a local directory.
        backend (str): The object store on the remote side, `s3` or `gcs`.
        local_paths (Tuple[Path, ...]): Local roots. Sources for `put`; the
            single destination directory for `get`.
        prefix (str): Object key prefix applied to the remote side.
        concurrency (int): Number of copy workers.
        continue_on_error (bool): Skip failed items instead of aborting.
        queue_size (int): Capacity of the item queue, 0 for unbounded.
        request_max_attempts (int): Max attempts for a single SDK request.
        show_progress (bool): Whether to render a progress bar.
    """

    direction: str = "put"
    backend: str = "s3"
    local_paths: Tuple[Path, ...] = field(default_factory=lambda: (Path("."),))
    prefix: str = ""
    concurrency: int = 10
    continue_on_error: bool = False
    queue_size: int = 1024
    request_max_attempts: int = 5
    show_progress: bool = True

    def __post_init__(self) -> None:
        if self.direction not in DIRECTIONS:
            raise ConfigError(f"Unknown direction '{self.direction}'.")
        if self.backend not in BACKENDS:
            raise ConfigError(f"Unknown backend '{self.backend}'.")
        if self.concurrency < 1:
            raise ConfigError("Concurrency must be at least 1.")
        if self.queue_size < 0:
            raise ConfigError("Queue size must not be negative.")
        if not self.local_paths:
            raise ConfigError("At least one local path is required.")
        if self.direction == "get" and len(self.local_paths) != 1:
            raise ConfigError("Downloads take exactly one local directory.")


@dataclass(frozen=True)
class Config:
    """
    Top-level configuration container for the entire application.

    Only the configuration of the selected backend is populated.

    Attributes:
        app (AppConfig): General application settings.
        s3 (S3Config, optional): Configuration for the S3-compatible service.
        gcs (GCSConfig, optional): Configuration for the GCS bucket.
    """

    app: AppConfig = field(default_factory=AppConfig)
    s3: Optional[S3Config] = None
    gcs: Optional[GCSConfig] = None

    @classmethod
    def load(cls, app: AppConfig) -> "Config":
        """
        Resolves the remote backend configuration from the environment.

        Args:
            app (AppConfig): The application settings.

        Returns:
            Config: The complete configuration.
        """
        if app.backend == "s3":
            return cls(app=app, s3=S3Config.from_env())
        return cls(app=app, gcs=GCSConfig.from_env())
