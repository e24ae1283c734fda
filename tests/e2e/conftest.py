# tests/e2e/conftest.py
"""
Pytest fixtures for the bucketferry end-to-end tests.

This module sets up the testing environment, including:
- Spinning up a Docker container with an S3 service (MinIO).
- Creating and cleaning up an isolated bucket for each test function.
- Pointing the `FERRY_S3_*` environment variables at that bucket.
"""

import uuid
from pathlib import Path
from typing import Any, AsyncGenerator, Dict

import boto3
import pytest
import pytest_asyncio
import requests
from aiobotocore.session import AioSession, get_session
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError
from requests.exceptions import ConnectionError
from types_boto3_s3.service_resource import Bucket, S3ServiceResource

# --- Constants ---
S3_ACCESS_KEY: str = "minio-key"
S3_SECRET_KEY: str = "minio-secret"
S3_REGION: str = "us-east-1"


# --- Docker Fixtures ---
@pytest.fixture(scope="session")
def docker_compose_file(pytestconfig: pytest.Config) -> str:
    """
    Locate the docker-compose.yml file for the test suite.

    Args:
        pytestconfig (pytest.Config): The pytest configuration object.

    Returns:
        str: The absolute path to the docker-compose.yml file.
    """
    return str(Path(pytestconfig.rootpath) / "tests" / "docker-compose.yml")


@pytest.fixture(scope="session")
def docker_compose_project_name() -> str:
    """
    Define a unique, static project name for the Docker stack.

    Returns:
        str: A unique name for the docker-compose project.
    """
    return "bucketferry-tests"


def _is_s3_responsive(url: str) -> bool:
    """
    Check if the MinIO health endpoint is responsive.

    Args:
        url (str): The base URL of the MinIO API.

    Returns:
        bool: True if the service is responsive, False otherwise.
    """
    try:
        response: requests.Response = requests.get(f"{url}/minio/health/live")
        return response.status_code == 200
    except ConnectionError:
        return False


@pytest.fixture(scope="session")
def s3_service(docker_ip: str, docker_services: Any) -> Dict[str, Any]:
    """
    Ensure the S3 service is running and return its connection details.

    Args:
        docker_ip (str): The IP address of the Docker host, provided by pytest-docker.
        docker_services (Any): The pytest-docker services fixture.

    Returns:
        Dict[str, Any]: Client parameters for the S3 service.
    """
    port: int = docker_services.port_for("minio", 9000)
    api_url: str = f"http://{docker_ip}:{port}"
    docker_services.wait_until_responsive(
        timeout=30.0, pause=0.1, check=lambda: _is_s3_responsive(api_url)
    )
    return {
        "endpoint_url": api_url,
        "aws_access_key_id": S3_ACCESS_KEY,
        "aws_secret_access_key": S3_SECRET_KEY,
        "region_name": S3_REGION,
    }


# --- Application Fixtures ---
@pytest_asyncio.fixture(scope="function")
async def s3_bucket(
    s3_service: Dict[str, Any], monkeypatch: pytest.MonkeyPatch
) -> AsyncGenerator[str, None]:
    """
    Create a unique, isolated bucket for a single test function.

    The `FERRY_S3_*` environment variables are pointed at the bucket, and the
    bucket and its contents are deleted after the test.

    Args:
        s3_service (Dict[str, Any]): Connection details for the S3 service.
        monkeypatch (pytest.MonkeyPatch): Scopes the environment to the test.

    Yields:
        str: The name of the created bucket.
    """
    session: AioSession = get_session()
    bucket: str = f"test-bucket-{uuid.uuid4()}"

    monkeypatch.setenv("FERRY_S3_BUCKET", f"{s3_service['endpoint_url']}/{bucket}")
    monkeypatch.setenv("FERRY_S3_ACCESS_KEY_ID", S3_ACCESS_KEY)
    monkeypatch.setenv("FERRY_S3_SECRET_ACCESS_KEY", S3_SECRET_KEY)
    monkeypatch.setenv("FERRY_S3_REGION", S3_REGION)
    monkeypatch.setenv("FERRY_S3_ACL", "private")
    monkeypatch.delenv("FERRY_S3_ENDPOINT_URL", raising=False)

    async with session.create_client("s3", **s3_service) as client:
        await client.create_bucket(Bucket=bucket)

    yield bucket

    # Cleanup: boto3 is simpler for synchronous, recursive delete
    boto_config: BotoConfig = BotoConfig(
        retries={"max_attempts": 0, "mode": "standard"}
    )
    resource: S3ServiceResource = boto3.resource(
        "s3", **s3_service, config=boto_config
    )
    try:
        bucket_obj: Bucket = resource.Bucket(bucket)
        bucket_obj.objects.all().delete()
        bucket_obj.delete()
    except ClientError as e:
        if e.response["Error"]["Code"] != "NoSuchBucket":
            raise
