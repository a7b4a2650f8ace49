"""S3 service for managing AWS S3 operations."""

import configparser
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, NoCredentialsError
from mypy_boto3_s3 import S3Client

from s3uploader.config import MetadataHeader

# Standard HTTP headers S3 stores as object properties rather than user metadata
HEADER_PARAMS = {
    "cache-control": "CacheControl",
    "content-disposition": "ContentDisposition",
    "content-encoding": "ContentEncoding",
    "content-language": "ContentLanguage",
    "content-type": "ContentType",
}

USER_METADATA_PREFIX = "x-amz-meta-"


class ObjectStore(Protocol):
    """Durable remote storage for uploaded files."""

    def put(
        self, bucket: str, key: str, path: Path, headers: Sequence[MetadataHeader]
    ) -> None:
        """Upload the file at path to bucket/key, raising on any failure."""
        ...


def get_available_profiles() -> list[str]:
    """Get list of available AWS profiles from ~/.aws/config and ~/.aws/credentials."""
    profiles: set[str] = set()

    # Check ~/.aws/credentials
    credentials_path = Path.home() / ".aws" / "credentials"
    if credentials_path.exists():
        config = configparser.ConfigParser()
        config.read(credentials_path)
        profiles.update(config.sections())

    # Check ~/.aws/config
    config_path = Path.home() / ".aws" / "config"
    if config_path.exists():
        config = configparser.ConfigParser()
        config.read(config_path)
        for section in config.sections():
            # Config file uses "profile name" format
            if section.startswith("profile "):
                profiles.add(section.replace("profile ", ""))
            else:
                profiles.add(section)

    # Always include default
    profiles.add("default")

    return sorted(profiles)


def create_s3_client(
    profile: str,
    region: str = "us-west-2",
    max_connections: int = 10,
    connect_timeout: float = 50.0,
    read_timeout: float = 120.0,
) -> S3Client:
    """Create an S3 client using the specified AWS profile.

    The client is thread-safe and is shared by every upload worker, so the
    connection pool is sized to the maximum number of workers.

    Args:
        profile: AWS profile name from ~/.aws/credentials or ~/.aws/config
        region: AWS region (default: us-west-2)
        max_connections: Size of the HTTP connection pool
        connect_timeout: Seconds to wait when opening a connection
        read_timeout: Seconds to wait when reading from a connected socket

    Returns:
        Configured S3 client

    Raises:
        ProfileNotFound: If the profile is not configured
    """
    session = boto3.Session(profile_name=profile, region_name=region)
    client_config = Config(
        max_pool_connections=max_connections,
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
    )
    client: S3Client = session.client("s3", config=client_config)
    return client


def build_put_params(headers: Sequence[MetadataHeader]) -> dict[str, Any]:
    """Translate configured headers into PutObject request parameters.

    Standard headers map to their request parameter, everything else is stored
    as user metadata with any x-amz-meta- prefix removed. When a header is
    configured twice the later value wins.

    Args:
        headers: Headers in configuration order

    Returns:
        Keyword arguments for put_object
    """
    params: dict[str, Any] = {}
    metadata: dict[str, str] = {}

    for header in headers:
        name = header.key.strip()
        param = HEADER_PARAMS.get(name.lower())
        if param:
            params[param] = header.value
            continue
        if name.lower().startswith(USER_METADATA_PREFIX):
            name = name[len(USER_METADATA_PREFIX) :]
        metadata[name] = header.value

    if metadata:
        params["Metadata"] = metadata
    return params


class S3ObjectStore:
    """ObjectStore backed by a single PutObject request per file."""

    def __init__(self, client: S3Client, acl: str = "public-read") -> None:
        self.client = client
        self.acl = acl

    def put(
        self, bucket: str, key: str, path: Path, headers: Sequence[MetadataHeader]
    ) -> None:
        """Upload a file to S3.

        Raises:
            ClientError: If S3 rejects the request
            OSError: If the file cannot be read
        """
        params = build_put_params(headers)
        if self.acl:
            params["ACL"] = self.acl

        with open(path, "rb") as body:
            self.client.put_object(Bucket=bucket, Key=key, Body=body, **params)


def validate_bucket_access(client: S3Client, bucket: str) -> dict[str, Any]:
    """Validate that we can access the specified S3 bucket.

    Args:
        client: S3 client
        bucket: S3 bucket name

    Returns:
        Dictionary with validation result
    """
    try:
        client.head_bucket(Bucket=bucket)
        return {
            "success": True,
            "bucket": bucket,
            "error": None,
        }
    except ClientError as e:
        error_code = e.response["Error"]["Code"]
        if error_code == "404":
            error_msg = f"Bucket '{bucket}' does not exist"
        elif error_code == "403":
            error_msg = f"Access denied to bucket '{bucket}'"
        else:
            error_msg = str(e)
        return {
            "success": False,
            "bucket": bucket,
            "error": error_msg,
        }
    except NoCredentialsError:
        return {
            "success": False,
            "bucket": bucket,
            "error": "AWS credentials not found",
        }
