"""Helpers shared by the backend fixtures and tests."""

from __future__ import annotations

import dataclasses
import socket
import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from omnifs import Backend

REGION = "us-east-1"


@dataclasses.dataclass
class Target:
    """A backend under test plus the directory the test may use."""

    backend: Backend
    root: str

    def path(self, *parts: str) -> str:
        return self.backend.join_clean_path(self.root, *parts)


def free_port() -> int:
    with socket.socket() as s:
        s.bind(("", 0))
        return s.getsockname()[1]


def make_bucket(endpoint_url: str) -> str:
    """Create a fresh bucket on the moto server and return its name."""
    import boto3

    bucket = f"test-{uuid.uuid4().hex[:8]}"
    client = boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
        region_name=REGION,
    )
    client.create_bucket(Bucket=bucket)
    return bucket


def make_s3_backend(endpoint_url: str, bucket: str) -> Backend:
    from omnifs.backends import S3Backend

    return S3Backend(
        bucket,
        key="testing",
        secret="testing",
        region_name=REGION,
        endpoint_url=endpoint_url,
    )


def make_sftp_backend(port: int) -> Backend:
    from omnifs.backends import HostKeyPolicy, SFTPBackend

    return SFTPBackend(
        "127.0.0.1",
        port=port,
        username="testuser",
        password="testpass",
        host_key_policy=HostKeyPolicy.AUTO_ADD,
        connect_kwargs={"allow_agent": False, "look_for_keys": False},
    )
