"""Backend test fixtures -- parameterized for conformance testing."""

from __future__ import annotations

import tempfile
import uuid
from typing import TYPE_CHECKING

import pytest

from omnifs.backends import LocalBackend, MemoryBackend
from tests.backends.helpers import Target, free_port, make_bucket, make_s3_backend, make_sftp_backend

if TYPE_CHECKING:
    from collections.abc import Iterator

    from omnifs import Backend


def _s3_available() -> bool:
    try:
        import boto3  # noqa: F401
        import moto  # noqa: F401
        import s3fs  # noqa: F401

        return True
    except ImportError:
        return False


def _sftp_available() -> bool:
    try:
        import paramiko  # noqa: F401
        import tenacity  # noqa: F401

        return True
    except ImportError:
        return False


@pytest.fixture(scope="session")
def moto_server() -> Iterator[str | None]:
    """Start a moto HTTP server for the test session.

    Uses server mode instead of mock_aws() to avoid Python 3.13
    PEP 667 f_locals incompatibility with s3fs/aiobotocore.
    """
    if not _s3_available():
        yield None
        return
    from moto.moto_server.threaded_moto_server import ThreadedMotoServer

    port = free_port()
    server = ThreadedMotoServer(port=port, verbose=False)
    server.start()
    yield f"http://127.0.0.1:{port}"
    server.stop()


@pytest.fixture(scope="session")
def sftp_server() -> Iterator[tuple[int, str] | None]:
    """Start an in-process SFTP server for the test session."""
    if not _sftp_available():
        yield None
        return

    from tests.backends.sftp_server import SFTPTestServer

    tmpdir = tempfile.mkdtemp(prefix="sftp_test_")
    server = SFTPTestServer(tmpdir).start()

    yield server.port, server.known_hosts_line

    server.stop()

    import shutil

    shutil.rmtree(tmpdir, ignore_errors=True)


_s3_param = pytest.param(
    "s3",
    marks=pytest.mark.skipif(not _s3_available(), reason="moto/s3fs not installed"),
)

_sftp_param = pytest.param(
    "sftp",
    marks=pytest.mark.skipif(not _sftp_available(), reason="paramiko not installed"),
)


@pytest.fixture(params=["memory", "local", _s3_param, _sftp_param])
def target(
    request: pytest.FixtureRequest,
    moto_server: str | None,
    sftp_server: tuple[int, str] | None,
) -> Iterator[Target]:
    """Parameterized backend fixture. Add new backends here."""
    b: Backend
    if request.param == "memory":
        b = MemoryBackend()
        yield Target(b, "/")
        b.close()
    elif request.param == "local":
        with tempfile.TemporaryDirectory() as tmp:
            yield Target(LocalBackend(), tmp)
    elif request.param == "s3":
        assert moto_server is not None
        b = make_s3_backend(moto_server, make_bucket(moto_server))
        yield Target(b, "/")
        b.close()
    elif request.param == "sftp":
        assert sftp_server is not None
        port, _ = sftp_server
        b = make_sftp_backend(port)
        root = f"/test_{uuid.uuid4().hex[:8]}"
        b.make_dir(root)
        yield Target(b, root)
        b.close()
    else:
        pytest.skip(f"Unknown backend: {request.param}")
