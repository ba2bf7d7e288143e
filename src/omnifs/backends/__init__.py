"""Backend implementations.

Third-party clients (paramiko, s3fs) are imported when a backend first
connects, so every backend class can be imported without its extra.
"""

from omnifs.backends._local import LocalBackend
from omnifs.backends._memory import MemoryBackend
from omnifs.backends._s3 import S3Backend
from omnifs.backends._sftp import DEFAULT_PORT, HostKeyPolicy, SFTPBackend, dial, sftp_prefix

__all__ = [
    "LocalBackend",
    "MemoryBackend",
    "S3Backend",
    "SFTPBackend",
    "HostKeyPolicy",
    "DEFAULT_PORT",
    "dial",
    "sftp_prefix",
]
