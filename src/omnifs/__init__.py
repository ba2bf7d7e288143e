"""Uniform file system access across local, in-memory, SFTP and S3 storage."""

from omnifs._backend import Backend
from omnifs._cancel import cancel_after, check_canceled
from omnifs._capabilities import Capability, CapabilitySet
from omnifs._config import BackendConfig, RegistryConfig
from omnifs._errors import (
    AlreadyExists,
    BackendUnavailable,
    Canceled,
    DoesNotExist,
    FileSystemError,
    InvalidPath,
    IsDirectory,
    IsNotDirectory,
    PermissionDenied,
    ReadOnlyFileSystem,
    Unsupported,
    WriteOnlyFileSystem,
    ignore_does_not_exist,
    is_error,
    normalize_error,
)
from omnifs._file import File, identical_contents
from omnifs._hash import HASH_BLOCK_SIZE, content_hash, content_hash_bytes
from omnifs._models import Event, FileInfo, Permissions
from omnifs._path import ParsedURI, parse_uri
from omnifs._registry import Registry, register_backend

__version__ = "0.1.0"

__all__ = [
    # Core
    "Registry",
    "File",
    "Backend",
    "register_backend",
    "identical_contents",
    # Models
    "FileInfo",
    "Permissions",
    "Event",
    "ParsedURI",
    "parse_uri",
    # Capabilities
    "Capability",
    "CapabilitySet",
    # Config
    "BackendConfig",
    "RegistryConfig",
    # Hashing
    "HASH_BLOCK_SIZE",
    "content_hash",
    "content_hash_bytes",
    # Cancellation
    "cancel_after",
    "check_canceled",
    # Errors
    "FileSystemError",
    "DoesNotExist",
    "AlreadyExists",
    "IsDirectory",
    "IsNotDirectory",
    "ReadOnlyFileSystem",
    "WriteOnlyFileSystem",
    "PermissionDenied",
    "InvalidPath",
    "Canceled",
    "BackendUnavailable",
    "Unsupported",
    "normalize_error",
    "is_error",
    "ignore_does_not_exist",
    # Version
    "__version__",
]
