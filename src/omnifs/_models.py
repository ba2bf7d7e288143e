"""Immutable metadata models."""

from __future__ import annotations

import dataclasses
import enum
from datetime import datetime, timezone


class Permissions(enum.IntFlag):
    """Unix style permission bits."""

    NONE = 0
    OTHERS_EXECUTE = 0o001
    OTHERS_WRITE = 0o002
    OTHERS_READ = 0o004
    GROUP_EXECUTE = 0o010
    GROUP_WRITE = 0o020
    GROUP_READ = 0o040
    USER_EXECUTE = 0o100
    USER_WRITE = 0o200
    USER_READ = 0o400

    USER_READ_WRITE = USER_READ | USER_WRITE
    USER_READ_WRITE_EXECUTE = USER_READ | USER_WRITE | USER_EXECUTE
    GROUP_READ_WRITE = GROUP_READ | GROUP_WRITE
    OTHERS_READ_WRITE = OTHERS_READ | OTHERS_WRITE
    ALL_READ = USER_READ | GROUP_READ | OTHERS_READ
    ALL_WRITE = USER_WRITE | GROUP_WRITE | OTHERS_WRITE
    ALL_EXECUTE = USER_EXECUTE | GROUP_EXECUTE | OTHERS_EXECUTE
    ALL_READ_WRITE = ALL_READ | ALL_WRITE
    ALL = ALL_READ | ALL_WRITE | ALL_EXECUTE

    DEFAULT_FILE = USER_READ_WRITE | GROUP_READ | OTHERS_READ
    DEFAULT_DIR = USER_READ_WRITE_EXECUTE | GROUP_READ | GROUP_EXECUTE | OTHERS_READ | OTHERS_EXECUTE

    @classmethod
    def from_mode(cls, mode: int) -> Permissions:
        """Extract the permission bits of a ``st_mode`` value."""
        return cls(mode & 0o777)

    def can_user_read(self) -> bool:
        return bool(self & Permissions.USER_READ)

    def can_user_write(self) -> bool:
        return bool(self & Permissions.USER_WRITE)


class Event(enum.Flag):
    """Change notifications delivered to watch callbacks."""

    CREATE = enum.auto()
    WRITE = enum.auto()
    REMOVE = enum.auto()
    RENAME = enum.auto()
    CHMOD = enum.auto()


_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclasses.dataclass(frozen=True)
class FileInfo:
    """Immutable snapshot of file metadata at the time of the call.

    :param uri: URI of the described file.
    :param name: Final path component.
    :param exists: Whether the file existed.
    :param is_dir: Whether it is a directory.
    :param is_regular: Whether it is a regular file.
    :param is_hidden: Whether the backend considers it hidden.
    :param size: Size in bytes, ``0`` for directories.
    :param modified: Last modification time.
    :param permissions: Permission bits.
    :param content_hash: Content hash, only set when requested.
    """

    uri: str
    name: str
    exists: bool
    is_dir: bool
    is_regular: bool
    is_hidden: bool
    size: int
    modified: datetime
    permissions: Permissions
    content_hash: str | None = None

    @classmethod
    def non_existing(cls, uri: str, name: str) -> FileInfo:
        """Snapshot describing a file that does not exist."""
        return cls(
            uri=uri,
            name=name,
            exists=False,
            is_dir=False,
            is_regular=False,
            is_hidden=name.startswith("."),
            size=0,
            modified=_EPOCH,
            permissions=Permissions.NONE,
        )

    def with_content_hash(self, content_hash: str) -> FileInfo:
        return dataclasses.replace(self, content_hash=content_hash)
