"""Backend abstract base class, the core contract."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, BinaryIO

from omnifs import _path
from omnifs._cancel import check_canceled
from omnifs._capabilities import Capability
from omnifs._errors import DoesNotExist, Unsupported

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterator, Sequence
    from datetime import datetime

    from omnifs._capabilities import CapabilitySet
    from omnifs._models import FileInfo, Permissions
    from omnifs._types import CancelWatch, EventCallback


class Backend(abc.ABC):
    """Abstract base class for all storage backends.

    Paths passed to backend methods are backend-local: the URI with the
    backend's :attr:`prefix` stripped. Backend-native exceptions must never
    leak, they are mapped to ``omnifs`` errors with the native exception
    chained as ``__cause__``.

    Optional operations raise :class:`Unsupported` unless the backend both
    overrides them and declares the matching :class:`Capability`.
    """

    # region: identification

    @property
    @abc.abstractmethod
    def prefix(self) -> str:
        """URI prefix owned by this backend (e.g. ``'mem://1'``, ``'sftp://user@host'``)."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Human readable backend type name (e.g. ``'memory'``, ``'sftp'``)."""

    @property
    @abc.abstractmethod
    def capabilities(self) -> CapabilitySet:
        """Declared optional capabilities of this backend."""

    @property
    def id(self) -> str:
        """Identifier distinguishing backend instances of the same type."""
        return self.prefix

    @property
    def separator(self) -> str:
        return "/"

    @property
    def volume_len(self) -> int:
        """Length of the volume prefix of absolute paths (drive letters)."""
        return 0

    @property
    def is_read_only(self) -> bool:
        return False

    @property
    def is_write_only(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.name} file system with prefix {self.prefix}"

    # endregion

    # region: path algebra

    def url(self, path: str) -> str:
        """Full URI of a clean backend-local path, with ``%`` escaped."""
        return self.prefix + _path.escape_path(path)

    def join_clean_path(self, *parts: str) -> str:
        """Join ``parts`` into a clean absolute backend-local path."""
        return _path.join_clean_path(parts, self.prefix, self.separator)

    def join_clean_file(self, *parts: str) -> str:
        """Join ``parts`` and return the URI of the result."""
        return self.url(self.join_clean_path(*parts))

    def split_path(self, path: str) -> list[str]:
        return _path.split_path(path, self.prefix, self.separator)

    def dir_and_name(self, path: str) -> tuple[str, str]:
        return _path.dir_and_name(path, self.volume_len, self.separator)

    def is_abs_path(self, path: str) -> bool:
        return path.startswith(self.separator)

    def abs_path(self, path: str) -> str:
        if self.is_abs_path(path):
            return path
        return self.join_clean_path(path)

    def match_any_pattern(self, name: str, patterns: Sequence[str]) -> bool:
        return _path.match_any_pattern(name, patterns)

    # endregion

    # region: metadata

    @abc.abstractmethod
    def stat(self, path: str) -> FileInfo:
        """Return a metadata snapshot of ``path``.

        :raises DoesNotExist: If nothing exists at ``path``.
        """

    def exists(self, path: str) -> bool:
        """Check if a file or directory exists. Never raises ``DoesNotExist``."""
        try:
            self.stat(path)
        except DoesNotExist:
            return False
        return True

    def is_hidden(self, path: str) -> bool:
        _, name = self.dir_and_name(path)
        return name.startswith(".")

    def is_symbolic_link(self, path: str) -> bool:
        return False

    # endregion

    # region: listing

    @abc.abstractmethod
    def list_dir_info(
        self,
        path: str,
        *,
        patterns: Sequence[str] = (),
        cancel: threading.Event | None = None,
    ) -> Iterator[FileInfo]:
        """Yield the direct children of the directory ``path``.

        :param patterns: Glob patterns filtering entry names; none means all.
        :param cancel: Checked before each yielded entry.
        :raises DoesNotExist: If the directory does not exist.
        :raises IsNotDirectory: If ``path`` is not a directory.
        :raises Canceled: If ``cancel`` is set while listing.
        """

    def list_dir_info_recursive(
        self,
        path: str,
        *,
        patterns: Sequence[str] = (),
        cancel: threading.Event | None = None,
    ) -> Iterator[FileInfo]:
        """Yield every file below ``path``.

        Only files are reported and only their names are matched against
        ``patterns``; every subdirectory is descended into. Directories that
        vanish while the listing runs are skipped.
        """
        for info in self.list_dir_info(path, cancel=cancel):
            if info.is_dir:
                child = _path.child_path(path, info.name, self.separator)
                try:
                    yield from self.list_dir_info_recursive(child, patterns=patterns, cancel=cancel)
                except DoesNotExist:
                    continue
            elif self.match_any_pattern(info.name, patterns):
                yield info

    def list_dir_max(
        self,
        path: str,
        max: int = -1,  # noqa: A002
        *,
        patterns: Sequence[str] = (),
        cancel: threading.Event | None = None,
    ) -> list[str]:
        """Return the URIs of at most ``max`` directory entries.

        A negative ``max`` returns every entry.
        """
        uris: list[str] = []
        if max == 0:
            return uris
        for info in self.list_dir_info(path, patterns=patterns, cancel=cancel):
            uris.append(info.uri)
            if 0 < max <= len(uris):
                break
        return uris

    # endregion

    # region: data access

    @abc.abstractmethod
    def open_reader(self, path: str) -> BinaryIO:
        """Open a file for reading.

        :raises DoesNotExist: If the file does not exist.
        :raises IsDirectory: If ``path`` is a directory.
        """

    @abc.abstractmethod
    def open_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        """Open a file for writing, creating or truncating it.

        :raises DoesNotExist: If the parent directory does not exist.
        """

    @abc.abstractmethod
    def open_read_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        """Open a file for reading and writing, positioned at the start."""

    def read_all(self, path: str) -> bytes:
        with self.open_reader(path) as reader:
            return reader.read()

    def write_all(self, path: str, data: bytes, *, permissions: Permissions | None = None) -> None:
        with self.open_writer(path, permissions=permissions) as writer:
            writer.write(data)

    # endregion

    # region: lifecycle

    @abc.abstractmethod
    def make_dir(self, path: str, *, permissions: Permissions | None = None) -> None:
        """Create a single directory.

        :raises AlreadyExists: If something already exists at ``path``.
        :raises DoesNotExist: If the parent directory does not exist.
        """

    @abc.abstractmethod
    def remove(self, path: str) -> None:
        """Remove a file or an empty directory.

        :raises DoesNotExist: If nothing exists at ``path``.
        """

    def close(self) -> None:  # noqa: B027
        """Release resources. Default is a no-op."""

    # endregion

    # region: optional capabilities

    def _unsupported(self, cap: Capability, path: str | None = None) -> Unsupported:
        return Unsupported(
            f"Backend '{self.name}' does not support '{cap.value}'",
            capability=cap.value,
            backend=self.name,
            path=self.url(path) if path is not None else None,
        )

    def copy_file(self, src: str, dst: str, *, cancel: threading.Event | None = None) -> None:
        """Copy a file within this backend."""
        raise self._unsupported(Capability.COPY, src)

    def move(self, src: str, dst: str) -> None:
        """Move a file or directory within this backend."""
        raise self._unsupported(Capability.MOVE, src)

    def rename(self, path: str, new_name: str) -> str:
        """Rename the last element of ``path`` and return the new path.

        :raises InvalidPath: If ``new_name`` contains the separator.
        """
        raise self._unsupported(Capability.RENAME, path)

    def touch(self, path: str, *, permissions: Permissions | None = None) -> None:
        """Update the modified time, creating an empty file if needed."""
        raise self._unsupported(Capability.TOUCH, path)

    def truncate(self, path: str, size: int) -> None:
        raise self._unsupported(Capability.TRUNCATE, path)

    def append(self, path: str, data: bytes, *, permissions: Permissions | None = None) -> None:
        raise self._unsupported(Capability.APPEND, path)

    def open_append_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        raise self._unsupported(Capability.APPEND_WRITER, path)

    def set_permissions(self, path: str, permissions: Permissions) -> None:
        raise self._unsupported(Capability.PERMISSIONS, path)

    def user(self, path: str) -> str:
        raise self._unsupported(Capability.USER_GROUP, path)

    def set_user(self, path: str, user: str) -> None:
        raise self._unsupported(Capability.USER_GROUP, path)

    def group(self, path: str) -> str:
        raise self._unsupported(Capability.USER_GROUP, path)

    def set_group(self, path: str, group: str) -> None:
        raise self._unsupported(Capability.USER_GROUP, path)

    def watch(self, path: str, on_event: EventCallback) -> CancelWatch:
        """Call ``on_event(uri, event)`` for changes of ``path``.

        :returns: A callable that stops watching.
        """
        raise self._unsupported(Capability.WATCH, path)

    def volume_name(self, path: str) -> str:
        raise self._unsupported(Capability.VOLUME_NAME, path)

    def make_all_dirs(self, path: str, *, permissions: Permissions | None = None) -> None:
        """Create ``path`` and every missing parent directory."""
        raise self._unsupported(Capability.MAKE_ALL_DIRS, path)

    def modified(self, path: str) -> datetime:
        return self.stat(path).modified

    # endregion

    def _check_canceled(self, cancel: threading.Event | None, path: str) -> None:
        check_canceled(cancel, path=self.url(path))
