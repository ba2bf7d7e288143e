"""File, the path-like handle every operation starts from."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, BinaryIO

from omnifs import _path
from omnifs._cancel import check_canceled
from omnifs._capabilities import Capability
from omnifs._errors import (
    AlreadyExists,
    DoesNotExist,
    FileSystemError,
    InvalidPath,
    IsNotDirectory,
    ignore_does_not_exist,
)
from omnifs._hash import content_hash, content_hash_bytes
from omnifs._models import FileInfo

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterator
    from datetime import datetime

    from omnifs._backend import Backend
    from omnifs._models import Permissions
    from omnifs._registry import Registry
    from omnifs._types import CancelWatch, EventCallback, PathLike

log = logging.getLogger(__name__)

_COPY_CHUNK_SIZE = 64 * 1024


class File:
    """Immutable handle of a file or directory on any registered backend.

    A ``File`` is only a URI plus the :class:`~omnifs.Registry` it resolves
    through; it holds no open resources. Every operation resolves the URI
    to a backend and a backend-local path and delegates to the backend.

    Equality and hashing use the raw URI string: two spellings of the same
    file are different handles, use :meth:`same_file` to compare locations.

    :param uri: ``scheme://authority/path`` or a bare local path.
    :param registry: Registry used for dispatch.
    :raises InvalidPath: If ``uri`` is empty.
    """

    __slots__ = ("_parsed", "_registry", "_uri")

    _uri: str
    _registry: Registry
    _parsed: _path.ParsedURI

    def __init__(self, uri: PathLike, registry: Registry) -> None:
        uri = os.fspath(uri)
        if not uri:
            raise InvalidPath("File URI must not be empty")
        object.__setattr__(self, "_uri", uri)
        object.__setattr__(self, "_registry", registry)
        object.__setattr__(self, "_parsed", _path.parse_uri(uri))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("File is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("File is immutable")

    def __str__(self) -> str:
        return self._uri

    def __repr__(self) -> str:
        return f"File({self._uri!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, File):
            return self._uri == other._uri
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._uri)

    def __truediv__(self, other: str) -> File:
        return self.join(other)

    # region: resolution helpers

    def _resolve(self) -> tuple[Backend, str]:
        return self._registry.resolve(self._uri)

    def _require(self, cap: Capability) -> tuple[Backend, str]:
        backend, local = self._resolve()
        backend.capabilities.require(cap, backend=backend.name, path=self._uri)
        return backend, local

    def _with_path(self, path: str) -> File:
        """Handle for the clean ``path`` on the same backend, spelled like this URI."""
        backend, local = self._resolve()
        head = self._uri[: len(self._uri) - len(local)]
        return File(head + backend.url(path)[len(backend.prefix) :], self._registry)

    def _coerce(self, other: File | str) -> File:
        if isinstance(other, File):
            return other
        return File(other, self._registry)

    def _check_not_below(self, target: File) -> None:
        """:raises InvalidPath: If ``target`` is this file or lies inside its subtree."""
        backend, local = self._resolve()
        target_backend, target_local = target._resolve()
        if target_backend is not backend:
            return
        source = backend.join_clean_path(local)
        dest = backend.join_clean_path(target_local)
        if dest == source or dest.startswith(source.rstrip(backend.separator) + backend.separator):
            raise InvalidPath(
                "Cannot copy a file onto itself or into its own subtree", path=target.uri, backend=backend.name
            )

    # endregion

    # region: decomposition

    @property
    def uri(self) -> str:
        return self._uri

    @property
    def parsed(self) -> _path.ParsedURI:
        """Scheme, authority and path of the URI, parsed once."""
        return self._parsed

    @property
    def scheme(self) -> str:
        return self._parsed.scheme

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def backend(self) -> Backend:
        return self._resolve()[0]

    @property
    def local_path(self) -> str:
        """The URI with the backend prefix removed, as passed to the backend."""
        return self._resolve()[1]

    @property
    def path(self) -> str:
        """Cleaned backend path."""
        backend, local = self._resolve()
        return backend.join_clean_path(local)

    @property
    def url(self) -> str:
        """Canonical URI of the cleaned path."""
        backend, local = self._resolve()
        return backend.url(backend.join_clean_path(local))

    @property
    def path_with_slashes(self) -> str:
        backend = self.backend
        path = self.path
        if backend.separator == "/":
            return path
        return path.replace(backend.separator, "/")

    @property
    def name(self) -> str:
        return self.dir_and_name()[1]

    @property
    def dir(self) -> File:
        """Parent directory; the root is its own parent."""
        return self.dir_and_name()[0]

    def dir_and_name(self) -> tuple[File, str]:
        backend, local = self._resolve()
        directory, name = backend.dir_and_name(backend.join_clean_path(local))
        return self._with_path(directory), name

    @property
    def ext(self) -> str:
        """Extension of the name including the dot, e.g. ``'.txt'``."""
        return _path.ext(self.name)

    @property
    def ext_lower(self) -> str:
        return self.ext.lower()

    def trim_ext(self) -> File:
        """Handle with the extension of the name removed."""
        backend = self.backend
        return self._with_path(_path.trim_ext(self.path, backend.separator))

    def join(self, *parts: str) -> File:
        """Handle for ``parts`` joined below this one."""
        if not parts:
            return self
        backend, local = self._resolve()
        return self._with_path(backend.join_clean_path(local, *parts))

    def has_abs_path(self) -> bool:
        backend, local = self._resolve()
        return backend.is_abs_path(local)

    def abs_path(self) -> str:
        backend, local = self._resolve()
        return backend.abs_path(local)

    def with_abs_path(self) -> File:
        if self.has_abs_path():
            return self
        return self._with_path(self.abs_path())

    def volume_name(self) -> str:
        backend, local = self._require(Capability.VOLUME_NAME)
        return backend.volume_name(local)

    # endregion

    # region: metadata

    def stat(self) -> FileInfo:
        """Metadata snapshot.

        :raises DoesNotExist: If the file does not exist.
        """
        backend, local = self._resolve()
        return backend.stat(local)

    def info(self) -> FileInfo:
        """Metadata snapshot that never raises.

        Files that do not exist, or cannot be inspected, are described by a
        snapshot with ``exists=False``.
        """
        try:
            return self.stat()
        except FileSystemError as exc:
            log.debug("stat failed for %s: %s", self._uri, exc)
            return FileInfo.non_existing(self._uri, self.name)

    def info_with_content_hash(self, *, cancel: threading.Event | None = None) -> FileInfo:
        info = self.info()
        if not info.is_regular:
            return info
        return info.with_content_hash(self.content_hash(cancel=cancel))

    def exists(self) -> bool:
        backend, local = self._resolve()
        return backend.exists(local)

    def check_exists(self) -> None:
        """:raises DoesNotExist: If the file does not exist."""
        if not self.exists():
            raise DoesNotExist("File does not exist", path=self._uri, backend=self.backend.name)

    def is_dir(self) -> bool:
        return self.info().is_dir

    def check_is_dir(self) -> None:
        """:raises DoesNotExist, IsNotDirectory: Unless this is an existing directory."""
        if not self.stat().is_dir:
            raise IsNotDirectory("File is not a directory", path=self._uri, backend=self.backend.name)

    def is_regular(self) -> bool:
        return self.info().is_regular

    def is_empty(self) -> bool:
        """``True`` for a missing file, an empty file or a directory without entries."""
        info = self.info()
        if not info.exists:
            return True
        if info.is_dir:
            backend, local = self._resolve()
            return not backend.list_dir_max(local, 1)
        return info.size == 0

    def is_hidden(self) -> bool:
        backend, local = self._resolve()
        return backend.is_hidden(local)

    def is_symbolic_link(self) -> bool:
        backend, local = self._resolve()
        return backend.is_symbolic_link(local)

    def size(self) -> int:
        """Size in bytes, ``0`` for directories and missing files."""
        return self.info().size

    def modified(self) -> datetime:
        return self.info().modified

    def permissions(self) -> Permissions:
        return self.info().permissions

    def content_hash(self, *, cancel: threading.Event | None = None) -> str:
        """Content hash of the file, see :func:`omnifs.content_hash`."""
        with self.open_reader() as reader:
            return content_hash(reader, cancel=cancel)

    # endregion

    # region: listing

    def list_dir(self, *patterns: str, cancel: threading.Event | None = None) -> Iterator[File]:
        """Yield the direct children whose names match any of ``patterns``."""
        for info in self.list_dir_info(*patterns, cancel=cancel):
            yield File(info.uri, self._registry)

    def list_dir_info(self, *patterns: str, cancel: threading.Event | None = None) -> Iterator[FileInfo]:
        backend, local = self._resolve()
        return backend.list_dir_info(local, patterns=patterns, cancel=cancel)

    def list_dir_recursive(self, *patterns: str, cancel: threading.Event | None = None) -> Iterator[File]:
        """Yield every file below this directory whose name matches ``patterns``."""
        for info in self.list_dir_info_recursive(*patterns, cancel=cancel):
            yield File(info.uri, self._registry)

    def list_dir_info_recursive(
        self, *patterns: str, cancel: threading.Event | None = None
    ) -> Iterator[FileInfo]:
        backend, local = self._resolve()
        return backend.list_dir_info_recursive(local, patterns=patterns, cancel=cancel)

    def list_dir_sorted(self, *patterns: str, cancel: threading.Event | None = None) -> list[File]:
        """Children sorted by name."""
        infos = sorted(self.list_dir_info(*patterns, cancel=cancel), key=lambda info: info.name)
        return [File(info.uri, self._registry) for info in infos]

    def list_dir_max(
        self,
        max: int = -1,  # noqa: A002
        *patterns: str,
        cancel: threading.Event | None = None,
    ) -> list[File]:
        """At most ``max`` children, all of them for a negative ``max``."""
        backend, local = self._resolve()
        uris = backend.list_dir_max(local, max, patterns=patterns, cancel=cancel)
        return [File(uri, self._registry) for uri in uris]

    # endregion

    # region: data

    def read_all(self) -> bytes:
        backend, local = self._resolve()
        return backend.read_all(local)

    def read_all_string(self, encoding: str = "utf-8") -> str:
        return self.read_all().decode(encoding)

    def read_all_content_hash(self) -> tuple[bytes, str]:
        """Read the whole file and return its data together with its content hash."""
        data = self.read_all()
        return data, content_hash_bytes(data)

    def write_all(self, data: bytes, *, permissions: Permissions | None = None) -> None:
        backend, local = self._resolve()
        backend.write_all(local, data, permissions=permissions)

    def write_all_string(self, text: str, encoding: str = "utf-8", *, permissions: Permissions | None = None) -> None:
        self.write_all(text.encode(encoding), permissions=permissions)

    def append(self, data: bytes, *, permissions: Permissions | None = None) -> None:
        backend, local = self._require(Capability.APPEND)
        backend.append(local, data, permissions=permissions)

    def append_string(self, text: str, encoding: str = "utf-8", *, permissions: Permissions | None = None) -> None:
        self.append(text.encode(encoding), permissions=permissions)

    def open_reader(self) -> BinaryIO:
        backend, local = self._resolve()
        return backend.open_reader(local)

    def open_writer(self, *, permissions: Permissions | None = None) -> BinaryIO:
        backend, local = self._resolve()
        return backend.open_writer(local, permissions=permissions)

    def open_append_writer(self, *, permissions: Permissions | None = None) -> BinaryIO:
        backend, local = self._require(Capability.APPEND_WRITER)
        return backend.open_append_writer(local, permissions=permissions)

    def open_read_writer(self, *, permissions: Permissions | None = None) -> BinaryIO:
        backend, local = self._resolve()
        return backend.open_read_writer(local, permissions=permissions)

    # endregion

    # region: lifecycle

    def touch(self, *, permissions: Permissions | None = None) -> None:
        backend, local = self._require(Capability.TOUCH)
        backend.touch(local, permissions=permissions)

    def make_dir(self, *, permissions: Permissions | None = None) -> None:
        """Create the directory; an existing directory is left alone.

        :raises AlreadyExists: If a file exists at this path.
        """
        if self.is_dir():
            return
        backend, local = self._resolve()
        backend.make_dir(local, permissions=permissions)

    def make_all_dirs(self, *, permissions: Permissions | None = None) -> None:
        """Create this directory and all missing parents."""
        backend, local = self._resolve()
        if backend.capabilities.supports(Capability.MAKE_ALL_DIRS):
            backend.make_all_dirs(local, permissions=permissions)
            return
        if self.is_dir():
            return
        parent = self.dir
        if parent.path != self.path:
            parent.make_all_dirs(permissions=permissions)
        try:
            backend.make_dir(local, permissions=permissions)
        except AlreadyExists:
            if not self.is_dir():
                raise

    def truncate(self, size: int) -> None:
        """Shrink or zero-extend the file to ``size`` bytes."""
        backend, local = self._require(Capability.TRUNCATE)
        backend.truncate(local, size)

    def rename(self, new_name: str) -> File:
        """Rename the last path element and return the handle of the result."""
        backend, local = self._require(Capability.RENAME)
        return self._with_path(backend.rename(backend.join_clean_path(local), new_name))

    def copy_to(self, dest: File | str, *, cancel: threading.Event | None = None) -> File:
        """Copy this file or directory tree to ``dest`` and return the copy.

        An existing directory ``dest`` receives the copy under this name.
        Backends without an in-place copy, or copies across backends, are
        streamed in chunks.
        """
        target = self._coerce(dest)
        if target.is_dir():
            target = target.join(self.name)
        self._check_not_below(target)
        check_canceled(cancel, path=self._uri)
        if self.stat().is_dir:
            target.make_all_dirs()
            for child in list(self.list_dir(cancel=cancel)):
                child.copy_to(target, cancel=cancel)
            return target
        backend, local = self._resolve()
        dest_backend, dest_local = target._resolve()
        if dest_backend is backend and backend.capabilities.supports(Capability.COPY):
            backend.copy_file(local, dest_local, cancel=cancel)
            return target
        with self.open_reader() as reader, target.open_writer(permissions=self.permissions()) as writer:
            while True:
                check_canceled(cancel, path=self._uri)
                chunk = reader.read(_COPY_CHUNK_SIZE)
                if not chunk:
                    break
                writer.write(chunk)
        return target

    def move_to(self, dest: File | str, *, cancel: threading.Event | None = None) -> File:
        """Move this file or directory to ``dest`` and return the moved handle.

        Falls back to copy and remove when the backend cannot move or the
        destination lives on another backend.
        """
        target = self._coerce(dest)
        backend, local = self._resolve()
        dest_backend, dest_local = target._resolve()
        if dest_backend is backend and backend.capabilities.supports(Capability.MOVE):
            if target.is_dir():
                target = target.join(self.name)
                dest_local = target.local_path
            backend.move(local, dest_local)
            return target
        moved = self.copy_to(target, cancel=cancel)
        self.remove_recursive(cancel=cancel)
        return moved

    def remove(self) -> None:
        backend, local = self._resolve()
        backend.remove(local)

    def remove_recursive(self, *, cancel: threading.Event | None = None) -> None:
        """Remove this file or directory tree. Entries vanishing meanwhile are ignored."""
        with ignore_does_not_exist():
            if self.is_dir():
                self.remove_dir_contents_recursive(cancel=cancel)
            self.remove()

    def remove_dir_contents(self, *patterns: str, cancel: threading.Event | None = None) -> None:
        """Remove the direct children matching ``patterns``."""
        for child in list(self.list_dir(*patterns, cancel=cancel)):
            check_canceled(cancel, path=self._uri)
            with ignore_does_not_exist():
                child.remove()

    def remove_dir_contents_recursive(self, *patterns: str, cancel: threading.Event | None = None) -> None:
        """Remove the direct children matching ``patterns`` including their subtrees."""
        for child in list(self.list_dir(*patterns, cancel=cancel)):
            check_canceled(cancel, path=self._uri)
            child.remove_recursive(cancel=cancel)

    # endregion

    # region: permissions, ownership and watching

    def set_permissions(self, permissions: Permissions) -> None:
        backend, local = self._require(Capability.PERMISSIONS)
        backend.set_permissions(local, permissions)

    def user(self) -> str:
        backend, local = self._require(Capability.USER_GROUP)
        return backend.user(local)

    def set_user(self, user: str) -> None:
        backend, local = self._require(Capability.USER_GROUP)
        backend.set_user(local, user)

    def group(self) -> str:
        backend, local = self._require(Capability.USER_GROUP)
        return backend.group(local)

    def set_group(self, group: str) -> None:
        backend, local = self._require(Capability.USER_GROUP)
        backend.set_group(local, group)

    def watch(self, on_event: EventCallback) -> CancelWatch:
        """Call ``on_event(uri, event)`` for changes of this file or its children.

        :returns: A callable that stops watching.
        """
        backend, local = self._require(Capability.WATCH)
        return backend.watch(local, on_event)

    # endregion

    # region: comparison

    def same_file(self, other: File | str) -> bool:
        """``True`` if both handles resolve to the same backend and clean path."""
        other = self._coerce(other)
        backend, local = self._resolve()
        other_backend, other_local = other._resolve()
        return backend is other_backend and backend.join_clean_path(local) == other_backend.join_clean_path(
            other_local
        )

    # endregion


def identical_contents(*files: File, cancel: threading.Event | None = None) -> bool:
    """Return ``True`` if all files have the same content.

    Sizes are compared first, content hashes only when they match.
    Fewer than two files are trivially identical.

    :raises DoesNotExist: If one of the files does not exist.
    """
    if len(files) < 2:
        return True
    first_size = files[0].stat().size
    if any(f.stat().size != first_size for f in files[1:]):
        return False
    first_hash = files[0].content_hash(cancel=cancel)
    return all(f.content_hash(cancel=cancel) == first_hash for f in files[1:])
