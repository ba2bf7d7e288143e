"""In-memory backend holding a tree of nodes in process memory."""

from __future__ import annotations

import contextlib
import dataclasses
import io
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, BinaryIO, Union

from omnifs import _path
from omnifs._backend import Backend
from omnifs._capabilities import Capability, CapabilitySet
from omnifs._errors import (
    AlreadyExists,
    DoesNotExist,
    InvalidPath,
    IsDirectory,
    IsNotDirectory,
    ReadOnlyFileSystem,
)
from omnifs._models import Event, FileInfo, Permissions

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

    from omnifs._registry import Registry
    from omnifs._types import CancelWatch, EventCallback

log = logging.getLogger(__name__)

_CAPABILITIES = CapabilitySet.all().without(Capability.USER_GROUP)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


class _RWLock:
    """Writer-preferring reader/writer lock.

    Not reentrant: code holding either side must not acquire it again.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextlib.contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclasses.dataclass
class _FileNode:
    name: str
    modified: datetime
    permissions: Permissions
    data: bytearray = dataclasses.field(default_factory=bytearray)


@dataclasses.dataclass
class _DirNode:
    name: str
    modified: datetime
    permissions: Permissions
    children: dict[str, _Node] = dataclasses.field(default_factory=dict)


_Node = Union[_FileNode, _DirNode]


class _MemoryWriter(io.BytesIO):
    """Buffer that stores its content in the tree on every flush and on close."""

    def __init__(self, backend: MemoryBackend, path: str, initial: bytes, *, at_end: bool) -> None:
        super().__init__(initial)
        self._backend = backend
        self._path = path
        if at_end:
            self.seek(0, io.SEEK_END)

    def flush(self) -> None:
        super().flush()
        self._backend._commit(self._path, self.getvalue())

    def close(self) -> None:
        if self.closed:
            return
        try:
            self.flush()
        finally:
            super().close()


class MemoryBackend(Backend):
    """Backend storing files and directories in process memory.

    The whole tree is guarded by one reader/writer lock: reads share it,
    mutations hold it exclusively and are therefore linearizable.

    :param separator: Path separator, ``"/"`` or ``"\\"``.
    :param id: Instance identifier used in the prefix, random by default.
    :param volume: Optional volume name, appended to the prefix.
    :param files: Initial files as a mapping of path to content.
        Missing parent directories are created.
    :param registry: If given, the backend registers itself there and
        evicts itself again on :meth:`close`.
    :param read_only: Reject every mutation with ``ReadOnlyFileSystem``.
    :raises ValueError: If the separator is not supported.
    """

    def __init__(
        self,
        separator: str = "/",
        *,
        id: str | None = None,  # noqa: A002
        volume: str = "",
        files: Mapping[str, bytes] | None = None,
        registry: Registry | None = None,
        read_only: bool = False,
    ) -> None:
        if separator not in ("/", "\\"):
            raise ValueError(f"Invalid separator {separator!r}, expected '/' or '\\'")
        self._sep = separator
        self._id = id or uuid.uuid4().hex
        self._volume = volume
        self._read_only = read_only
        self._lock = _RWLock()
        self._root = _DirNode(name=separator, modified=_now(), permissions=Permissions.DEFAULT_DIR)
        self._watchers: dict[str, list[EventCallback]] = {}
        self._watchers_lock = threading.Lock()
        self._registry = registry
        self._closed = False
        for path, data in (files or {}).items():
            self._seed(path, data)
        if registry is not None:
            registry.register(self)

    def __repr__(self) -> str:
        return f"MemoryBackend(prefix={self.prefix!r})"

    # region: identification

    @property
    def prefix(self) -> str:
        if self._volume:
            return f"mem://{self._id}/{self._volume}"
        return f"mem://{self._id}"

    @property
    def name(self) -> str:
        return "memory"

    @property
    def id(self) -> str:
        return self._id

    @property
    def capabilities(self) -> CapabilitySet:
        return _CAPABILITIES

    @property
    def separator(self) -> str:
        return self._sep

    @property
    def is_read_only(self) -> bool:
        return self._read_only

    def set_read_only(self, read_only: bool) -> None:
        self._read_only = read_only

    # endregion

    # region: tree helpers (callers hold the lock)

    def _walk(self, path: str) -> tuple[_Node | None, _DirNode | None, str]:
        """Return ``(node or None, parent, name)``; the root has no parent."""
        segments = self.split_path(path)
        if not segments:
            return self._root, None, ""
        parent = self._root
        for segment in segments[:-1]:
            child = parent.children.get(segment)
            if child is None:
                raise DoesNotExist(
                    f"Parent directory '{segment}' does not exist", path=self.url(path), backend=self.name
                )
            if not isinstance(child, _DirNode):
                raise IsNotDirectory(f"'{segment}' is not a directory", path=self.url(path), backend=self.name)
            parent = child
        name = segments[-1]
        return parent.children.get(name), parent, name

    def _node(self, path: str) -> _Node:
        node, _, _ = self._walk(path)
        if node is None:
            raise DoesNotExist("File does not exist", path=self.url(path), backend=self.name)
        return node

    def _file_node(self, path: str) -> _FileNode:
        node = self._node(path)
        if isinstance(node, _DirNode):
            raise IsDirectory("Path is a directory", path=self.url(path), backend=self.name)
        return node

    def _store(
        self,
        path: str,
        data: bytes,
        events: list[tuple[str, Event]],
        *,
        append: bool = False,
        permissions: Permissions | None = None,
    ) -> _FileNode:
        node, parent, name = self._walk(path)
        if parent is None or isinstance(node, _DirNode):
            raise IsDirectory("Path is a directory", path=self.url(path), backend=self.name)
        if node is None:
            node = _FileNode(
                name=name, modified=_now(), permissions=permissions or Permissions.DEFAULT_FILE, data=bytearray(data)
            )
            parent.children[name] = node
            events.append((path, Event.CREATE))
            return node
        if append:
            node.data.extend(data)
        else:
            node.data[:] = data
        node.modified = _now()
        events.append((path, Event.WRITE))
        return node

    def _make_all(self, path: str, permissions: Permissions, events: list[tuple[str, Event]]) -> None:
        node: _Node = self._root
        current = ""
        for segment in self.split_path(path):
            current = current + self._sep + segment
            if not isinstance(node, _DirNode):
                raise IsNotDirectory(f"'{node.name}' is not a directory", path=self.url(path), backend=self.name)
            child = node.children.get(segment)
            if child is None:
                child = _DirNode(name=segment, modified=_now(), permissions=permissions)
                node.children[segment] = child
                events.append((current, Event.CREATE))
            node = child
        if not isinstance(node, _DirNode):
            raise IsNotDirectory("Path is a file", path=self.url(path), backend=self.name)

    def _seed(self, path: str, data: bytes) -> None:
        path = self.join_clean_path(path)
        parent, _ = self.dir_and_name(path)
        events: list[tuple[str, Event]] = []
        self._make_all(parent, Permissions.DEFAULT_DIR, events)
        self._store(path, data, events)

    def _info(self, path: str, node: _Node) -> FileInfo:
        is_dir = isinstance(node, _DirNode)
        return FileInfo(
            uri=self.url(path),
            name=node.name,
            exists=True,
            is_dir=is_dir,
            is_regular=not is_dir,
            is_hidden=node is not self._root and node.name.startswith("."),
            size=0 if isinstance(node, _DirNode) else len(node.data),
            modified=node.modified,
            permissions=node.permissions,
        )

    @contextlib.contextmanager
    def _mutate(self, operation: str, path: str) -> Iterator[list[tuple[str, Event]]]:
        """Hold the tree lock exclusively and notify watchers afterwards."""
        if self._read_only:
            raise ReadOnlyFileSystem(
                f"Cannot {operation} on a read-only file system", path=self.url(path), backend=self.name
            )
        events: list[tuple[str, Event]] = []
        with self._lock.write():
            yield events
        log.debug("memory %s %s", operation, self.url(path))
        self._notify(events)

    def _notify(self, events: list[tuple[str, Event]]) -> None:
        if not events:
            return
        with self._watchers_lock:
            if not self._watchers:
                return
            watchers = {path: list(callbacks) for path, callbacks in self._watchers.items()}
        for path, event in events:
            parent, _ = self.dir_and_name(path)
            callbacks = watchers.get(path, [])
            if parent != path:
                callbacks = callbacks + watchers.get(parent, [])
            for callback in callbacks:
                callback(self.url(path), event)

    def _commit(self, path: str, data: bytes) -> None:
        with self._mutate("write", path) as events:
            self._store(path, data, events)

    # endregion

    # region: metadata

    def stat(self, path: str) -> FileInfo:
        path = self.join_clean_path(path)
        with self._lock.read():
            return self._info(path, self._node(path))

    def exists(self, path: str) -> bool:
        path = self.join_clean_path(path)
        with self._lock.read():
            try:
                return self._walk(path)[0] is not None
            except (DoesNotExist, IsNotDirectory):
                return False

    # endregion

    # region: listing

    def list_dir_info(
        self,
        path: str,
        *,
        patterns: Sequence[str] = (),
        cancel: threading.Event | None = None,
    ) -> Iterator[FileInfo]:
        path = self.join_clean_path(path)
        with self._lock.read():
            node = self._node(path)
            if not isinstance(node, _DirNode):
                raise IsNotDirectory("Path is not a directory", path=self.url(path), backend=self.name)
            infos = [
                self._info(_path.child_path(path, name, self._sep), child)
                for name, child in sorted(node.children.items())
                if self.match_any_pattern(name, patterns)
            ]
        for info in infos:
            self._check_canceled(cancel, path)
            yield info

    # endregion

    # region: data access

    def open_reader(self, path: str) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._lock.read():
            return io.BytesIO(bytes(self._file_node(path).data))

    def open_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._mutate("open writer", path) as events:
            self._store(path, b"", events, permissions=permissions)
        return _MemoryWriter(self, path, b"", at_end=False)

    def open_append_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._mutate("open append writer", path) as events:
            node = self._store(path, b"", events, append=True, permissions=permissions)
            initial = bytes(node.data)
        return _MemoryWriter(self, path, initial, at_end=True)

    def open_read_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._mutate("open read writer", path) as events:
            node = self._store(path, b"", events, append=True, permissions=permissions)
            initial = bytes(node.data)
        return _MemoryWriter(self, path, initial, at_end=False)

    def read_all(self, path: str) -> bytes:
        path = self.join_clean_path(path)
        with self._lock.read():
            return bytes(self._file_node(path).data)

    def write_all(self, path: str, data: bytes, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._mutate("write", path) as events:
            self._store(path, data, events, permissions=permissions)

    def append(self, path: str, data: bytes, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._mutate("append", path) as events:
            self._store(path, data, events, append=True, permissions=permissions)

    # endregion

    # region: lifecycle

    def make_dir(self, path: str, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._mutate("make dir", path) as events:
            node, parent, name = self._walk(path)
            if node is not None or parent is None:
                raise AlreadyExists("Path already exists", path=self.url(path), backend=self.name)
            parent.children[name] = _DirNode(
                name=name, modified=_now(), permissions=permissions or Permissions.DEFAULT_DIR
            )
            events.append((path, Event.CREATE))

    def make_all_dirs(self, path: str, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._mutate("make all dirs", path) as events:
            self._make_all(path, permissions or Permissions.DEFAULT_DIR, events)

    def touch(self, path: str, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._mutate("touch", path) as events:
            node, _, _ = self._walk(path)
            if node is None:
                self._store(path, b"", events, permissions=permissions)
            else:
                node.modified = _now()
                events.append((path, Event.WRITE))

    def truncate(self, path: str, size: int) -> None:
        if size < 0:
            raise ValueError(f"Size must not be negative, got {size}")
        path = self.join_clean_path(path)
        with self._mutate("truncate", path) as events:
            node = self._file_node(path)
            current = len(node.data)
            if size == current:
                return
            if size < current:
                del node.data[size:]
            else:
                node.data.extend(bytes(size - current))
            node.modified = _now()
            events.append((path, Event.WRITE))

    def remove(self, path: str) -> None:
        path = self.join_clean_path(path)
        with self._mutate("remove", path) as events:
            node, parent, name = self._walk(path)
            if parent is None:
                raise InvalidPath("Cannot remove the root directory", path=self.url(path), backend=self.name)
            if node is None:
                raise DoesNotExist("File does not exist", path=self.url(path), backend=self.name)
            del parent.children[name]
            events.append((path, Event.REMOVE))

    def copy_file(self, src: str, dst: str, *, cancel: threading.Event | None = None) -> None:
        src = self.join_clean_path(src)
        dst = self.join_clean_path(dst)
        self._check_canceled(cancel, src)
        with self._mutate("copy", dst) as events:
            source = self._file_node(src)
            target, _, _ = self._walk(dst)
            if isinstance(target, _DirNode):
                dst = _path.child_path(dst, source.name, self._sep)
            node = self._store(dst, bytes(source.data), events, permissions=source.permissions)
            node.permissions = source.permissions

    def move(self, src: str, dst: str) -> None:
        src = self.join_clean_path(src)
        dst = self.join_clean_path(dst)
        with self._mutate("move", src) as events:
            node, src_parent, src_name = self._walk(src)
            if src_parent is None:
                raise InvalidPath("Cannot move the root directory", path=self.url(src), backend=self.name)
            if node is None:
                raise DoesNotExist("File does not exist", path=self.url(src), backend=self.name)
            target, dst_parent, dst_name = self._walk(dst)
            if isinstance(target, _DirNode):
                dst = _path.child_path(dst, src_name, self._sep)
                target, dst_parent, dst_name = target.children.get(src_name), target, src_name
            if target is not None:
                raise AlreadyExists("Destination already exists", path=self.url(dst), backend=self.name)
            if dst_parent is None:
                raise InvalidPath("Cannot move onto the root directory", path=self.url(dst), backend=self.name)
            if isinstance(node, _DirNode) and (dst + self._sep).startswith(src + self._sep):
                raise InvalidPath(
                    "Cannot move a directory into its own subtree", path=self.url(dst), backend=self.name
                )
            del src_parent.children[src_name]
            node.name = dst_name
            node.modified = _now()
            dst_parent.children[dst_name] = node
            events.append((src, Event.RENAME))
            events.append((dst, Event.CREATE))

    def rename(self, path: str, new_name: str) -> str:
        if not new_name or self._sep in new_name:
            raise InvalidPath(f"Invalid new name {new_name!r}", path=self.url(path), backend=self.name)
        path = self.join_clean_path(path)
        parent_path, _ = self.dir_and_name(path)
        new_path = _path.child_path(parent_path, new_name, self._sep)
        with self._mutate("rename", path) as events:
            node, parent, name = self._walk(path)
            if parent is None:
                raise InvalidPath("Cannot rename the root directory", path=self.url(path), backend=self.name)
            if node is None:
                raise DoesNotExist("File does not exist", path=self.url(path), backend=self.name)
            if new_name == name:
                return new_path
            if new_name in parent.children:
                raise AlreadyExists("Destination already exists", path=self.url(new_path), backend=self.name)
            del parent.children[name]
            node.name = new_name
            parent.children[new_name] = node
            events.append((path, Event.RENAME))
            events.append((new_path, Event.CREATE))
        return new_path

    def set_permissions(self, path: str, permissions: Permissions) -> None:
        path = self.join_clean_path(path)
        with self._mutate("set permissions", path) as events:
            self._node(path).permissions = permissions
            events.append((path, Event.CHMOD))

    def volume_name(self, path: str) -> str:
        if not path:
            return ""
        return self._volume

    def watch(self, path: str, on_event: EventCallback) -> CancelWatch:
        path = self.join_clean_path(path)
        with self._watchers_lock:
            self._watchers.setdefault(path, []).append(on_event)

        def cancel() -> None:
            with self._watchers_lock:
                callbacks = self._watchers.get(path, [])
                if on_event in callbacks:
                    callbacks.remove(on_event)
                if not callbacks:
                    self._watchers.pop(path, None)

        return cancel

    def clear(self) -> None:
        """Remove every file and directory below the root."""
        with self._lock.write():
            self._root.children.clear()
            self._root.modified = _now()

    def close(self) -> None:
        """Clear the tree and drop the backend from its registry. Idempotent."""
        with self._watchers_lock:
            if self._closed:
                return
            self._closed = True
            self._watchers.clear()
        self.clear()
        if self._registry is not None:
            self._registry.evict(self)
        log.debug("Closed %s", self.prefix)

    # endregion
