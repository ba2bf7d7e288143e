"""Local filesystem backend, stdlib-only reference implementation."""

from __future__ import annotations

import errno
import os
import shutil
import stat
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, BinaryIO

from omnifs._backend import Backend
from omnifs._capabilities import Capability, CapabilitySet
from omnifs._errors import (
    AlreadyExists,
    FileSystemError,
    InvalidPath,
    IsNotDirectory,
    normalize_error,
)
from omnifs._models import FileInfo, Permissions

try:
    import grp
    import pwd
except ImportError:  # pragma: no cover -- Windows
    grp = pwd = None  # type: ignore[assignment]

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterator, Sequence

LOCAL_PREFIX = "file://"

_CAPABILITIES = CapabilitySet.all().without(Capability.WATCH)
if pwd is None:  # pragma: no cover
    _CAPABILITIES = _CAPABILITIES.without(Capability.USER_GROUP)


class LocalBackend(Backend):
    """Local filesystem backend using only the Python standard library.

    Owns the ``file://`` prefix and every URI no other backend claims.
    Backend-local paths are native paths; relative paths are relative to
    the current working directory.
    """

    @property
    def prefix(self) -> str:
        return LOCAL_PREFIX

    @property
    def name(self) -> str:
        return "local"

    @property
    def capabilities(self) -> CapabilitySet:
        return _CAPABILITIES

    @property
    def separator(self) -> str:
        return os.sep

    @property
    def volume_len(self) -> int:
        return len(os.path.splitdrive(os.getcwd())[0])

    def __repr__(self) -> str:
        return "LocalBackend()"

    # region: path algebra

    def url(self, path: str) -> str:
        path = os.path.abspath(path)
        if os.sep != "/":  # pragma: no cover
            path = path.replace(os.sep, "/")
        return LOCAL_PREFIX + path

    def join_clean_path(self, *parts: str) -> str:
        parts_list = [p for p in parts if p]
        if parts_list:
            parts_list[0] = parts_list[0].removeprefix(LOCAL_PREFIX)
        if not parts_list:
            return os.getcwd()
        return os.path.abspath(os.path.join(*parts_list))

    def split_path(self, path: str) -> list[str]:
        path = self.join_clean_path(path)
        _, rest = os.path.splitdrive(path)
        rest = rest.strip(os.sep)
        if not rest:
            return []
        return rest.split(os.sep)

    def is_abs_path(self, path: str) -> bool:
        return os.path.isabs(path)

    def abs_path(self, path: str) -> str:
        return os.path.abspath(path)

    # endregion

    # region: error mapping

    @contextmanager
    def _errors(self, path: str) -> Iterator[None]:
        """Map ``OSError`` to omnifs errors, keeping the native cause."""
        try:
            yield
        except FileSystemError:
            raise
        except OSError as exc:
            raise normalize_error(exc, path=self.url(path), backend=self.name) from exc

    # endregion

    # region: metadata

    def _info(self, path: str, st: os.stat_result) -> FileInfo:
        full = os.path.abspath(path)
        name = os.path.basename(full) or os.sep
        return FileInfo(
            uri=self.url(full),
            name=name,
            exists=True,
            is_dir=stat.S_ISDIR(st.st_mode),
            is_regular=stat.S_ISREG(st.st_mode),
            is_hidden=name.startswith("."),
            size=0 if stat.S_ISDIR(st.st_mode) else st.st_size,
            modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            permissions=Permissions.from_mode(st.st_mode),
        )

    def stat(self, path: str) -> FileInfo:
        with self._errors(path):
            return self._info(path, os.stat(path))

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_symbolic_link(self, path: str) -> bool:
        return os.path.islink(path)

    # endregion

    # region: listing

    def list_dir_info(
        self,
        path: str,
        *,
        patterns: Sequence[str] = (),
        cancel: threading.Event | None = None,
    ) -> Iterator[FileInfo]:
        with self._errors(path), os.scandir(path) as it:
            entries = sorted(it, key=lambda entry: entry.name)
        for entry in entries:
            self._check_canceled(cancel, path)
            if not self.match_any_pattern(entry.name, patterns):
                continue
            try:
                st = entry.stat()
            except FileNotFoundError:
                continue
            yield self._info(entry.path, st)

    # endregion

    # region: data access

    def _open(self, path: str, flags: int, mode: str, permissions: Permissions | None) -> BinaryIO:
        with self._errors(path):
            fd = os.open(path, flags, int(permissions) if permissions is not None else 0o666)
            return os.fdopen(fd, mode)

    def open_reader(self, path: str) -> BinaryIO:
        with self._errors(path):
            if os.path.isdir(path):
                raise IsADirectoryError(errno.EISDIR, "Is a directory", path)
            return open(path, "rb")  # noqa: SIM115

    def open_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        return self._open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, "wb", permissions)

    def open_append_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        return self._open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, "ab", permissions)

    def open_read_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        return self._open(path, os.O_RDWR | os.O_CREAT, "r+b", permissions)

    def read_all(self, path: str) -> bytes:
        with self.open_reader(path) as f, self._errors(path):
            return f.read()

    def append(self, path: str, data: bytes, *, permissions: Permissions | None = None) -> None:
        with self.open_append_writer(path, permissions=permissions) as f, self._errors(path):
            f.write(data)

    # endregion

    # region: lifecycle

    def make_dir(self, path: str, *, permissions: Permissions | None = None) -> None:
        with self._errors(path):
            os.mkdir(path, int(permissions) if permissions is not None else 0o777)

    def make_all_dirs(self, path: str, *, permissions: Permissions | None = None) -> None:
        with self._errors(path):
            try:
                os.makedirs(path, int(permissions) if permissions is not None else 0o777, exist_ok=True)
            except FileExistsError as exc:
                raise IsNotDirectory("A file is in the way", path=self.url(path), backend=self.name) from exc

    def remove(self, path: str) -> None:
        with self._errors(path):
            if os.path.isdir(path) and not os.path.islink(path):
                os.rmdir(path)
            else:
                os.remove(path)

    def touch(self, path: str, *, permissions: Permissions | None = None) -> None:
        with self._errors(path):
            if os.path.exists(path):
                os.utime(path)
                return
        self._open(path, os.O_WRONLY | os.O_CREAT, "wb", permissions).close()

    def truncate(self, path: str, size: int) -> None:
        if size < 0:
            raise ValueError(f"Size must not be negative, got {size}")
        with self._errors(path):
            os.truncate(path, size)

    def copy_file(self, src: str, dst: str, *, cancel: threading.Event | None = None) -> None:
        self._check_canceled(cancel, src)
        with self._errors(src):
            if os.path.isdir(src):
                raise IsADirectoryError(errno.EISDIR, "Is a directory", src)
            shutil.copy2(src, dst)

    def move(self, src: str, dst: str) -> None:
        with self._errors(src):
            if not os.path.lexists(src):
                raise FileNotFoundError(errno.ENOENT, "No such file or directory", src)
            if os.path.isdir(dst):
                dst = os.path.join(dst, os.path.basename(os.path.abspath(src)))
            if os.path.lexists(dst):
                raise AlreadyExists("Destination already exists", path=self.url(dst), backend=self.name)
            shutil.move(src, dst)

    def rename(self, path: str, new_name: str) -> str:
        if not new_name or os.sep in new_name or (os.altsep and os.altsep in new_name):
            raise InvalidPath(f"Invalid new name {new_name!r}", path=self.url(path), backend=self.name)
        new_path = os.path.join(os.path.dirname(os.path.abspath(path)), new_name)
        with self._errors(path):
            if os.path.lexists(new_path) and not os.path.samefile(path, new_path):
                raise AlreadyExists("Destination already exists", path=self.url(new_path), backend=self.name)
            os.rename(path, new_path)
        return new_path

    # endregion

    # region: permissions and ownership

    def set_permissions(self, path: str, permissions: Permissions) -> None:
        with self._errors(path):
            os.chmod(path, int(permissions))

    def user(self, path: str) -> str:
        with self._errors(path):
            uid = os.stat(path).st_uid
        try:
            return pwd.getpwuid(uid).pw_name
        except KeyError:
            return str(uid)

    def set_user(self, path: str, user: str) -> None:
        try:
            uid = pwd.getpwnam(user).pw_uid
        except KeyError:
            raise FileSystemError(f"Unknown user {user!r}", path=self.url(path), backend=self.name) from None
        with self._errors(path):
            os.chown(path, uid, -1)

    def group(self, path: str) -> str:
        with self._errors(path):
            gid = os.stat(path).st_gid
        try:
            return grp.getgrgid(gid).gr_name
        except KeyError:
            return str(gid)

    def set_group(self, path: str, group: str) -> None:
        try:
            gid = grp.getgrnam(group).gr_gid
        except KeyError:
            raise FileSystemError(f"Unknown group {group!r}", path=self.url(path), backend=self.name) from None
        with self._errors(path):
            os.chown(path, -1, gid)

    def volume_name(self, path: str) -> str:
        return os.path.splitdrive(os.path.abspath(path))[0]

    # endregion
