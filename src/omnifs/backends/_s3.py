"""S3-compatible object storage backend using s3fs."""

from __future__ import annotations

import io
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, BinaryIO

from omnifs import _path
from omnifs._backend import Backend
from omnifs._capabilities import Capability, CapabilitySet
from omnifs._errors import (
    AlreadyExists,
    BackendUnavailable,
    DoesNotExist,
    FileSystemError,
    IsDirectory,
    IsNotDirectory,
    normalize_error,
)
from omnifs._models import FileInfo, Permissions

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterator, Sequence

_S3_CAPABILITIES = CapabilitySet({Capability.COPY, Capability.TOUCH, Capability.MAKE_ALL_DIRS})

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class _S3Writer(io.BytesIO):
    """Buffer uploaded as one object when closed; S3 has no partial writes."""

    def __init__(self, backend: S3Backend, path: str, initial: bytes = b"") -> None:
        super().__init__(initial)
        self._backend = backend
        self._path = path

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._backend.write_all(self._path, self.getvalue())
        finally:
            super().close()


class S3Backend(Backend):
    """S3-compatible object storage backend using s3fs.

    Directories are key prefixes; :meth:`make_dir` stores an empty
    ``<dir>/`` marker object so empty directories survive. Backend-local
    paths are absolute keys below the bucket, e.g. ``/reports/q1.csv``.

    :param bucket: S3 bucket name (required, non-empty).
    :param endpoint_url: Custom endpoint URL (e.g. for MinIO).
    :param key: AWS access key ID.
    :param secret: AWS secret access key.
    :param region_name: AWS region name.
    :param client_options: Additional options passed to s3fs.
    """

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        key: str | None = None,
        secret: str | None = None,
        region_name: str | None = None,
        client_options: dict[str, Any] | None = None,
    ) -> None:
        if not bucket or not bucket.strip():
            raise ValueError("bucket must be a non-empty string")
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._key = key
        self._secret = secret
        self._region_name = region_name
        self._client_options = client_options or {}
        self._fs_instance: Any = None

    def __repr__(self) -> str:
        return f"S3Backend(bucket={self._bucket!r})"

    @property
    def prefix(self) -> str:
        return f"s3://{self._bucket}"

    @property
    def name(self) -> str:
        return "s3"

    @property
    def capabilities(self) -> CapabilitySet:
        return _S3_CAPABILITIES

    # region: lazy filesystem

    @property
    def _fs(self) -> Any:
        if self._fs_instance is None:
            import s3fs  # type: ignore[import-untyped]

            opts: dict[str, Any] = dict(self._client_options)
            if self._endpoint_url is not None:
                opts["endpoint_url"] = self._endpoint_url
            if self._key is not None:
                opts["key"] = self._key
            if self._secret is not None:
                opts["secret"] = self._secret
            if self._region_name is not None:
                client_kwargs: dict[str, Any] = opts.setdefault("client_kwargs", {})
                client_kwargs["region_name"] = self._region_name
            opts.setdefault("anon", False)
            self._fs_instance = s3fs.S3FileSystem(**opts)
        return self._fs_instance

    # endregion

    # region: path helpers

    def _s3_path(self, path: str) -> str:
        """``bucket/key`` of a clean backend-local path."""
        if path == self.separator:
            return self._bucket
        return f"{self._bucket}{path}"

    # endregion

    # region: error mapping

    @contextmanager
    def _errors(self, path: str = "") -> Iterator[None]:
        """Map s3fs/botocore exceptions to omnifs errors."""
        try:
            yield
        except FileSystemError:
            raise
        except Exception as exc:
            raise self._classify_error(exc, path) from exc

    def _classify_error(self, exc: Exception, path: str) -> FileSystemError:
        """Classify an s3fs exception into an omnifs error type."""
        uri = self.url(path)
        if not isinstance(exc, OSError):
            msg = str(exc).lower()
            if any(kw in msg for kw in ("endpoint", "connect", "timeout", "dns", "name or service")):
                return BackendUnavailable(str(exc), path=uri, backend=self.name)
        return normalize_error(exc, path=uri, backend=self.name)

    # endregion

    # region: helpers

    def _info(self, path: str) -> dict[str, Any] | None:
        """s3fs info dict of ``path``, ``None`` if nothing exists there."""
        if path == self.separator:
            return {"type": "directory", "size": 0}
        try:
            return self._fs.info(self._s3_path(path))  # type: ignore[no-any-return]
        except FileNotFoundError:
            return None

    def _to_fileinfo(self, path: str, info: dict[str, Any]) -> FileInfo:
        """Convert an s3fs info dict to a FileInfo."""
        _, name = self.dir_and_name(path)
        is_dir = info.get("type") == "directory"
        modified = info.get("LastModified", info.get("last_modified"))
        if isinstance(modified, str):
            modified = datetime.fromisoformat(modified)
        if modified is not None and modified.tzinfo is None:
            modified = modified.replace(tzinfo=timezone.utc)
        return FileInfo(
            uri=self.url(path),
            name=name or self.separator,
            exists=True,
            is_dir=is_dir,
            is_regular=not is_dir,
            is_hidden=name.startswith("."),
            size=0 if is_dir else int(info.get("size", info.get("Size", 0)) or 0),
            modified=modified or _EPOCH,
            permissions=Permissions.DEFAULT_DIR if is_dir else Permissions.DEFAULT_FILE,
        )

    def _require_parent(self, path: str) -> None:
        parent, _ = self.dir_and_name(path)
        info = self._info(parent)
        if info is None:
            raise DoesNotExist("Parent directory does not exist", path=self.url(path), backend=self.name)
        if info.get("type") != "directory":
            raise IsNotDirectory("Parent is not a directory", path=self.url(path), backend=self.name)

    def _require_file(self, path: str) -> None:
        info = self._info(path)
        if info is None:
            raise DoesNotExist("File does not exist", path=self.url(path), backend=self.name)
        if info.get("type") == "directory":
            raise IsDirectory("Path is a directory", path=self.url(path), backend=self.name)

    # endregion

    # region: metadata

    def stat(self, path: str) -> FileInfo:
        path = self.join_clean_path(path)
        with self._errors(path):
            info = self._info(path)
        if info is None:
            raise DoesNotExist("File does not exist", path=self.url(path), backend=self.name)
        return self._to_fileinfo(path, info)

    def exists(self, path: str) -> bool:
        path = self.join_clean_path(path)
        with self._errors(path):
            return self._info(path) is not None

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
        self._check_canceled(cancel, path)
        with self._errors(path):
            info = self._info(path)
            if info is None:
                raise DoesNotExist("Directory does not exist", path=self.url(path), backend=self.name)
            if info.get("type") != "directory":
                raise IsNotDirectory("Path is not a directory", path=self.url(path), backend=self.name)
            own = self._s3_path(path).rstrip("/")
            try:
                entries: list[dict[str, Any]] = self._fs.ls(self._s3_path(path), detail=True, refresh=True)
            except FileNotFoundError:
                # s3fs reports an empty bucket as missing
                entries = []
        children = {}
        for entry in entries:
            key = entry["name"].rstrip("/")
            if key == own:
                continue
            children[key.rsplit("/", 1)[-1]] = entry
        for name in sorted(children):
            self._check_canceled(cancel, path)
            if self.match_any_pattern(name, patterns):
                yield self._to_fileinfo(_path.child_path(path, name, self.separator), children[name])

    # endregion

    # region: data access

    def open_reader(self, path: str) -> BinaryIO:
        return io.BytesIO(self.read_all(path))

    def read_all(self, path: str) -> bytes:
        path = self.join_clean_path(path)
        with self._errors(path):
            self._require_file(path)
            return bytes(self._fs.cat_file(self._s3_path(path)))

    def write_all(self, path: str, data: bytes, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._errors(path):
            info = self._info(path)
            if info is not None and info.get("type") == "directory":
                raise IsDirectory("Path is a directory", path=self.url(path), backend=self.name)
            if info is None:
                self._require_parent(path)
            self._fs.pipe_file(self._s3_path(path), data)

    def open_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        self.write_all(path, b"")
        return _S3Writer(self, path)

    def open_read_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._errors(path):
            info = self._info(path)
        initial = b"" if info is None else self.read_all(path)
        if info is None:
            self.write_all(path, b"")
        return _S3Writer(self, path, initial)

    # endregion

    # region: lifecycle

    def make_dir(self, path: str, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._errors(path):
            if self._info(path) is not None:
                raise AlreadyExists("Path already exists", path=self.url(path), backend=self.name)
            self._require_parent(path)
            self._fs.pipe_file(self._s3_path(path) + "/", b"")

    def make_all_dirs(self, path: str, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        current = ""
        with self._errors(path):
            for part in self.split_path(path):
                current = f"{current}/{part}"
                info = self._info(current)
                if info is None:
                    self._fs.pipe_file(self._s3_path(current) + "/", b"")
                elif info.get("type") != "directory":
                    raise IsNotDirectory(f"'{current}' is a file", path=self.url(path), backend=self.name)

    def remove(self, path: str) -> None:
        path = self.join_clean_path(path)
        with self._errors(path):
            info = self._info(path)
            if info is None:
                raise DoesNotExist("File does not exist", path=self.url(path), backend=self.name)
            if info.get("type") == "directory":
                self._remove_tree(self._s3_path(path))
            else:
                self._fs.rm_file(self._s3_path(path))
            self._fs.invalidate_cache(self._s3_path(path))

    def _remove_tree(self, s3_path: str) -> None:
        """Delete every object below ``s3_path``, directory markers included, bottom-up."""
        for entry in self._fs.ls(s3_path, detail=True, refresh=True):
            key = entry["name"].rstrip("/")
            if key == s3_path:
                continue
            if entry.get("type") == "directory":
                self._remove_tree(key)
            else:
                self._fs.rm_file(key)
        self._fs.rm_file(s3_path + "/")

    def touch(self, path: str, *, permissions: Permissions | None = None) -> None:
        # S3 cannot set modification times, rewriting the object updates it.
        path = self.join_clean_path(path)
        with self._errors(path):
            info = self._info(path)
            if info is not None and info.get("type") == "directory":
                return
            data = b"" if info is None else bytes(self._fs.cat_file(self._s3_path(path)))
        self.write_all(path, data)

    def copy_file(self, src: str, dst: str, *, cancel: threading.Event | None = None) -> None:
        src = self.join_clean_path(src)
        dst = self.join_clean_path(dst)
        self._check_canceled(cancel, src)
        with self._errors(src):
            self._require_file(src)
            info = self._info(dst)
            if info is not None and info.get("type") == "directory":
                dst = _path.child_path(dst, self.dir_and_name(src)[1], self.separator)
            elif info is None:
                self._require_parent(dst)
            self._fs.copy(self._s3_path(src), self._s3_path(dst))

    def close(self) -> None:
        if self._fs_instance is not None:
            self._fs_instance.clear_instance_cache()
            self._fs_instance = None

    # endregion
