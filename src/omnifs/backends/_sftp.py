"""SFTP backend using pure paramiko."""

from __future__ import annotations

import contextlib
import logging
import os
import stat
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, BinaryIO

from omnifs import _path
from omnifs._backend import Backend
from omnifs._cancel import check_canceled
from omnifs._capabilities import Capability, CapabilitySet
from omnifs._errors import (
    AlreadyExists,
    BackendUnavailable,
    Canceled,
    DoesNotExist,
    FileSystemError,
    InvalidPath,
    IsDirectory,
    IsNotDirectory,
    normalize_error,
)
from omnifs._models import FileInfo, Permissions

if TYPE_CHECKING:
    import threading
    from collections.abc import Iterator, Sequence

    from omnifs._registry import Registry

log = logging.getLogger(__name__)

_SFTP_CAPABILITIES = CapabilitySet(
    {
        Capability.COPY,
        Capability.MOVE,
        Capability.RENAME,
        Capability.TOUCH,
        Capability.TRUNCATE,
        Capability.APPEND,
        Capability.APPEND_WRITER,
        Capability.PERMISSIONS,
        Capability.MAKE_ALL_DIRS,
    }
)

# RFC 4253 compliant chunk size for SFTP data transfer
_CHUNK_SIZE = 32768

DEFAULT_PORT = 22


# region: host key policy


class HostKeyPolicy(Enum):
    """Controls how unknown remote host keys are handled.

    :cvar STRICT: Reject unknown hosts (production default).
    :cvar TRUST_ON_FIRST_USE: Save on first connect, verify after.
    :cvar AUTO_ADD: Accept any key (dev/testing ONLY).
    """

    STRICT = "strict"
    TRUST_ON_FIRST_USE = "tofu"
    AUTO_ADD = "auto"


_HOST_KEYS_ENV = "SFTP_KNOWN_HOST_KEYS"


def _load_host_keys_from_string(ssh: Any, keys_content: str) -> None:  # pragma: no cover
    """Parse a known_hosts-formatted string into an SSHClient's host keys."""
    import tempfile

    with tempfile.NamedTemporaryFile(mode="w", suffix=".known_hosts", delete=True) as tmp:
        tmp.write(keys_content)
        tmp.flush()
        ssh.load_host_keys(tmp.name)


# endregion


def sftp_prefix(host: str, *, port: int = DEFAULT_PORT, username: str | None = None) -> str:
    """URI prefix of an SFTP endpoint, e.g. ``sftp://alice@example.com:2222``."""
    authority = f"{username}@{host}" if username else host
    if port != DEFAULT_PORT:
        authority = f"{authority}:{port}"
    return f"sftp://{authority}"


class SFTPBackend(Backend):
    """SFTP backend using pure paramiko.

    The connection is opened lazily on first use, or eagerly by
    :meth:`connect`, and re-established when it went stale.
    Backend-local paths are absolute paths on the server.

    :param host: SFTP server hostname (required, non-empty).
    :param port: SSH port (default: 22).
    :param username: SSH username, part of the prefix.
    :param password: SSH password.
    :param pkey: paramiko.PKey instance for key-based auth.
    :param host_key_policy: Host key verification policy.
    :param known_host_keys: Known hosts string (code-level override).
    :param host_keys_path: Path to known_hosts file (default: ``~/.ssh/known_hosts``).
    :param config: Optional config dict (may contain ``known_host_keys``).
    :param timeout: SSH connection timeout in seconds.
    :param connect_kwargs: Extra kwargs passed to ``SSHClient.connect()``.
    """

    def __init__(
        self,
        host: str,
        *,
        port: int = DEFAULT_PORT,
        username: str | None = None,
        password: str | None = None,
        pkey: Any = None,
        host_key_policy: HostKeyPolicy | str = HostKeyPolicy.STRICT,
        known_host_keys: str | None = None,
        host_keys_path: str | None = None,
        config: dict[str, Any] | None = None,
        timeout: int = 10,
        connect_kwargs: dict[str, Any] | None = None,
    ) -> None:
        if not host or not host.strip():
            raise ValueError("host must be a non-empty string")
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._pkey = pkey
        self._host_key_policy = HostKeyPolicy(host_key_policy)
        self._host_keys_path = host_keys_path
        self._timeout = timeout
        self._connect_kwargs = connect_kwargs or {}
        self._resolved_host_keys = self._resolve_host_keys(known_host_keys, config)
        self._prefix = sftp_prefix(host, port=port, username=username)
        self._registry: Registry | None = None

        self._ssh_client: Any = None
        self._sftp_client: Any = None

    def __repr__(self) -> str:
        return f"SFTPBackend(prefix={self._prefix!r})"

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def name(self) -> str:
        return "sftp"

    @property
    def capabilities(self) -> CapabilitySet:
        return _SFTP_CAPABILITIES

    # region: lazy connection

    @property
    def _sftp(self) -> Any:
        """Lazy SFTP client with automatic reconnection on staleness."""
        if not self._is_connected():
            self.connect()
        return self._sftp_client

    def connect(self, *, cancel: threading.Event | None = None) -> None:
        """Establish SSH + SFTP connection with tenacity retry.

        :param cancel: Stops retrying once set.
        :raises Canceled: If ``cancel`` is set before the connection succeeds.
        :raises BackendUnavailable: If every connection attempt fails.
        """
        import paramiko
        from tenacity import (
            before_sleep_log,
            retry,
            retry_if_exception_type,
            stop_after_attempt,
            stop_when_event_set,
            wait_exponential,
        )

        # Close any existing stale connection
        self._close_clients()

        ssh = self._create_ssh_client()
        stop = stop_after_attempt(3)
        if cancel is not None:
            stop = stop | stop_when_event_set(cancel)

        @retry(
            retry=retry_if_exception_type((paramiko.SSHException, OSError, EOFError)),
            stop=stop,
            wait=wait_exponential(multiplier=1, min=2, max=10),
            before_sleep=before_sleep_log(log, logging.WARNING),  # type: ignore[arg-type,unused-ignore]
            reraise=True,
        )
        def _do_connect() -> None:
            check_canceled(cancel, path=self._prefix)
            log.info("Connecting to %s:%d as %s", self._host, self._port, self._username)
            ssh.connect(
                hostname=self._host,
                port=self._port,
                username=self._username,
                password=self._password,
                pkey=self._pkey,
                timeout=self._timeout,
                banner_timeout=self._timeout,
                auth_timeout=self._timeout,
                channel_timeout=self._timeout,
                **self._connect_kwargs,
            )

        try:
            _do_connect()
            sftp = ssh.open_sftp()
        except Canceled:
            ssh.close()
            raise
        except (paramiko.SSHException, OSError, EOFError) as exc:
            ssh.close()
            check_canceled(cancel, path=self._prefix)
            raise BackendUnavailable(
                f"Cannot connect to {self._host}:{self._port}: {exc}", path=self._prefix, backend=self.name
            ) from exc
        self._ssh_client = ssh
        self._sftp_client = sftp
        log.info("SFTP connection to %s established.", self._prefix)

    def _create_ssh_client(self) -> Any:
        """Create and configure an SSHClient with host key policy."""
        import paramiko

        ssh = paramiko.SSHClient()

        # Load known host keys from resolved source or file fallback
        if self._resolved_host_keys:  # pragma: no cover -- tested via unit test
            _load_host_keys_from_string(ssh, self._resolved_host_keys)
        elif self._host_key_policy in (  # pragma: no cover -- tests use AUTO_ADD
            HostKeyPolicy.STRICT,
            HostKeyPolicy.TRUST_ON_FIRST_USE,
        ):
            keys_path = self._host_keys_path or os.path.expanduser("~/.ssh/known_hosts")
            if os.path.isfile(keys_path):
                ssh.load_host_keys(keys_path)

        if self._host_key_policy == HostKeyPolicy.TRUST_ON_FIRST_USE:  # pragma: no cover
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        elif self._host_key_policy == HostKeyPolicy.AUTO_ADD:
            log.warning("AUTO_ADD host key policy -- NOT safe for production.")
            ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        return ssh

    def _is_connected(self) -> bool:
        """Check if the SFTP connection is alive."""
        if self._sftp_client is None or self._ssh_client is None:
            return False
        try:
            self._sftp_client.stat(".")
            return True
        except Exception:  # pragma: no cover -- requires transport failure
            return False

    def _resolve_host_keys(self, direct: str | None, config: dict[str, Any] | None) -> str | None:
        """Resolve known host keys: code > config > env > file fallback."""
        if direct:
            return direct
        if config and (val := config.get("known_host_keys")):  # pragma: no cover
            return str(val)
        if val_env := os.environ.get(_HOST_KEYS_ENV):  # pragma: no cover
            return val_env
        return None

    def _close_clients(self) -> None:
        """Close SFTP and SSH clients if open."""
        if self._sftp_client is not None:
            with contextlib.suppress(Exception):
                self._sftp_client.close()
            self._sftp_client = None
        if self._ssh_client is not None:
            with contextlib.suppress(Exception):
                self._ssh_client.close()
            self._ssh_client = None

    # endregion

    # region: error mapping

    @contextmanager
    def _errors(self, path: str = "") -> Iterator[None]:
        """Map paramiko/OS exceptions to omnifs errors."""
        import paramiko

        try:
            yield
        except FileSystemError:
            raise
        except (paramiko.SSHException, EOFError) as exc:  # pragma: no cover -- requires SSH failure
            raise BackendUnavailable(str(exc), path=self.url(path), backend=self.name) from exc
        except OSError as exc:
            raise normalize_error(exc, path=self.url(path), backend=self.name) from exc

    # endregion

    # region: helpers

    def _attrs_to_fileinfo(self, path: str, attrs: Any) -> FileInfo:
        """Convert paramiko SFTPAttributes to a FileInfo."""
        _, name = self.dir_and_name(path)
        mode = attrs.st_mode or 0
        is_dir = stat.S_ISDIR(mode)
        if attrs.st_mtime is not None:
            modified = datetime.fromtimestamp(attrs.st_mtime, tz=timezone.utc)
        else:  # pragma: no cover
            modified = datetime.now(tz=timezone.utc)
        return FileInfo(
            uri=self.url(path),
            name=name or self.separator,
            exists=True,
            is_dir=is_dir,
            is_regular=stat.S_ISREG(mode),
            is_hidden=name.startswith("."),
            size=0 if is_dir else int(attrs.st_size or 0),
            modified=modified,
            permissions=Permissions.from_mode(mode),
        )

    def _stat_or_none(self, path: str) -> Any:
        """SFTP attributes of ``path`` or ``None`` if nothing exists there."""
        try:
            return self._sftp.stat(path)
        except FileNotFoundError:
            return None

    def _require_parent(self, path: str) -> None:
        parent, _ = self.dir_and_name(path)
        attrs = self._stat_or_none(parent)
        if attrs is None:
            raise DoesNotExist("Parent directory does not exist", path=self.url(path), backend=self.name)
        if not stat.S_ISDIR(attrs.st_mode or 0):
            raise IsNotDirectory("Parent is not a directory", path=self.url(path), backend=self.name)

    def _require_file(self, path: str) -> None:
        attrs = self._sftp.stat(path)
        if stat.S_ISDIR(attrs.st_mode or 0):
            raise IsDirectory("Path is a directory", path=self.url(path), backend=self.name)

    def _open(self, path: str, mode: str, permissions: Permissions | None) -> BinaryIO:
        attrs = self._stat_or_none(path)
        if attrs is not None and stat.S_ISDIR(attrs.st_mode or 0):
            raise IsDirectory("Path is a directory", path=self.url(path), backend=self.name)
        f = self._sftp.file(path, mode)
        if attrs is None and permissions is not None:
            self._sftp.chmod(path, int(permissions))
        return f  # type: ignore[no-any-return]

    # endregion

    # region: metadata

    def stat(self, path: str) -> FileInfo:
        path = self.join_clean_path(path)
        with self._errors(path):
            return self._attrs_to_fileinfo(path, self._sftp.stat(path))

    def exists(self, path: str) -> bool:
        path = self.join_clean_path(path)
        with self._errors(path):
            return self._stat_or_none(path) is not None

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
            attrs = self._sftp.stat(path)
            if not stat.S_ISDIR(attrs.st_mode or 0):
                raise IsNotDirectory("Path is not a directory", path=self.url(path), backend=self.name)
            entries = sorted(self._sftp.listdir_attr(path), key=lambda a: a.filename)
        for attrs in entries:
            self._check_canceled(cancel, path)
            if self.match_any_pattern(attrs.filename, patterns):
                yield self._attrs_to_fileinfo(_path.child_path(path, attrs.filename, self.separator), attrs)

    # endregion

    # region: data access

    def open_reader(self, path: str) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._errors(path):
            self._require_file(path)
            f = self._sftp.file(path, "rb")
            f.prefetch()
            return f  # type: ignore[no-any-return]

    def read_all(self, path: str) -> bytes:
        path = self.join_clean_path(path)
        with self._errors(path):
            self._require_file(path)
            with self._sftp.file(path, "rb") as f:
                f.prefetch()
                return bytes(f.read())

    def open_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._errors(path):
            return self._open(path, "wb", permissions)

    def open_append_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._errors(path):
            return self._open(path, "ab", permissions)

    def open_read_writer(self, path: str, *, permissions: Permissions | None = None) -> BinaryIO:
        path = self.join_clean_path(path)
        with self._errors(path):
            mode = "r+b" if self._stat_or_none(path) is not None else "w+b"
            return self._open(path, mode, permissions)

    def append(self, path: str, data: bytes, *, permissions: Permissions | None = None) -> None:
        with self.open_append_writer(path, permissions=permissions) as f, self._errors(path):
            f.write(data)

    # endregion

    # region: lifecycle

    def make_dir(self, path: str, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._errors(path):
            self._require_parent(path)
            if self._stat_or_none(path) is not None:
                raise AlreadyExists("Path already exists", path=self.url(path), backend=self.name)
            self._sftp.mkdir(path, int(permissions) if permissions is not None else 0o777)

    def make_all_dirs(self, path: str, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        mode = int(permissions) if permissions is not None else 0o777
        current = ""
        with self._errors(path):
            for part in self.split_path(path):
                current = f"{current}/{part}"
                attrs = self._stat_or_none(current)
                if attrs is None:
                    self._sftp.mkdir(current, mode)
                elif not stat.S_ISDIR(attrs.st_mode or 0):
                    raise IsNotDirectory(f"'{current}' is a file", path=self.url(path), backend=self.name)

    def remove(self, path: str) -> None:
        path = self.join_clean_path(path)
        with self._errors(path):
            attrs = self._sftp.stat(path)
            if stat.S_ISDIR(attrs.st_mode or 0):
                self._sftp.rmdir(path)
            else:
                self._sftp.remove(path)

    def touch(self, path: str, *, permissions: Permissions | None = None) -> None:
        path = self.join_clean_path(path)
        with self._errors(path):
            if self._stat_or_none(path) is not None:
                self._sftp.utime(path, None)
                return
            self._open(path, "wb", permissions).close()

    def truncate(self, path: str, size: int) -> None:
        if size < 0:
            raise ValueError(f"Size must not be negative, got {size}")
        path = self.join_clean_path(path)
        with self._errors(path):
            self._require_file(path)
            self._sftp.truncate(path, size)

    def copy_file(self, src: str, dst: str, *, cancel: threading.Event | None = None) -> None:
        src = self.join_clean_path(src)
        dst = self.join_clean_path(dst)
        with self._errors(src):
            self._require_file(src)
            attrs = self._stat_or_none(dst)
            if attrs is not None and stat.S_ISDIR(attrs.st_mode or 0):
                dst = _path.child_path(dst, self.dir_and_name(src)[1], self.separator)
            # Stream source to destination (no server-side copy in SFTP)
            with self._sftp.file(src, "rb") as src_f, self._sftp.file(dst, "wb") as dst_f:
                src_f.prefetch()
                while True:
                    self._check_canceled(cancel, src)
                    chunk = src_f.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    dst_f.write(chunk)

    def move(self, src: str, dst: str) -> None:
        src = self.join_clean_path(src)
        dst = self.join_clean_path(dst)
        with self._errors(src):
            if self._stat_or_none(src) is None:
                raise DoesNotExist("File does not exist", path=self.url(src), backend=self.name)
            attrs = self._stat_or_none(dst)
            if attrs is not None and stat.S_ISDIR(attrs.st_mode or 0):
                dst = _path.child_path(dst, self.dir_and_name(src)[1], self.separator)
                attrs = self._stat_or_none(dst)
            if attrs is not None:
                raise AlreadyExists("Destination already exists", path=self.url(dst), backend=self.name)
            self._rename(src, dst)

    def _rename(self, src: str, dst: str) -> None:
        try:
            self._sftp.posix_rename(src, dst)
        except OSError:  # pragma: no cover -- fallback for servers without posix_rename
            self._sftp.rename(src, dst)

    def rename(self, path: str, new_name: str) -> str:
        if not new_name or self.separator in new_name:
            raise InvalidPath(f"Invalid new name {new_name!r}", path=self.url(path), backend=self.name)
        path = self.join_clean_path(path)
        parent, name = self.dir_and_name(path)
        new_path = _path.child_path(parent, new_name, self.separator)
        if new_name == name:
            return new_path
        with self._errors(path):
            if self._stat_or_none(new_path) is not None:
                raise AlreadyExists("Destination already exists", path=self.url(new_path), backend=self.name)
            self._rename(path, new_path)
        return new_path

    def set_permissions(self, path: str, permissions: Permissions) -> None:
        path = self.join_clean_path(path)
        with self._errors(path):
            self._sftp.chmod(path, int(permissions))

    def close(self) -> None:
        self._close_clients()
        registry, self._registry = self._registry, None
        if registry is not None:
            registry.evict(self)

    # endregion


def dial(
    registry: Registry,
    host: str,
    *,
    port: int = DEFAULT_PORT,
    username: str | None = None,
    cancel: threading.Event | None = None,
    **kwargs: Any,
) -> SFTPBackend:
    """Return a connected backend for ``sftp://[username@]host[:port]`` registered in ``registry``.

    A backend already registered under that prefix is reused and its
    reference count incremented, so repeated dials share one session.
    Release each dial with :meth:`Registry.unregister`.

    :param kwargs: Further :class:`SFTPBackend` options (``password``, ``pkey``, ...).
    :raises Canceled: If ``cancel`` is set before the connection is established.
    :raises BackendUnavailable: If the server cannot be reached.
    """
    prefix = sftp_prefix(host, port=port, username=username)
    existing = registry.lookup(prefix)
    if isinstance(existing, SFTPBackend):
        registry.register(existing)
        return existing
    check_canceled(cancel, path=prefix)
    backend = SFTPBackend(host, port=port, username=username, **kwargs)
    backend.connect(cancel=cancel)
    try:
        registry.register(backend)
    except ValueError:
        # Another thread dialed the same endpoint first.
        backend.close()
        existing = registry.lookup(prefix)
        if not isinstance(existing, SFTPBackend):
            raise
        registry.register(existing)
        return existing
    backend._registry = registry
    return backend
