"""Registry, prefix based dispatch of URIs to live backends."""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING

from omnifs._config import RegistryConfig

if TYPE_CHECKING:
    from types import TracebackType

    from omnifs._backend import Backend
    from omnifs._file import File

log = logging.getLogger(__name__)

LOCAL_PREFIX = "file://"

# Global backend factory table: maps type strings to backend classes.
_BACKEND_FACTORIES: dict[str, type[Backend]] = {}


def register_backend(type_name: str, cls: type[Backend]) -> None:
    """Register a backend class for a given type string.

    :param type_name: The type identifier (e.g. ``"memory"``).
    :param cls: The backend class to instantiate.
    """
    _BACKEND_FACTORIES[type_name] = cls


def _register_builtin_backends() -> None:
    """Register the built-in backends."""
    from omnifs.backends._local import LocalBackend
    from omnifs.backends._memory import MemoryBackend
    from omnifs.backends._s3 import S3Backend
    from omnifs.backends._sftp import SFTPBackend

    for type_name, cls in (
        ("local", LocalBackend),
        ("memory", MemoryBackend),
        ("sftp", SFTPBackend),
        ("s3", S3Backend),
    ):
        if type_name not in _BACKEND_FACTORIES:
            register_backend(type_name, cls)


@dataclasses.dataclass
class _Entry:
    backend: Backend
    refcount: int


class Registry:
    """Table of live backends keyed by their URI prefix.

    A URI is dispatched to the backend with the longest registered prefix
    that is a literal prefix of the URI; URIs without a match belong to the
    local file system. Registrations are reference counted: a backend is
    closed when its last registration is released.

    All table access is serialized by one lock. Backends are never called
    while the lock is held.

    :param local: Fallback backend for unmatched URIs, a new
        :class:`~omnifs.backends.LocalBackend` by default.
    """

    def __init__(self, local: Backend | None = None) -> None:
        _register_builtin_backends()
        if local is None:
            from omnifs.backends._local import LocalBackend

            local = LocalBackend()
        self._local = local
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._named: dict[str, Backend] = {}

    @classmethod
    def from_config(cls, config: RegistryConfig, *, local: Backend | None = None) -> Registry:
        """Create a registry with every backend described by ``config`` registered.

        :raises ValueError: If the config is invalid, names an unknown backend
            type or passes options the backend does not accept.
        """
        config.validate()
        registry = cls(local=local)
        for name, cfg in config.backends.items():
            if cfg.type not in _BACKEND_FACTORIES:
                raise ValueError(
                    f"Unknown backend type '{cfg.type}'. Registered types: {sorted(_BACKEND_FACTORIES.keys())}"
                )
            factory = _BACKEND_FACTORIES[cfg.type]
            try:
                backend = factory(**cfg.options)
            except TypeError as exc:
                raise ValueError(
                    f"Invalid options for backend '{name}' (type={cfg.type!r}): {exc}. "
                    f"Provided options: {sorted(cfg.options.keys())}"
                ) from exc
            registry.register(backend)
            registry._named[name] = backend
        return registry

    def __repr__(self) -> str:
        with self._lock:
            prefixes = sorted(self._entries)
        return f"Registry(prefixes={prefixes!r})"

    @property
    def local(self) -> Backend:
        """The fallback backend for URIs without a registered prefix."""
        return self._local

    # region: registration

    def register(self, backend: Backend) -> int:
        """Register ``backend`` under its prefix and return its reference count.

        :raises ValueError: If a different backend is live under the same prefix.
        """
        prefix = backend.prefix
        with self._lock:
            entry = self._entries.get(prefix)
            if entry is None:
                self._entries[prefix] = _Entry(backend, 1)
                count = 1
            elif entry.backend is backend:
                entry.refcount += 1
                count = entry.refcount
            else:
                raise ValueError(f"Prefix '{prefix}' is already registered by {entry.backend!r}")
        log.debug("Registered %s (refcount=%d)", prefix, count)
        return count

    def unregister(self, backend: Backend) -> int:
        """Release one registration of ``backend`` and return the remaining count.

        The backend is closed once the count reaches zero. Unknown backends
        are ignored and report ``0``.
        """
        prefix = backend.prefix
        with self._lock:
            entry = self._entries.get(prefix)
            if entry is None or entry.backend is not backend:
                return 0
            entry.refcount -= 1
            count = entry.refcount
            if count == 0:
                del self._entries[prefix]
                self._forget_name(backend)
        log.debug("Unregistered %s (refcount=%d)", prefix, count)
        if count == 0:
            backend.close()
        return count

    def evict(self, backend: Backend) -> bool:
        """Drop ``backend`` regardless of its reference count without closing it.

        :returns: ``True`` if the backend was registered.
        """
        prefix = backend.prefix
        with self._lock:
            entry = self._entries.get(prefix)
            if entry is None or entry.backend is not backend:
                return False
            del self._entries[prefix]
            self._forget_name(backend)
        log.debug("Evicted %s", prefix)
        return True

    def _forget_name(self, backend: Backend) -> None:
        for name in [n for n, b in self._named.items() if b is backend]:
            del self._named[name]

    # endregion

    # region: lookup

    def resolve(self, uri: str) -> tuple[Backend, str]:
        """Return the backend owning ``uri`` and the backend-local path.

        Never raises: URIs without a registered prefix resolve to the local
        backend. A leading ``file://`` is stripped, anything else is kept as
        the local path verbatim.
        """
        with self._lock:
            best: _Entry | None = None
            best_len = -1
            for prefix, entry in self._entries.items():
                if len(prefix) > best_len and uri.startswith(prefix):
                    best, best_len = entry, len(prefix)
        if best is not None:
            return best.backend, uri[best_len:]
        if uri.startswith(LOCAL_PREFIX):
            return self._local, uri[len(LOCAL_PREFIX) :]
        return self._local, uri

    def lookup(self, prefix: str) -> Backend | None:
        """Return the backend registered under exactly ``prefix``, if any."""
        with self._lock:
            entry = self._entries.get(prefix)
        return entry.backend if entry is not None else None

    def get_backend(self, name: str) -> Backend:
        """Get a backend created by :meth:`from_config` by its config name.

        :raises KeyError: If no backend with this name is registered.
        """
        with self._lock:
            if name not in self._named:
                available = sorted(self._named)
                raise KeyError(f"Unknown backend '{name}'. Available backends: {available}")
            return self._named[name]

    def refcount(self, backend: Backend) -> int:
        """Current reference count of ``backend``, ``0`` if it is not registered."""
        with self._lock:
            entry = self._entries.get(backend.prefix)
        if entry is None or entry.backend is not backend:
            return 0
        return entry.refcount

    def backends(self) -> list[Backend]:
        """Snapshot of the registered backends, ordered by prefix."""
        with self._lock:
            return [self._entries[prefix].backend for prefix in sorted(self._entries)]

    def __contains__(self, item: object) -> bool:
        with self._lock:
            if isinstance(item, str):
                return item in self._entries
            return any(entry.backend is item for entry in self._entries.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def file(self, *parts: str) -> File:
        """Create a :class:`~omnifs.File` resolving through this registry.

        Multiple parts are joined with the separator of the backend owning
        the first part.
        """
        from omnifs._file import File

        if len(parts) <= 1:
            return File(parts[0] if parts else "", self)
        return File(parts[0], self).join(*parts[1:])

    # endregion

    def close(self) -> None:
        """Close every registered backend once and clear the table."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            self._named.clear()
        for entry in entries:
            log.debug("Closing %s", entry.backend.prefix)
            entry.backend.close()

    def __enter__(self) -> Registry:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()
