"""Normalized error taxonomy for omnifs."""

from __future__ import annotations

import contextlib
import errno
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class FileSystemError(Exception):
    """Base class for all omnifs errors.

    :param message: Human-readable error description.
    :param path: The file URI involved in the error, if any.
    :param backend: The backend name involved, if any.
    """

    def __init__(self, message: str = "", *, path: str | None = None, backend: str | None = None) -> None:
        self.path = path
        self.backend = backend
        super().__init__(message)

    def _context(self) -> list[str]:
        parts = []
        if self.path is not None:
            parts.append(f"path={self.path!r}")
        if self.backend is not None:
            parts.append(f"backend={self.backend!r}")
        return parts

    def __str__(self) -> str:
        message = super().__str__()
        parts = [message, *self._context()] if message else self._context()
        return " | ".join(parts)

    def __repr__(self) -> str:
        cls = type(self).__name__
        args = [repr(self.args[0] if self.args else ""), *self._context()]
        return f"{cls}({', '.join(args)})"


class DoesNotExist(FileSystemError):
    """Raised when a file or directory does not exist."""


class AlreadyExists(FileSystemError):
    """Raised when a target already exists."""


class IsDirectory(FileSystemError):
    """Raised when a file operation targets a directory."""


class IsNotDirectory(FileSystemError):
    """Raised when a directory operation targets something that is not a directory."""


class ReadOnlyFileSystem(FileSystemError):
    """Raised when a mutation is attempted on a read-only backend."""


class WriteOnlyFileSystem(FileSystemError):
    """Raised when a read is attempted on a write-only backend."""


class PermissionDenied(FileSystemError):
    """Raised when access is denied by the storage backend."""


class InvalidPath(FileSystemError):
    """Raised for empty or malformed paths."""


class Canceled(FileSystemError):
    """Raised when a long-running operation was canceled or hit its deadline."""


class BackendUnavailable(FileSystemError):
    """Raised when the backend cannot be reached or initialized."""


class Unsupported(FileSystemError):
    """Raised when a backend does not support an optional operation.

    :param capability: The value of the missing capability.
    """

    def __init__(
        self,
        message: str = "",
        *,
        path: str | None = None,
        backend: str | None = None,
        capability: str = "",
    ) -> None:
        self.capability = capability
        super().__init__(message, path=path, backend=backend)

    def _context(self) -> list[str]:
        parts = super()._context()
        if self.capability:
            parts.append(f"capability={self.capability!r}")
        return parts


_ERRNO_KINDS: dict[int, type[FileSystemError]] = {
    errno.ENOENT: DoesNotExist,
    errno.EEXIST: AlreadyExists,
    errno.EISDIR: IsDirectory,
    errno.ENOTDIR: IsNotDirectory,
    errno.EROFS: ReadOnlyFileSystem,
    errno.EACCES: PermissionDenied,
    errno.EPERM: PermissionDenied,
    errno.ENOTSUP: Unsupported,
}


def normalize_error(exc: BaseException, *, path: str | None = None, backend: str | None = None) -> FileSystemError:
    """Classify a backend-native exception into the omnifs taxonomy.

    Already classified errors are returned unchanged. Callers raise the
    result ``from exc`` so the native cause stays attached.
    """
    if isinstance(exc, FileSystemError):
        return exc
    if isinstance(exc, OSError):
        code = exc.errno
        if code is None:
            if isinstance(exc, FileNotFoundError):
                code = errno.ENOENT
            elif isinstance(exc, PermissionError):
                code = errno.EACCES
        kind = _ERRNO_KINDS.get(code) if code is not None else None
        if kind is not None:
            return kind(exc.strerror or str(exc), path=path, backend=backend)
    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    if "404" in lowered or "no such file" in lowered or "nosuchkey" in lowered or "not found" in lowered:
        return DoesNotExist(message, path=path, backend=backend)
    if "403" in lowered or "accessdenied" in lowered or "permission denied" in lowered:
        return PermissionDenied(message, path=path, backend=backend)
    return FileSystemError(message, path=path, backend=backend)


def is_error(exc: BaseException | None, kind: type[FileSystemError]) -> bool:
    """Return ``True`` if ``exc`` or any exception it wraps is a ``kind``.

    Follows ``__cause__`` and ``__context__`` so the check succeeds no matter
    how many times the error was re-raised along the way.
    """
    seen: set[int] = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, kind):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False


@contextlib.contextmanager
def ignore_does_not_exist() -> Iterator[None]:
    """Swallow errors classified as :class:`DoesNotExist`, re-raise everything else."""
    try:
        yield
    except Exception as exc:
        if not is_error(exc, DoesNotExist):
            raise
