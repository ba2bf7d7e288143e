"""Error handling: catching DoesNotExist, AlreadyExists, Unsupported, etc.

Demonstrates the normalized error hierarchy, the structured attributes
on every error, and how to test wrapped errors with is_error().
"""

from __future__ import annotations

from omnifs import (
    AlreadyExists,
    DoesNotExist,
    FileSystemError,
    ReadOnlyFileSystem,
    Registry,
    Unsupported,
    ignore_does_not_exist,
    is_error,
)
from omnifs.backends import MemoryBackend

if __name__ == "__main__":
    with Registry() as registry:
        MemoryBackend(id="errors", registry=registry)
        root = registry.file("mem://errors/")

        # --- DoesNotExist ---
        try:
            (root / "nonexistent.txt").read_all()
        except DoesNotExist as exc:
            print(f"DoesNotExist: {exc}")
            print(f"  path={exc.path}, backend={exc.backend}")

        # --- AlreadyExists ---
        (root / "existing").make_dir()
        (root / "existing.txt").write_all(b"data")
        try:
            # an existing directory is fine, a file in the way is not
            (root / "existing.txt").make_dir()
        except AlreadyExists as exc:
            print(f"\nAlreadyExists: {exc}")

        # --- Unsupported: the local backend cannot watch files ---
        try:
            registry.file("/tmp").watch(lambda uri, event: None)
        except Unsupported as exc:
            print(f"\nUnsupported: {exc}")
            print(f"  capability={exc.capability}")

        # --- ReadOnlyFileSystem ---
        MemoryBackend(id="frozen", files={"/a.txt": b"a"}, read_only=True, registry=registry)
        try:
            registry.file("mem://frozen/a.txt").write_all(b"b")
        except ReadOnlyFileSystem as exc:
            print(f"\nReadOnlyFileSystem: {exc}")

        # --- Wrapped errors are still recognized ---
        try:
            try:
                (root / "missing.txt").read_all()
            except FileSystemError as exc:
                raise RuntimeError("loading settings failed") from exc
        except RuntimeError as exc:
            print(f"\nWrapped DoesNotExist recognized: {is_error(exc, DoesNotExist)}")

        # --- Catch any omnifs error with the base class ---
        for uri in ["mem://errors/missing.txt", "mem://errors/existing"]:
            try:
                registry.file(uri).read_all()
            except FileSystemError as exc:
                print(f"\nFileSystemError ({type(exc).__name__}): {exc}")

        # --- Removing something that may be gone already ---
        with ignore_does_not_exist():
            (root / "nonexistent.txt").remove()
        print("\nignore_does_not_exist() swallowed the missing file.")

        # --- KeyError for unknown backend names ---
        try:
            registry.get_backend("unknown")
        except KeyError as exc:
            print(f"\nKeyError: {exc}")

    print("\nDone!")
