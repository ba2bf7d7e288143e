"""Quickstart: a registry, a memory backend, and a few files with omnifs.

Demonstrates:
- Creating a Registry and registering a MemoryBackend
- Writing and reading files through URIs
- Checking metadata and listing a directory
"""

from __future__ import annotations

from omnifs import Registry
from omnifs.backends import MemoryBackend

if __name__ == "__main__":
    with Registry() as registry:
        mem = MemoryBackend(id="quickstart", registry=registry)
        print(f"Registered backend: {mem.prefix}")

        # Write a file
        hello = registry.file("mem://quickstart/docs/hello.txt")
        hello.dir.make_all_dirs()
        hello.write_all_string("Hello, world!")
        print(f"File exists: {hello.exists()}")

        # Read it back
        print(f"Content: {hello.read_all_string()}")

        # Check metadata
        info = hello.stat()
        print(f"Name: {info.name}, ext: {hello.ext}")
        print(f"Size: {info.size} bytes")
        print(f"Modified: {info.modified}")

        # List the directory
        (hello.dir / "notes.md").write_all(b"# Notes\n")
        print("Listing:", [f.name for f in hello.dir.list_dir_sorted()])

    print("Done! Closing the registry closed the backend.")
