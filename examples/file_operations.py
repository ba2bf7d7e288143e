"""File operations: the File API demonstrated on the local file system.

Covers: write, list, metadata, copy, move, rename, remove, recursive
listing, capabilities and content comparison.
"""

from __future__ import annotations

import tempfile

from omnifs import Capability, Registry, identical_contents

if __name__ == "__main__":
    with tempfile.TemporaryDirectory() as tmp, Registry() as registry:
        workspace = registry.file(tmp, "workspace")

        # --- Write ---
        (workspace / "docs").make_all_dirs()
        (workspace / "data").make_all_dirs()
        (workspace / "tmp").make_all_dirs()
        (workspace / "docs" / "readme.txt").write_all(b"First file")
        (workspace / "docs" / "changelog.txt").write_all(b"v0.1.0 - initial release")
        (workspace / "data" / "report.csv").write_all(b"col1,col2\n1,2\n3,4")
        (workspace / "tmp" / "scratch.txt").write_all(b"temporary data")
        print("Created 4 files.\n")

        # --- List files in a folder ---
        print("Files in docs/:")
        for info in (workspace / "docs").list_dir_info("*.txt"):
            print(f"  {info.name} ({info.size} bytes)")

        # --- Read ---
        report = workspace / "data" / "report.csv"
        print(f"\nreport.csv content:\n{report.read_all_string()}")

        # --- Metadata ---
        readme = workspace / "docs" / "readme.txt"
        info = readme.stat()
        print(f"readme.txt - size: {info.size}, modified: {info.modified}, permissions: {info.permissions}")
        print(f"is_dir('docs'): {(workspace / 'docs').is_dir()}, is_regular(readme): {readme.is_regular()}")

        # --- Copy ---
        backup = readme.copy_to(workspace / "docs" / "readme_backup.txt")
        print(f"\nCopied readme.txt -> {backup.name} (identical: {identical_contents(readme, backup)})")

        # --- Move into an existing directory ---
        (workspace / "archive").make_dir()
        moved = (workspace / "docs" / "changelog.txt").move_to(workspace / "archive")
        print(f"Moved changelog.txt -> {moved.path}")

        # --- Rename ---
        renamed = backup.rename("readme.bak")
        print(f"Renamed backup -> {renamed.name}")

        # --- Remove ---
        renamed.remove()
        print(f"Removed {renamed.name} (exists: {renamed.exists()})")
        (workspace / "tmp").remove_recursive()
        print(f"Removed tmp/ recursively (exists: {(workspace / 'tmp').exists()})")

        # --- Capabilities ---
        backend = workspace.backend
        print(f"\nBackend supports WATCH:       {backend.capabilities.supports(Capability.WATCH)}")
        print(f"Backend supports PERMISSIONS: {backend.capabilities.supports(Capability.PERMISSIONS)}")

        # --- Recursive listing ---
        print("\nAll files (recursive):")
        for f in workspace.list_dir_recursive():
            print(f"  {f.path} ({f.size()} bytes)")

    print("\nDone!")
