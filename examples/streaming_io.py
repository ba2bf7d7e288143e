"""Streaming I/O: writer and reader streams, chunked processing, cancellation.

Demonstrates streaming patterns with omnifs files.
"""

from __future__ import annotations

import threading

from omnifs import Canceled, Registry
from omnifs.backends import MemoryBackend

if __name__ == "__main__":
    with Registry() as registry:
        MemoryBackend(id="stream", registry=registry)
        root = registry.file("mem://stream/")

        # --- Write through a stream ---
        streamed = root / "streamed.txt"
        with streamed.open_writer() as writer:
            for i in range(1, 6):
                writer.write(f"line{i}\n".encode())
        print("Wrote file through a writer stream.")

        # --- Read as a stream ---
        with streamed.open_reader() as reader:
            print(f"\nStreaming read (type: {type(reader).__name__}):")
            newline = b"\n"
            for line in reader:
                print(f"  {line.rstrip(newline)}")

        # --- Append ---
        streamed.append_string("line6\n")
        print(f"\nAfter append: {streamed.size()} bytes")

        # --- Chunked processing ---
        large = root / "large.bin"
        large.write_all(b"X" * 10_000)
        total = 0
        chunk_count = 0
        with large.open_reader() as reader:
            while True:
                chunk = reader.read(4096)
                if not chunk:
                    break
                total += len(chunk)
                chunk_count += 1
        print(f"\nRead large.bin in {chunk_count} chunk(s), {total} bytes total.")
        print(f"Content hash: {large.content_hash()}")

        # --- Copies honour a cancellation signal ---
        cancel = threading.Event()
        cancel.set()
        try:
            large.copy_to(root / "copy.bin", cancel=cancel)
        except Canceled as exc:
            print(f"\nCanceled: {exc}")

    print("\nDone!")
