"""Backend-independent content hash.

The algorithm is the Dropbox content hash: the stream is split into
4 MiB blocks, every block is hashed with SHA-256 and the concatenated
block digests are hashed again with SHA-256. Hashes persisted by other
systems stay comparable only as long as :data:`HASH_BLOCK_SIZE` is kept.
"""

from __future__ import annotations

import hashlib
import threading  # noqa: TC003
from typing import BinaryIO

from omnifs._cancel import check_canceled

HASH_BLOCK_SIZE = 4 * 1024 * 1024


def _read_block(stream: BinaryIO, size: int) -> bytes:
    # Streams may return short reads before EOF.
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def content_hash(stream: BinaryIO, *, cancel: threading.Event | None = None) -> str:
    """Compute the content hash of everything left in ``stream``.

    :param stream: Binary stream read until EOF. It is not closed.
    :param cancel: Optional cancellation signal, checked before each block.
    :returns: 64 character lowercase hex digest.
    :raises Canceled: If ``cancel`` is set before the stream is exhausted.
    """
    cumulative = hashlib.sha256()
    while True:
        check_canceled(cancel)
        block = _read_block(stream, HASH_BLOCK_SIZE)
        if not block:
            break
        cumulative.update(hashlib.sha256(block).digest())
        if len(block) < HASH_BLOCK_SIZE:
            break
    return cumulative.hexdigest()


def content_hash_bytes(data: bytes) -> str:
    """Compute the content hash of an in-memory byte string."""
    cumulative = hashlib.sha256()
    view = memoryview(data)
    for start in range(0, len(view), HASH_BLOCK_SIZE):
        cumulative.update(hashlib.sha256(view[start : start + HASH_BLOCK_SIZE]).digest())
    return cumulative.hexdigest()
