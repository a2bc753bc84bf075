"""Digest engine — streamed content hashing for release artifacts.

Digests are BLAKE3, lowercase hex, matching what ``format: 1`` signature
sidecars have always carried.

The digest covers archive bytes only.  Filesystem metadata of the archive
file itself (mtime, permissions) never enters the hash, so the same bytes
give the same digest on every host.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO

from blake3 import blake3

from viewtube_release.core.errors import ReleaseIOError

CHUNK_SIZE = 8192
DIGEST_HEX_LENGTH = 64


def digest_bytes(data: bytes) -> str:
    """Return the BLAKE3 hex digest of raw bytes."""
    return blake3(data).hexdigest()


def digest_stream(stream: BinaryIO, chunk_size: int = CHUNK_SIZE) -> str:
    """Hash a binary stream in fixed-size chunks.

    The whole artifact is never held in memory.  Read failures surface as
    ``ReleaseIOError``.
    """
    hasher = blake3()
    try:
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)
    except OSError as exc:
        raise ReleaseIOError(f"Failed reading artifact stream: {exc}") from exc
    return hasher.hexdigest()


def digest_file(path: Path) -> str:
    """Hash the file at *path*."""
    try:
        with open(path, "rb") as fh:
            return digest_stream(fh)
    except OSError as exc:
        raise ReleaseIOError(f"Cannot read {path}: {exc}") from exc


def is_hex_digest(value: str) -> bool:
    """Whether *value* looks like a lowercase hex digest from this engine."""
    if len(value) != DIGEST_HEX_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
