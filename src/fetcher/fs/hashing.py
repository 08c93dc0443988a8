"""
Content hashing for fetched artifacts.

Uses SHA-1 ("shasum") and lowercase hex, the form package registries publish
next to their tarballs. `HashingSink` hashes a download while it is written to
the staging file, so the digest always describes the exact bytes on disk.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import AsyncIterable, BinaryIO, NamedTuple, Optional

from ..errors import ArtifactTooLarge, StagingIOFailure
from .staging import AtomicStagingWriter


# Hash algorithm to use
HASH_ALGORITHM = "sha1"

# Size of chunks read from the network and from files
BUFFER_SIZE = 65536  # 64 KB

logger = logging.getLogger(__name__)


def compute_file_hash(file_path: Path | str) -> str:
    """
    Compute the hash of a file's contents.

    Args:
        file_path: Path to the file.

    Returns:
        Lowercase hexadecimal hash string.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        OSError: If the file cannot be read.
    """
    hasher = hashlib.new(HASH_ALGORITHM)
    with open(Path(file_path), "rb") as f:
        _update_hash_from_stream(hasher, f)
    return hasher.hexdigest()


def compute_bytes_hash(data: bytes) -> str:
    """Hash of in-memory bytes, lowercase hex."""
    return hashlib.new(HASH_ALGORITHM, data).hexdigest()


def _update_hash_from_stream(hasher, stream: BinaryIO) -> None:
    """Update a hash object from a stream in chunks."""
    while True:
        chunk = stream.read(BUFFER_SIZE)
        if not chunk:
            break
        hasher.update(chunk)


def normalize_digest(digest: str) -> str:
    return digest.strip().lower()


class StreamHasher:
    """
    Incremental hasher that also counts bytes.

    Usage:
        hasher = StreamHasher()
        for chunk in download_stream:
            hasher.update(chunk)
        digest = hasher.hexdigest()
    """

    def __init__(self) -> None:
        self._hasher = hashlib.new(HASH_ALGORITHM)
        self._size = 0

    def update(self, data: bytes) -> None:
        self._hasher.update(data)
        self._size += len(data)

    def hexdigest(self) -> str:
        return self._hasher.hexdigest()

    @property
    def size(self) -> int:
        return self._size


class SinkResult(NamedTuple):
    digest: str
    size: int
    path: Path


class HashingSink:
    """
    Writes a byte stream to a staging file while hashing it.

    Every chunk is written once and hashed once, in the order received. The
    read side is only asked for the next chunk after the previous write has
    finished, so at most one chunk is buffered between network and disk.
    `max_bytes` caps the artifact size; None disables the cap.
    """

    def __init__(self, path: Path | str, *, max_bytes: Optional[int] = None) -> None:
        self._path = Path(path)
        self._max_bytes = max_bytes
        self._hasher = StreamHasher()

    @property
    def path(self) -> Path:
        return self._path

    async def consume(self, chunks: AsyncIterable[bytes]) -> SinkResult:
        """
        Drain `chunks` into the staging file.

        Returns:
            SinkResult with the lowercase hex digest and byte count.

        Raises:
            StagingIOFailure: Writing or finalizing the file failed.
            ArtifactTooLarge: The stream exceeded `max_bytes`.
            Whatever the chunk iterator raises (e.g. IncompleteBody).
        """
        try:
            writer = await asyncio.to_thread(AtomicStagingWriter(self._path).open)
        except OSError as exc:
            raise StagingIOFailure(f"cannot create staging file {self._path}: {exc}") from exc

        try:
            async for chunk in chunks:
                if self._max_bytes is not None and self._hasher.size + len(chunk) > self._max_bytes:
                    raise ArtifactTooLarge(
                        f"artifact exceeds maximum size of {self._max_bytes} bytes: {self._path}"
                    )
                try:
                    await asyncio.to_thread(writer.write, chunk)
                except OSError as exc:
                    raise StagingIOFailure(f"write failed for {self._path}: {exc}") from exc
                self._hasher.update(chunk)

            try:
                await asyncio.to_thread(writer.commit)
            except OSError as exc:
                raise StagingIOFailure(f"cannot finalize {self._path}: {exc}") from exc
        finally:
            if not writer.committed:
                await asyncio.to_thread(writer.abort)

        digest = self._hasher.hexdigest()
        logger.debug("hashing sink %s: %s (%d bytes)", self._path, digest, self._hasher.size)
        return SinkResult(digest=digest, size=self._hasher.size, path=self._path)
