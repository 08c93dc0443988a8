"""
Write-then-finalize staging writes.

Bytes go to a hidden temp file beside the destination:

    <dir>/.<name>.<random>.tmp

Only `commit()` flushes, fsyncs and renames the temp file onto the destination
with `os.replace`. Leaving the context without a commit (error, cancellation)
deletes the temp file, so the destination name never holds a partial file.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional


TMP_SUFFIX = ".tmp"


def temp_prefix(final_path: Path) -> str:
    return f".{final_path.name}."


class AtomicStagingWriter:
    """
    Atomic writer for one staging file.

    Usage:
        with AtomicStagingWriter(staging_path) as writer:
            for chunk in chunks:
                writer.write(chunk)
            writer.commit()
    """

    def __init__(self, final_path: Path | str, *, mode: int = 0o644) -> None:
        self._final_path = Path(final_path)
        self._mode = mode
        self._tmp_path: Optional[Path] = None
        self._file: Optional[BinaryIO] = None
        self._committed = False
        self._bytes_written = 0

    @property
    def final_path(self) -> Path:
        return self._final_path

    @property
    def tmp_path(self) -> Optional[Path]:
        return self._tmp_path

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    def open(self) -> "AtomicStagingWriter":
        if self._file is not None:
            raise RuntimeError("staging writer already open")
        fd, tmp_path_str = tempfile.mkstemp(
            dir=str(self._final_path.parent),
            prefix=temp_prefix(self._final_path),
            suffix=TMP_SUFFIX,
        )
        self._tmp_path = Path(tmp_path_str)
        self._file = os.fdopen(fd, "wb")
        return self

    def write(self, chunk: bytes) -> None:
        if self._file is None or self._committed:
            raise RuntimeError("staging writer is not open")
        self._file.write(chunk)
        self._bytes_written += len(chunk)

    def commit(self) -> Path:
        """Flush to disk and move the temp file onto the final path."""
        if self._file is None or self._tmp_path is None:
            raise RuntimeError("staging writer is not open")
        self._file.flush()
        os.fsync(self._file.fileno())
        self._file.close()
        os.chmod(self._tmp_path, self._mode)
        os.replace(self._tmp_path, self._final_path)
        self._committed = True
        return self._final_path

    def abort(self) -> None:
        """Drop the temp file; the final path is left untouched."""
        if self._file is not None and not self._file.closed:
            self._file.close()
        if self._tmp_path is not None and not self._committed:
            try:
                self._tmp_path.unlink()
            except FileNotFoundError:
                pass

    def __enter__(self) -> "AtomicStagingWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._committed:
            self.abort()
