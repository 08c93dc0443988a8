"""
File system utilities for the tarball cache.

Provides:
- Cache directory layout and staging cleanup (storage.py)
- URL to cache path mapping (naming.py)
- Atomic write-then-finalize staging files (staging.py)
- Content hashing and the hashing stream sink (hashing.py)
"""

from .storage import CacheStorage
from .naming import cache_filename
from .staging import AtomicStagingWriter
from .hashing import HashingSink, StreamHasher, compute_bytes_hash, compute_file_hash

__all__ = [
    "CacheStorage",
    "cache_filename",
    "AtomicStagingWriter",
    "HashingSink",
    "StreamHasher",
    "compute_bytes_hash",
    "compute_file_hash",
]
