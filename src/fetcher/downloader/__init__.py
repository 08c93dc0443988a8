"""
Remote tarball fetching with in-flight deduplication.

Provides:
- One shared pipeline per URL for concurrent callers (inflight.py)
- Fetch, verify, hand off and clean up a tarball (fetcher.py)
"""

from .inflight import InFlightRegistry
from .fetcher import FetchRequest, FetchResult, TarballFetcher

__all__ = [
    "InFlightRegistry",
    "FetchRequest",
    "FetchResult",
    "TarballFetcher",
]
