"""
Remote tarball fetcher: dedup, retrying transfer, digest check, import handoff.

Pipeline per URL:
    Preparing -> Fetching -> Verifying -> Handoff -> Cleanup -> Done

- Preparing: create the staging directory (failure is fatal, not retried)
- Fetching: up to `retries` transfer attempts with exponential backoff
- Verifying: compare the observed digest with the expected one, if any;
  a mismatch is never retried, the server would send the same bytes again
- Handoff: give the staged file, metadata and digest to the import step
- Cleanup: always remove the staging path, whatever happened before

Concurrent fetches of the same URL share one pipeline run and one outcome.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Optional, Union
from urllib.parse import urlsplit

from src.shared.fetch_state import PipelineState

from ..errors import DigestMismatch, DirectoryPrepFailure, FetchError, ImportFailure
from ..fs.hashing import normalize_digest
from ..fs.storage import CacheStorage
from ..net.retry import RetryConfig, SleepFunc, with_retry_async
from ..net.transfer import TransferDriver, TransferResult
from .inflight import InFlightRegistry

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = frozenset({"http", "https"})

# (staging_path, metadata, digest) -> import fields; sync or async
ImportStep = Callable[
    [Path, Mapping[str, Any], str],
    Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]],
]


@dataclass(frozen=True)
class FetchRequest:
    """
    Request to fetch one remote tarball.

    The URL is the dedup key. Without `expected_digest` the first complete
    download is trusted. `credential` is passed unmodified to the HTTP request.
    """
    url: str
    expected_digest: Optional[str] = None
    credential: Optional[str] = field(default=None, repr=False)
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class FetchResult:
    """Successful pipeline outcome, shared by every deduplicated caller."""
    resolved_url: str
    digest: str
    metadata: Mapping[str, Any]
    data: Mapping[str, Any] = field(default_factory=dict)
    attempts: int = 1
    size: int = 0

    def to_public_dict(self) -> dict[str, Any]:
        payload = dict(self.data)
        payload.update(
            {
                "resolved_url": self.resolved_url,
                "from": self.resolved_url,
                "digest": self.digest,
                "metadata": dict(self.metadata),
                "attempts": self.attempts,
                "size": self.size,
            }
        )
        return payload


def validate_url(url: str) -> str:
    """
    Check that a fetch key is an absolute http(s) URL.

    Raises:
        ValueError: If the URL is empty, relative or uses another scheme.
    """
    if not url or not url.strip():
        raise ValueError("url must not be empty")
    url = url.strip()
    parts = urlsplit(url)
    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValueError(f"unsupported URL scheme: {url!r}")
    if not parts.hostname:
        raise ValueError(f"URL has no host: {url!r}")
    return url


class TarballFetcher:
    """
    Fetches, verifies and hands off remote tarballs.

    Usage:
        fetcher = TarballFetcher(
            storage=CacheStorage(cache_root),
            import_step=store_verified_tarball(CacheStorage(cache_root)),
            retry=RetryConfig(retries=3),
        )
        result = await fetcher.fetch(FetchRequest(url=url, expected_digest=sha1))
        print(result.to_public_dict())
    """

    def __init__(
        self,
        *,
        storage: CacheStorage,
        import_step: ImportStep,
        transfer: Optional[TransferDriver] = None,
        retry: Optional[RetryConfig] = None,
        inflight: Optional[InFlightRegistry] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._storage = storage
        self._import_step = import_step
        self._transfer = transfer or TransferDriver()
        self._retry = retry or RetryConfig()
        self._inflight = inflight or InFlightRegistry()
        self._sleep = sleep
        self._states: dict[str, PipelineState] = {}

    @property
    def storage(self) -> CacheStorage:
        return self._storage

    @property
    def inflight(self) -> InFlightRegistry:
        return self._inflight

    def state_of(self, url: str) -> Optional[PipelineState]:
        """Current state of the pipeline for `url`, None if not running."""
        return self._states.get(url)

    def snapshot(self) -> list[dict[str, Any]]:
        return [
            {
                "url": url,
                "state": state,
                "waiters": self._inflight.waiter_count(url),
            }
            for url, state in sorted(self._states.items())
        ]

    async def fetch(self, request: FetchRequest) -> FetchResult:
        """
        Fetch a tarball, joining an identical fetch already in flight.

        Returns:
            FetchResult on success.

        Raises:
            ValueError: If the URL is not an absolute http(s) URL.
            FetchError: Any terminal failure, or the last retryable one.
        """
        url = validate_url(request.url)
        return await self._inflight.run(url, lambda: self._run_pipeline(url, request))

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def _set_state(self, url: str, state: PipelineState) -> None:
        self._states[url] = state
        logger.debug("%s -> %s", url, state.value)

    async def _run_pipeline(self, url: str, request: FetchRequest) -> FetchResult:
        staging_path = self._storage.staging_path_for(url)
        logger.debug("fetching %s (expected digest %s)", url, request.expected_digest)

        try:
            self._set_state(url, PipelineState.PREPARING)
            await self._prepare(url, staging_path)
            try:
                self._set_state(url, PipelineState.FETCHING)
                transfer, attempts = await self._fetch_with_retry(url, staging_path, request.credential)

                self._set_state(url, PipelineState.VERIFYING)
                digest = self._verify(url, staging_path, request.expected_digest, transfer.digest)

                self._set_state(url, PipelineState.HANDOFF)
                data = await self._handoff(url, staging_path, request.metadata, digest)
            finally:
                self._set_state(url, PipelineState.CLEANUP)
                await asyncio.to_thread(self._storage.remove_staging, staging_path)
        except BaseException as exc:
            logger.debug("%s -> %s (%s)", url, PipelineState.FAILED.value, exc)
            raise
        finally:
            self._states.pop(url, None)

        logger.debug("%s -> %s", url, PipelineState.DONE.value)
        return FetchResult(
            resolved_url=url,
            digest=digest,
            metadata=dict(request.metadata),
            data=data,
            attempts=attempts,
            size=transfer.size,
        )

    async def _prepare(self, url: str, staging_path: Path) -> None:
        try:
            await asyncio.to_thread(self._storage.ensure_staging_dir, staging_path)
        except OSError as exc:
            raise DirectoryPrepFailure(
                f"cannot create staging directory {staging_path.parent}: {exc}", url=url
            ) from exc

    async def _fetch_with_retry(
        self, url: str, staging_path: Path, credential: Optional[str]
    ) -> tuple[TransferResult, int]:
        last_attempt = 0

        async def _attempt(attempt: int) -> TransferResult:
            nonlocal last_attempt
            last_attempt = attempt
            return await self._transfer.attempt(url, staging_path, credential=credential)

        result = await with_retry_async(_attempt, config=self._retry, sleep=self._sleep)
        return result, last_attempt

    def _verify(self, url: str, staging_path: Path, expected: Optional[str], actual: str) -> str:
        actual = normalize_digest(actual)
        if expected and normalize_digest(expected) != actual:
            raise DigestMismatch(
                url=url,
                staging_path=str(staging_path),
                expected=normalize_digest(expected),
                actual=actual,
            )
        logger.debug("shasum %s for %s", actual, url)
        return actual

    async def _handoff(
        self, url: str, staging_path: Path, metadata: Mapping[str, Any], digest: str
    ) -> Mapping[str, Any]:
        try:
            if inspect.iscoroutinefunction(self._import_step):
                data = await self._import_step(staging_path, metadata, digest)
            else:
                data = await asyncio.to_thread(self._import_step, staging_path, metadata, digest)
        except FetchError as exc:
            if exc.url is None:
                exc.url = url
            raise
        except Exception as exc:
            raise ImportFailure(f"import failed for {url}: {exc}", url=url, digest=digest) from exc
        return dict(data or {})
