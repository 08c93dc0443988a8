"""
Single-attempt HTTP transfer into a staging file.

One attempt = one GET request, its response body piped through the hashing
sink. The attempt does not clean up after itself: a failed attempt leaves the
staging path to the pipeline's cleanup stage.

urllib does the HTTP work, and every blocking call (connect, body reads)
runs in a worker thread so the event loop keeps serving other keys.
"""

from __future__ import annotations

import asyncio
import http.client
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from src.shared.stats.metrics import compute_elapsed_s, compute_throughput, format_throughput

from ..errors import IncompleteBody, TransportFailure, classify_http_status
from ..fs.hashing import BUFFER_SIZE, HashingSink

DEFAULT_TIMEOUT_S = 60.0
DEFAULT_USER_AGENT = "tarball-fetch/0.1"

logger = logging.getLogger(__name__)

# Same call shape as urllib.request.urlopen: (request, timeout=...) -> response
OpenerFunc = Callable[..., Any]


@dataclass
class TransferResult:
    """Outcome of one successful transfer attempt."""
    url: str
    status: int
    digest: str
    size: int
    staging_path: Path
    elapsed_s: float = 0.0


class TransferDriver:
    """
    Issues one HTTP fetch per `attempt()` call.

    Usage:
        driver = TransferDriver(timeout_s=30)
        result = await driver.attempt(url, staging_path, credential="Bearer abc")
        print(result.status, result.digest)

    Failures:
        TransportFailure  no response (timeout, DNS, refused)
        IncompleteBody    the body broke off after a 2xx response
        ServerFailure     HTTP 408 / 5xx
        ClientFailure     any other non-2xx status
        StagingIOFailure  writing the staging file failed
        ArtifactTooLarge  body exceeded `max_bytes`
    """

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        max_bytes: Optional[int] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        chunk_size: int = BUFFER_SIZE,
        opener: Optional[OpenerFunc] = None,
    ) -> None:
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self._timeout_s = float(timeout_s)
        self._max_bytes = max_bytes
        self._user_agent = user_agent
        self._chunk_size = int(chunk_size)
        self._opener: OpenerFunc = opener or urlopen

    @property
    def timeout_s(self) -> float:
        return self._timeout_s

    def build_request(self, url: str, credential: Optional[str] = None) -> Request:
        headers = {
            "User-Agent": self._user_agent,
            "Accept": "application/octet-stream, */*",
        }
        if credential:
            headers["Authorization"] = credential
        return Request(url, headers=headers, method="GET")

    async def attempt(
        self,
        url: str,
        staging_path: Path,
        *,
        credential: Optional[str] = None,
    ) -> TransferResult:
        """
        Fetch `url` once into `staging_path`.

        Args:
            url: Source URL.
            staging_path: Destination of the downloaded body.
            credential: Opaque value sent unmodified as the Authorization header.

        Returns:
            TransferResult with status, digest and size.
        """
        request = self.build_request(url, credential)
        started_at = time.monotonic()

        try:
            response = await asyncio.to_thread(self._opener, request, timeout=self._timeout_s)
        except HTTPError as exc:
            exc.close()
            logger.error("fetch failed %s: HTTP %s", url, exc.code)
            raise classify_http_status(int(exc.code), url, str(exc.reason or "")) from exc
        except (URLError, OSError, http.client.HTTPException) as exc:
            logger.error("fetch failed %s: %s", url, exc)
            raise TransportFailure(f"no response from {url}: {exc}", url=url) from exc

        try:
            status = int(getattr(response, "status", 200) or 200)
            if not 200 <= status <= 299:
                raise classify_http_status(status, url, str(getattr(response, "reason", "") or ""))

            sink = HashingSink(staging_path, max_bytes=self._max_bytes)
            async with aclosing(self._iter_body(response, url, status)) as chunks:
                outcome = await sink.consume(chunks)
        finally:
            await asyncio.to_thread(response.close)

        elapsed_s = compute_elapsed_s(started_at)
        logger.info(
            "fetched %s: %d bytes in %.2fs (%s)",
            url,
            outcome.size,
            elapsed_s,
            format_throughput(compute_throughput(outcome.size, elapsed_s)),
        )
        return TransferResult(
            url=url,
            status=status,
            digest=outcome.digest,
            size=outcome.size,
            staging_path=outcome.path,
            elapsed_s=elapsed_s,
        )

    async def _iter_body(self, response: Any, url: str, status: int) -> AsyncIterator[bytes]:
        """Yield body chunks; the next read starts only when the consumer asks."""
        while True:
            try:
                chunk = await asyncio.to_thread(response.read, self._chunk_size)
            except (OSError, http.client.HTTPException) as exc:
                raise IncompleteBody(
                    f"connection lost while reading {url}: {exc}",
                    url=url,
                    status_code=status,
                ) from exc
            if not chunk:
                return
            yield chunk
