"""
Typed failures for the fetch pipeline.

Every failure that can reach a caller is a FetchError subclass. Each kind says
whether the retry loop may try again (`should_retry`) and carries the HTTP
status when one was received.

Retryable:
    TransportFailure  - no response at all (timeout, DNS, refused, reset)
    ServerFailure     - HTTP 408 or 5xx

Terminal:
    DirectoryPrepFailure, ClientFailure, IncompleteBody, DigestMismatch,
    StagingIOFailure, ArtifactTooLarge, ImportFailure
"""

from __future__ import annotations

from typing import Optional


# HTTP status codes that trigger retry (besides every 5xx)
RETRYABLE_CLIENT_STATUS_CODES = frozenset({408})


class FetchError(Exception):
    """
    Base class for fetch pipeline failures.

    Attributes:
        kind: Stable identifier of the failure kind.
        status_code: HTTP status of the response, if one was received.
        should_retry: Whether the retry loop may attempt again.
        http_status: Status code the HTTP API answers with.
    """

    kind = "fetch"
    http_status = 502
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.status_code = status_code

    @property
    def should_retry(self) -> bool:
        return self.retryable

    def to_public_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "url": self.url,
            "status_code": self.status_code,
        }


class DirectoryPrepFailure(FetchError):
    kind = "directory_prep"
    http_status = 500


class TransportFailure(FetchError):
    kind = "transport"
    http_status = 504
    retryable = True


class ServerFailure(FetchError):
    kind = "server"
    retryable = True


class ClientFailure(FetchError):
    kind = "client"


class IncompleteBody(FetchError):
    """
    A response arrived but its body broke off (reset, truncated read).

    Only the status decides retryability, and a body is only read after a
    2xx, so in practice this is terminal.
    """

    kind = "incomplete_body"

    @property
    def should_retry(self) -> bool:
        return self.status_code is not None and is_retryable_status(self.status_code)


class DigestMismatch(FetchError):
    """Transfer completed but the content hash is not the expected one."""

    kind = "digest_mismatch"

    def __init__(self, *, url: str, staging_path: str, expected: str, actual: str) -> None:
        super().__init__(
            f"shasum check failed for {staging_path}\n"
            f"Expected: {expected}\n"
            f"Actual:   {actual}\n"
            f"From:     {url}",
            url=url,
        )
        self.expected = expected
        self.actual = actual


class StagingIOFailure(FetchError):
    kind = "staging_io"
    http_status = 500


class ArtifactTooLarge(FetchError):
    kind = "too_large"
    http_status = 413


class ImportFailure(FetchError):
    """The import step raised; keeps the resolved URL and verified digest."""

    kind = "import"
    http_status = 500

    def __init__(self, message: str, *, url: str, digest: str) -> None:
        super().__init__(message, url=url)
        self.digest = digest

    def to_public_dict(self) -> dict:
        data = super().to_public_dict()
        data["digest"] = self.digest
        return data


def is_retryable_status(status_code: int) -> bool:
    """408 and every 5xx may succeed on a later attempt."""
    return status_code in RETRYABLE_CLIENT_STATUS_CODES or 500 <= status_code <= 599


def classify_http_status(status_code: int, url: str, reason: str = "") -> FetchError:
    """
    Map a non-2xx HTTP status to the matching failure.

    Args:
        status_code: Response status.
        url: Requested URL.
        reason: Optional reason phrase from the server.

    Returns:
        ServerFailure for 408/5xx, ClientFailure otherwise.
    """
    detail = f"{status_code} {reason}".strip()
    message = f"fetch failed for {url}: HTTP {detail}"
    if is_retryable_status(status_code):
        return ServerFailure(message, url=url, status_code=status_code)
    return ClientFailure(message, url=url, status_code=status_code)
