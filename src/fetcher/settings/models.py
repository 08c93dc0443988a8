from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..net.retry import RetryConfig
from ..net.transfer import DEFAULT_TIMEOUT_S, DEFAULT_USER_AGENT


DEFAULT_CACHE_ROOT = "cache"
DEFAULT_MAX_ARTIFACT_BYTES = 512 * 1024 * 1024


@dataclass
class FetchSettings:
    cache_root: str = DEFAULT_CACHE_ROOT
    timeout_s: float = DEFAULT_TIMEOUT_S
    max_artifact_bytes: Optional[int] = DEFAULT_MAX_ARTIFACT_BYTES
    user_agent: str = DEFAULT_USER_AGENT
    retry: Optional[RetryConfig] = None

    def get_retry(self) -> RetryConfig:
        """Get retry config, using defaults if not set."""
        return self.retry or RetryConfig()

    def to_persist_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": 1,
            "cache_root": self.cache_root,
            "timeout_s": self.timeout_s,
            "max_artifact_bytes": self.max_artifact_bytes,
            "user_agent": self.user_agent,
        }
        if self.retry is not None:
            data["retry"] = self.retry.to_persist_dict()
        return data

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "FetchSettings":
        cache_root = str(data.get("cache_root", DEFAULT_CACHE_ROOT) or DEFAULT_CACHE_ROOT)
        user_agent = str(data.get("user_agent", DEFAULT_USER_AGENT) or DEFAULT_USER_AGENT)

        try:
            timeout_s = float(data.get("timeout_s", DEFAULT_TIMEOUT_S))
        except (TypeError, ValueError):
            timeout_s = DEFAULT_TIMEOUT_S
        if timeout_s <= 0:
            timeout_s = DEFAULT_TIMEOUT_S

        raw_max = data.get("max_artifact_bytes", DEFAULT_MAX_ARTIFACT_BYTES)
        max_artifact_bytes: Optional[int]
        if raw_max is None:
            max_artifact_bytes = None
        else:
            try:
                max_artifact_bytes = int(raw_max)
            except (TypeError, ValueError):
                max_artifact_bytes = DEFAULT_MAX_ARTIFACT_BYTES
            if max_artifact_bytes <= 0:
                max_artifact_bytes = DEFAULT_MAX_ARTIFACT_BYTES

        raw_retry = data.get("retry")
        retry = None
        if isinstance(raw_retry, dict):
            retry = RetryConfig.from_persist_dict(raw_retry)

        return cls(
            cache_root=cache_root,
            timeout_s=timeout_s,
            max_artifact_bytes=max_artifact_bytes,
            user_agent=user_agent,
            retry=retry,
        )
