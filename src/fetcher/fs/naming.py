"""
Cache file naming: map a source URL to a path under a cache directory.

Layout:
    <root>/<host>[_<port>]/<path segments...>_<key hash>

- userinfo in the netloc is never part of the path
- empty, "." and ".." segments are dropped
- the last segment ends with "_<hash16>" of the complete URL, so distinct
  URLs never share a path, whatever the sanitizing below folds together
  (scheme, host case, escaping, query)
- a URL without a path maps to "<root>/<host>/__<hash16>"
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from urllib.parse import unquote, urlsplit


# Characters allowed in a single path component
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._@+=,~-]")

KEY_HASH_LENGTH = 16
EMPTY_PATH_NAME = "_"


def _safe_component(value: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", value)
    return cleaned or EMPTY_PATH_NAME


def key_hash(url: str) -> str:
    """Short SHA-1 of the exact URL string."""
    return hashlib.sha1(url.encode("utf-8")).hexdigest()[:KEY_HASH_LENGTH]


def host_component(url: str) -> str:
    """
    Directory name for the URL's host.

    Args:
        url: Absolute http(s) URL.

    Returns:
        Host with ":" replaced, e.g. "registry.example.org_8080".

    Raises:
        ValueError: If the URL has no host.
    """
    parts = urlsplit(url)
    host = parts.hostname
    if not host:
        raise ValueError(f"URL has no host: {url!r}")
    if parts.port is not None:
        return _safe_component(f"{host}_{parts.port}")
    return _safe_component(host)


def path_components(url: str) -> list[str]:
    """Sanitized path segments of a URL, ending with the keyed file name."""
    parts = urlsplit(url)
    segments = [
        _safe_component(unquote(seg))
        for seg in parts.path.split("/")
        if seg and seg not in (".", "..")
    ]
    if not segments:
        segments = [EMPTY_PATH_NAME]
    segments[-1] = f"{segments[-1]}_{key_hash(url)}"
    return segments


def cache_filename(root: Path | str, url: str) -> Path:
    """
    Deterministic path for `url` under `root`.

    Example:
        cache_filename("/tmp/c", "https://r.example/pkg/-/pkg-1.0.0.tgz")
        -> /tmp/c/r.example/pkg/-/pkg-1.0.0.tgz_<hash16>
    """
    return Path(root).joinpath(host_component(url), *path_components(url))
