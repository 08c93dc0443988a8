"""
Cache directory structure management.

Directory structure:
    <cache_root>/_staging/<host>/<path>     in-progress downloads
    <cache_root>/_artifacts/<aa>/<digest>   verified, imported tarballs
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from .naming import cache_filename
from .staging import TMP_SUFFIX, temp_prefix


STAGING_DIR_NAME = "_staging"
ARTIFACTS_DIR_NAME = "_artifacts"

logger = logging.getLogger(__name__)


class CacheStorage:
    """
    Manages the on-disk layout of the tarball cache.

    Staging paths are derived from the source URL, so one URL always maps to
    the same staging path. Different URLs never share one: the file name
    carries a hash of the complete URL.
    """

    def __init__(self, cache_root: Path | str):
        """
        Initialize the storage manager.

        Args:
            cache_root: The root directory of the cache.
        """
        self._cache_root = Path(cache_root).expanduser().resolve()

    @property
    def cache_root(self) -> Path:
        return self._cache_root

    @property
    def staging_root(self) -> Path:
        return self._cache_root / STAGING_DIR_NAME

    @property
    def artifacts_root(self) -> Path:
        return self._cache_root / ARTIFACTS_DIR_NAME

    def staging_path_for(self, url: str) -> Path:
        """
        Get the staging path for a source URL.

        Raises:
            ValueError: If the URL has no host.
        """
        return cache_filename(self.staging_root, url)

    def artifact_path_for(self, digest: str, suffix: str = ".tgz") -> Path:
        """Content-addressed location of a verified tarball."""
        return self.artifacts_root / digest[:2] / f"{digest}{suffix}"

    def ensure_staging_dir(self, staging_path: Path) -> Path:
        """
        Ensure the parent directory of a staging path exists.

        Raises:
            OSError: If the directory cannot be created.
        """
        parent = Path(staging_path).parent
        parent.mkdir(parents=True, exist_ok=True)
        return parent

    def remove_staging(self, staging_path: Path) -> bool:
        """
        Remove a staging path and any temp files left beside it.

        Best effort: failures are logged, never raised.

        Returns:
            True if nothing is left behind.
        """
        path = Path(staging_path)
        clean = True

        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("failed to remove staging path %s: %s", path, exc)
            clean = False

        if path.parent.is_dir():
            for leftover in path.parent.glob(f"{temp_prefix(path)}*{TMP_SUFFIX}"):
                try:
                    leftover.unlink()
                except FileNotFoundError:
                    continue
                except OSError as exc:
                    logger.warning("failed to remove temp file %s: %s", leftover, exc)
                    clean = False

        return clean
