"""
Default import step: move a verified tarball into the content-addressed cache.

    <cache_root>/_artifacts/<digest[:2]>/<digest>.tgz

The staged file is moved with os.replace, so the artifact appears complete or
not at all. Importing the same digest twice just replaces identical bytes.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Mapping

from ..fs.storage import CacheStorage

logger = logging.getLogger(__name__)


def store_verified_tarball(
    storage: CacheStorage,
) -> Callable[[Path, Mapping[str, Any], str], dict[str, Any]]:
    """
    Build an import step bound to a cache.

    Args:
        storage: Cache layout the artifact is moved into.

    Returns:
        import_step(staging_path, metadata, digest) -> {"path", "size", "digest"}
    """

    def _import(staging_path: Path, metadata: Mapping[str, Any], digest: str) -> dict[str, Any]:
        target = storage.artifact_path_for(digest)
        target.parent.mkdir(parents=True, exist_ok=True)
        size = Path(staging_path).stat().st_size
        os.replace(staging_path, target)
        logger.debug("imported %s as %s", metadata.get("name", staging_path.name), target)
        return {
            "path": str(target),
            "size": size,
            "digest": digest,
        }

    return _import
