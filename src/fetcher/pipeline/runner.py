from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..downloader.fetcher import FetchRequest, FetchResult, TarballFetcher
from ..downloader.inflight import InFlightRegistry
from ..fs.storage import CacheStorage
from ..net.transfer import OpenerFunc, TransferDriver
from ..settings.models import FetchSettings
from ..settings.store import SettingsStore
from .import_step import store_verified_tarball


def resolve_cache_root(cache_root: str, *, base_dir: Path) -> Path:
    """Relative cache roots are taken relative to `base_dir`."""
    raw = cache_root.strip()
    if not raw:
        raise ValueError("cache root must not be empty")

    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = (base_dir / p).resolve()
    return p


def build_fetcher(
    settings: FetchSettings,
    *,
    base_dir: Path,
    inflight: Optional[InFlightRegistry] = None,
    opener: Optional[OpenerFunc] = None,
) -> TarballFetcher:
    """TarballFetcher wired with the default import step from one settings snapshot."""
    storage = CacheStorage(resolve_cache_root(settings.cache_root, base_dir=base_dir))
    transfer = TransferDriver(
        timeout_s=settings.timeout_s,
        max_bytes=settings.max_artifact_bytes,
        user_agent=settings.user_agent,
        opener=opener,
    )
    return TarballFetcher(
        storage=storage,
        import_step=store_verified_tarball(storage),
        transfer=transfer,
        retry=settings.get_retry(),
        inflight=inflight,
    )


class FetchService:
    """
    Long-lived entry point used by the API.

    Settings are re-read on every fetch; the in-flight registry is shared
    across reloads, so a settings change never splits one URL into two
    concurrent pipelines.
    """

    def __init__(
        self,
        *,
        store: SettingsStore,
        base_dir: Path,
        opener: Optional[OpenerFunc] = None,
    ) -> None:
        self._store = store
        self._base_dir = Path(base_dir)
        self._opener = opener
        self._inflight = InFlightRegistry()
        self._fetchers: list[TarballFetcher] = []

    @property
    def inflight(self) -> InFlightRegistry:
        return self._inflight

    async def fetch(self, request: FetchRequest) -> FetchResult:
        fetcher = build_fetcher(
            self._store.load(),
            base_dir=self._base_dir,
            inflight=self._inflight,
            opener=self._opener,
        )
        self._fetchers.append(fetcher)
        try:
            return await fetcher.fetch(request)
        finally:
            self._fetchers.remove(fetcher)

    def snapshot(self) -> list[dict]:
        entries: dict[str, dict] = {}
        for fetcher in self._fetchers:
            for item in fetcher.snapshot():
                entries[item["url"]] = item
        return [entries[url] for url in sorted(entries)]
