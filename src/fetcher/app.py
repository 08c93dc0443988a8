from __future__ import annotations

from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .downloader.api import create_fetch_router
from .net.transfer import OpenerFunc
from .pipeline.runner import FetchService
from .settings.api import create_settings_router
from .settings.store import SettingsStore


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def create_app(*, data_dir: Optional[Path] = None, opener: Optional[OpenerFunc] = None) -> FastAPI:
    repo_root = _repo_root()
    data_dir = Path(data_dir) if data_dir is not None else repo_root / "data"
    config_path = data_dir / "config.json"

    store = SettingsStore(path=config_path)
    service = FetchService(store=store, base_dir=data_dir, opener=opener)

    app = FastAPI(title="tarball-fetch")
    app.include_router(create_settings_router(store=store, base_dir=data_dir))
    app.include_router(create_fetch_router(service=service))

    app.state.settings_store = store
    app.state.fetch_service = service
    app.state.data_dir = data_dir
    return app


app = create_app()
