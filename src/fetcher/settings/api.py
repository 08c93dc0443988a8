from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..net.retry import RetryConfig
from ..pipeline.runner import resolve_cache_root
from .models import FetchSettings
from .store import SettingsStore


class CacheRootIn(BaseModel):
    cache_root: str = Field(min_length=1)


class RetryIn(BaseModel):
    retries: int = Field(ge=1, le=10, default=3)
    backoff_factor: float = Field(ge=1.0, le=100.0, default=10.0)
    min_delay_s: float = Field(ge=0.0, le=600.0, default=10.0)
    max_delay_s: float = Field(ge=0.0, le=3600.0, default=60.0)


class TransferIn(BaseModel):
    timeout_s: float = Field(gt=0.0, le=3600.0, default=60.0)
    max_artifact_bytes: Optional[int] = Field(default=None, gt=0)


class RetryOut(BaseModel):
    retries: int
    backoff_factor: float
    min_delay_s: float
    max_delay_s: float


class SettingsOut(BaseModel):
    cache_root: str
    timeout_s: float
    max_artifact_bytes: Optional[int]
    user_agent: str
    retry: RetryOut


def _public_settings(settings: FetchSettings) -> SettingsOut:
    retry = settings.get_retry()
    return SettingsOut(
        cache_root=settings.cache_root,
        timeout_s=settings.timeout_s,
        max_artifact_bytes=settings.max_artifact_bytes,
        user_agent=settings.user_agent,
        retry=RetryOut(
            retries=retry.retries,
            backoff_factor=retry.backoff_factor,
            min_delay_s=retry.min_delay_s,
            max_delay_s=retry.max_delay_s,
        ),
    )


def _ensure_dir_writable(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ValueError(f"cannot create directory: {exc}") from exc

    if not path.is_dir():
        raise ValueError("cache root is not a directory")

    try:
        with tempfile.NamedTemporaryFile(prefix=".fetch_write_test_", dir=str(path), delete=True):
            pass
    except PermissionError as exc:
        raise ValueError("cache root is not writable") from exc
    except OSError as exc:
        raise ValueError(f"cannot write to cache root: {exc}") from exc


def create_settings_router(*, store: SettingsStore, base_dir: Path) -> APIRouter:
    router = APIRouter(prefix="/api/settings", tags=["settings"])

    @router.get("", response_model=SettingsOut)
    def get_settings() -> SettingsOut:
        return _public_settings(store.load())

    @router.post("/cache-root", response_model=SettingsOut)
    def set_cache_root(body: CacheRootIn) -> SettingsOut:
        try:
            root = resolve_cache_root(body.cache_root, base_dir=base_dir)
            _ensure_dir_writable(root)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        updated = store.set_value(key="cache_root", value=str(root))
        return _public_settings(updated)

    @router.post("/retry", response_model=SettingsOut)
    def set_retry(body: RetryIn) -> SettingsOut:
        if body.max_delay_s < body.min_delay_s:
            raise HTTPException(status_code=400, detail="max_delay_s must be >= min_delay_s")

        retry = RetryConfig(
            retries=body.retries,
            backoff_factor=body.backoff_factor,
            min_delay_s=body.min_delay_s,
            max_delay_s=body.max_delay_s,
        )

        def mutate(settings: FetchSettings) -> FetchSettings:
            settings.retry = retry
            return settings

        updated = store.update(mutator=mutate)
        return _public_settings(updated)

    @router.post("/transfer", response_model=SettingsOut)
    def set_transfer(body: TransferIn) -> SettingsOut:
        def mutate(settings: FetchSettings) -> FetchSettings:
            settings.timeout_s = body.timeout_s
            settings.max_artifact_bytes = body.max_artifact_bytes
            return settings

        updated = store.update(mutator=mutate)
        return _public_settings(updated)

    return router
