from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.shared.fetch_state import PipelineState

from ..errors import FetchError
from ..pipeline.runner import FetchService
from .fetcher import FetchRequest


class FetchIn(BaseModel):
    url: str = Field(min_length=1)
    expected_digest: Optional[str] = Field(default=None, pattern=r"^[0-9a-fA-F]+$")
    credential: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class InFlightOut(BaseModel):
    url: str
    state: PipelineState
    waiters: int


def create_fetch_router(*, service: FetchService) -> APIRouter:
    router = APIRouter(prefix="/api/fetch", tags=["fetch"])

    @router.post("")
    async def fetch_tarball(body: FetchIn) -> dict[str, Any]:
        request = FetchRequest(
            url=body.url,
            expected_digest=body.expected_digest,
            credential=body.credential,
            metadata=body.metadata,
        )
        try:
            result = await service.fetch(request)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except FetchError as exc:
            raise HTTPException(status_code=exc.http_status, detail=exc.to_public_dict()) from exc
        return result.to_public_dict()

    @router.get("/in-flight", response_model=list[InFlightOut])
    async def list_in_flight() -> list[InFlightOut]:
        return [
            InFlightOut(url=item["url"], state=item["state"], waiters=item["waiters"])
            for item in service.snapshot()
        ]

    return router
