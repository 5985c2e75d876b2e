# reengine/routes/router.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from reengine.core.config import settings
from reengine.db.csv_store import CsvStore
from reengine.db.session import get_adapters, get_store
from reengine.schemas.api import RouterRunResponse
from reengine.services.adapters import ChannelAdapters
from reengine.services.dnc import DncService
from reengine.services.router import RouterService

router = APIRouter(prefix="/router", tags=["router"])


def get_router_service(
    store: CsvStore = Depends(get_store),
    adapters: ChannelAdapters = Depends(get_adapters),
) -> RouterService:
    dnc = DncService(store) if settings.router_enforce_dnc else None
    return RouterService(store, adapters, dnc=dnc)


@router.post("/run", response_model=RouterRunResponse)
async def run_router(
    max: Optional[int] = Query(None, ge=0, le=1000),
    service: RouterService = Depends(get_router_service),
):
    """Dispatch up to `max` approved drafts through their channel adapters."""
    result = await service.process_approved(max=max)
    return RouterRunResponse(**result.to_dict())
