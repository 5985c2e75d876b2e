# reengine/routes/dnc.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse

from reengine.core.exceptions import NotFoundError
from reengine.db.csv_store import CsvStore
from reengine.db.session import get_store
from reengine.schemas.api import DncAddRequest, DncStatsResponse
from reengine.schemas.records import DncEntry
from reengine.services.dnc import DncService

router = APIRouter(prefix="/dnc", tags=["dnc"])


def get_dnc_service(store: CsvStore = Depends(get_store)) -> DncService:
    return DncService(store)


@router.get("", response_model=List[DncEntry])
async def list_dnc(store: CsvStore = Depends(get_store)):
    return await store.list_dnc()


@router.post("", response_model=DncEntry, status_code=status.HTTP_201_CREATED)
async def add_dnc(body: DncAddRequest, service: DncService = Depends(get_dnc_service)):
    """Add an email or phone number; an existing entry is returned unchanged."""
    return await service.add(body.value, body.reason)


@router.get("/stats", response_model=DncStatsResponse)
async def dnc_stats(service: DncService = Depends(get_dnc_service)):
    return await service.stats()


@router.get("/export", response_class=PlainTextResponse)
async def export_dnc(service: DncService = Depends(get_dnc_service)):
    return PlainTextResponse(await service.export_csv(), media_type="text/csv")


@router.delete("/{value}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_dnc(value: str, service: DncService = Depends(get_dnc_service)):
    if not await service.remove(value):
        raise NotFoundError(f"DNC entry not found: {value}", code="dnc_not_found")
