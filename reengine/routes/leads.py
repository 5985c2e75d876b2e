# reengine/routes/leads.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from reengine.core.logging import get_structlog_logger
from reengine.db.csv_store import CsvStore
from reengine.db.session import get_store
from reengine.schemas.records import EventRow, Lead

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/leads", tags=["leads"])


@router.get("", response_model=List[Lead])
async def list_leads(
    status: Optional[str] = Query(None, pattern="^(new|drafted|sent|replied|hot|dnc)$"),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
    store: CsvStore = Depends(get_store),
):
    """List leads, optionally filtered by status or a name/email/phone search."""
    leads = await store.list_leads()
    if status:
        leads = [lead for lead in leads if lead.status.value == status]
    if search:
        term = search.lower()
        leads = [
            lead for lead in leads
            if term in f"{lead.first_name} {lead.last_name}".lower()
            or term in lead.email.lower()
            or term in lead.phone_e164
        ]
    logger.info("leads.list", total=len(leads), status=status)
    return leads


@router.get("/{lead_id}", response_model=Lead)
async def get_lead(lead_id: str, store: CsvStore = Depends(get_store)):
    return await store.get_lead(lead_id)


@router.get("/{lead_id}/events", response_model=List[EventRow])
async def list_lead_events(lead_id: str, store: CsvStore = Depends(get_store)):
    """Audit trail for one lead, oldest first."""
    await store.get_lead(lead_id)
    return await store.list_events(lead_id=lead_id)
