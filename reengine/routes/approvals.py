# reengine/routes/approvals.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from reengine.core.logging import get_structlog_logger
from reengine.db.csv_store import CsvStore
from reengine.db.session import get_store
from reengine.schemas.api import (
    ApprovalCreateRequest,
    ApproveRequest,
    RejectRequest,
    SentManualRequest,
)
from reengine.schemas.records import Approval
from reengine.services.approvals import ApprovalService

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/approvals", tags=["approvals"])


def get_approval_service(store: CsvStore = Depends(get_store)) -> ApprovalService:
    return ApprovalService(store)


@router.get("", response_model=List[Approval])
async def list_approvals(
    status: Optional[str] = Query(
        None,
        pattern="^(pending|approved|rejected|sent|failed|approved_opened|sent_manual)$",
    ),
    service: ApprovalService = Depends(get_approval_service),
):
    """List approvals in stored order, optionally filtered by status."""
    rows = await service.list_by_status(status)
    logger.info("approvals.list", status=status, total=len(rows))
    return rows


@router.post("", response_model=Approval, status_code=status.HTTP_201_CREATED)
async def create_approval(
    body: ApprovalCreateRequest,
    service: ApprovalService = Depends(get_approval_service),
):
    """File a new pending draft for human review."""
    return await service.create_draft(
        lead_id=body.lead_id,
        channel=body.channel,
        action_type=body.action_type,
        draft_to=body.draft_to,
        draft_subject=body.draft_subject,
        draft_text=body.draft_text,
        campaign=body.campaign,
    )


@router.get("/{approval_id}", response_model=Approval)
async def get_approval(approval_id: str, service: ApprovalService = Depends(get_approval_service)):
    return await service.get(approval_id)


@router.post("/{approval_id}/approve", response_model=Approval)
async def approve(
    approval_id: str,
    body: Optional[ApproveRequest] = None,
    service: ApprovalService = Depends(get_approval_service),
):
    return await service.approve(approval_id, by=body.by if body else None)


@router.post("/{approval_id}/reject", response_model=Approval)
async def reject(
    approval_id: str,
    body: Optional[RejectRequest] = None,
    service: ApprovalService = Depends(get_approval_service),
):
    body = body or RejectRequest()
    return await service.reject(approval_id, reason=body.reason, by=body.by)


@router.post("/{approval_id}/sent-manual", response_model=Approval)
async def sent_manual(
    approval_id: str,
    body: Optional[SentManualRequest] = None,
    service: ApprovalService = Depends(get_approval_service),
):
    body = body or SentManualRequest()
    return await service.mark_sent_manual(approval_id, by=body.by, note=body.note)


@router.post("/{approval_id}/retry", response_model=Approval, status_code=status.HTTP_201_CREATED)
async def retry(
    approval_id: str,
    body: Optional[ApproveRequest] = None,
    service: ApprovalService = Depends(get_approval_service),
):
    """Create a new pending approval from a failed or rejected one."""
    return await service.retry(approval_id, by=body.by if body else None)
