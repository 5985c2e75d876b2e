# reengine/services/approvals.py
"""
Approval drafts and their state machine.

    pending ──> approved ──> sent | failed | approved_opened   (router)
       │            └──────> sent_manual                       (operator)
       └──────> rejected

Every state except pending and approved is terminal. A terminal approval is
never mutated again; `retry` files a new pending approval instead.
"""
from __future__ import annotations

import uuid
from typing import Dict, FrozenSet, List, Optional, Tuple

from reengine.core.config import settings
from reengine.core.exceptions import InvalidTransitionError, NotFoundError
from reengine.core.logging import get_structlog_logger
from reengine.db.csv_store import CsvStore
from reengine.schemas.records import (
    ActionType,
    Approval,
    ApprovalStatus,
    Channel,
    EventRow,
    utc_now,
)

logger = get_structlog_logger(__name__)

TRANSITIONS: Dict[ApprovalStatus, FrozenSet[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}),
    ApprovalStatus.APPROVED: frozenset({
        ApprovalStatus.SENT,
        ApprovalStatus.FAILED,
        ApprovalStatus.APPROVED_OPENED,
        ApprovalStatus.SENT_MANUAL,
    }),
}

RETRYABLE_STATUSES = frozenset({ApprovalStatus.FAILED, ApprovalStatus.REJECTED})


def can_transition(current: ApprovalStatus, target: ApprovalStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def transition(approval: Approval, target: ApprovalStatus) -> Approval:
    """Move an approval to `target` or raise InvalidTransitionError."""
    if not can_transition(approval.status, target):
        raise InvalidTransitionError(approval.approval_id, approval.status.value, target.value)
    approval.status = target
    return approval


def new_approval_id() -> str:
    return f"appr_{uuid.uuid4().hex[:12]}"


class ApprovalService:
    def __init__(self, store: CsvStore, campaign: Optional[str] = None) -> None:
        self.store = store
        self.campaign = campaign or settings.default_campaign

    async def list_by_status(self, status: Optional[str] = None) -> List[Approval]:
        rows = await self.store.list_approvals()
        if not status:
            return rows
        wanted = status.strip().lower()
        return [r for r in rows if r.status.value == wanted]

    async def get(self, approval_id: str) -> Approval:
        _, row = await self._find(approval_id)
        return row

    async def create_draft(
        self,
        *,
        lead_id: str,
        channel: Channel,
        action_type: ActionType,
        draft_to: str,
        draft_text: str,
        draft_subject: str = "",
        campaign: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Approval:
        if lead_id:
            await self.store.get_lead(lead_id)
        rows = await self.store.list_approvals()
        approval = Approval(
            approval_id=new_approval_id(),
            ts_created=utc_now(),
            lead_id=lead_id or "",
            channel=channel,
            action_type=action_type,
            draft_subject=draft_subject or "",
            draft_text=draft_text,
            draft_to=draft_to,
            status=ApprovalStatus.PENDING,
            notes=notes if notes is not None else (f"campaign={campaign}" if campaign else ""),
        )

        rows.append(approval)
        await self.store.save_approvals(rows)

        await self.store.append_event(EventRow.create(
            event_type="draft_created",
            lead_id=approval.lead_id,
            channel=approval.channel,
            campaign=campaign or self.campaign,
            meta={"approval_id": approval.approval_id, "to": approval.draft_to},
        ))

        logger.info("approval.draft_created", approval_id=approval.approval_id, channel=approval.channel.value)
        return approval

    async def approve(self, approval_id: str, by: Optional[str] = None) -> Approval:
        by = by or settings.approver_name
        rows, row = await self._transition(approval_id, ApprovalStatus.APPROVED)
        row.approved_by = by
        row.approved_at = utc_now()
        await self.store.save_approvals(rows)

        await self._audit(row, "approve", {"approval_id": approval_id, "by": by})
        logger.info("approval.approved", approval_id=approval_id, by=by)
        return row

    async def reject(self, approval_id: str, reason: str = "rejected", by: Optional[str] = None) -> Approval:
        by = by or settings.approver_name
        rows, row = await self._transition(approval_id, ApprovalStatus.REJECTED)
        row.approved_by = by
        row.approved_at = utc_now()
        row.notes = reason
        await self.store.save_approvals(rows)

        await self._audit(row, "reject", {"approval_id": approval_id, "reason": reason, "by": by})
        logger.info("approval.rejected", approval_id=approval_id, by=by)
        return row

    async def mark_sent_manual(self, approval_id: str, by: Optional[str] = None, note: str = "") -> Approval:
        """Record that an operator completed an approved send out of band."""
        by = by or settings.approver_name
        rows, row = await self._transition(approval_id, ApprovalStatus.SENT_MANUAL)
        stamp = f"{utc_now()} sent manually by {by}"
        row.notes = f"{stamp}: {note}" if note else stamp
        await self.store.save_approvals(rows)

        await self._audit(row, "sent_manual", {"approval_id": approval_id, "by": by, "note": note})
        logger.info("approval.sent_manual", approval_id=approval_id, by=by)
        return row

    async def retry(self, approval_id: str, by: Optional[str] = None) -> Approval:
        """File a fresh pending copy of a failed or rejected approval."""
        original = await self.get(approval_id)
        if original.status not in RETRYABLE_STATUSES:
            raise InvalidTransitionError(approval_id, original.status.value, ApprovalStatus.PENDING.value)

        draft = await self.create_draft(
            lead_id=original.lead_id,
            channel=original.channel,
            action_type=original.action_type,
            draft_to=original.draft_to,
            draft_text=original.draft_text,
            draft_subject=original.draft_subject,
            notes=f"retry_of={approval_id}",
        )
        logger.info("approval.retry_created", approval_id=draft.approval_id, retry_of=approval_id, by=by)
        return draft

    async def _find(self, approval_id: str) -> Tuple[List[Approval], Approval]:
        rows = await self.store.list_approvals()
        for row in rows:
            if row.approval_id == approval_id:
                return rows, row
        raise NotFoundError(f"approval_id not found: {approval_id}", code="approval_not_found")

    async def _transition(self, approval_id: str, target: ApprovalStatus) -> Tuple[List[Approval], Approval]:
        rows, row = await self._find(approval_id)
        transition(row, target)
        return rows, row

    async def _audit(self, row: Approval, event_type: str, meta: dict) -> None:
        await self.store.append_event(EventRow.create(
            event_type=event_type,
            lead_id=row.lead_id,
            channel=row.channel,
            campaign=self.campaign,
            meta=meta,
        ))
