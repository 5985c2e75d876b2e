# reengine/services/router.py
"""
Router: turns approved drafts into channel sends.

Only records whose status is `approved` when the table is loaded ever reach an
adapter. Each processed record ends in a terminal status and gets exactly one
audit event. Per-record failures never abort the batch; storage write failures
do.
"""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from reengine.core.config import settings
from reengine.core.exceptions import AdapterError, StoreError
from reengine.core.logging import get_structlog_logger, log_context
from reengine.db.csv_store import CsvStore
from reengine.schemas.records import (
    SEMI_AUTOMATIC_CHANNELS,
    Approval,
    ApprovalStatus,
    EventRow,
    utc_now,
)
from reengine.services.adapters import ChannelAdapters, SendResult
from reengine.services.approvals import transition
from reengine.services.dnc import DncService

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class RouterResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    opened: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def failure_note(error: str) -> str:
    return f"{utc_now()} failed: {error or 'unknown'}"


class RouterService:
    def __init__(
        self,
        store: CsvStore,
        adapters: ChannelAdapters,
        *,
        campaign: Optional[str] = None,
        persist_each_record: Optional[bool] = None,
        dnc: Optional[DncService] = None,
    ) -> None:
        self.store = store
        self.adapters = adapters
        self.campaign = campaign or settings.default_campaign
        self.persist_each_record = (
            settings.router_persist_each_record if persist_each_record is None else persist_each_record
        )
        self.dnc = dnc

    async def process_approved(self, max: Optional[int] = None) -> RouterResult:
        limit = settings.router_max_per_run if max is None else max
        with log_context(router_run=f"run_{uuid.uuid4().hex[:8]}"):
            return await self._run(limit)

    async def _run(self, limit: int) -> RouterResult:
        approvals = await self.store.list_approvals()

        processed = sent = failed = opened = 0

        for row in approvals:
            if processed >= limit:
                break
            if row.status != ApprovalStatus.APPROVED:
                continue

            processed += 1
            status = await self._dispatch(row)

            if status == ApprovalStatus.SENT:
                sent += 1
            elif status == ApprovalStatus.APPROVED_OPENED:
                opened += 1
            else:
                failed += 1

            if self.persist_each_record:
                await self.store.save_approvals(approvals)

        if processed:
            await self.store.save_approvals(approvals)

        result = RouterResult(processed=processed, sent=sent, failed=failed, opened=opened)
        logger.info("router.run_complete", **result.to_dict())
        return result

    async def _dispatch(self, row: Approval) -> ApprovalStatus:
        """Send one approved record and mutate it to its terminal status."""
        try:
            if self.dnc is not None:
                check = await self.dnc.check_approval(row)
                if not check.allowed:
                    return await self._fail(row, f"blocked by DNC: {check.reason}", res=None)

            adapter = self.adapters.get(row.channel)
            if adapter is None:
                raise AdapterError(
                    f"No adapter configured for channel={row.channel.value}",
                    code="adapter_not_configured",
                )

            res: SendResult = await adapter.send(row)

            if row.channel in SEMI_AUTOMATIC_CHANNELS:
                # A human completes the send; the adapter outcome does not matter.
                transition(row, ApprovalStatus.APPROVED_OPENED)
            elif res.ok:
                transition(row, ApprovalStatus.SENT)
            else:
                return await self._fail(row, res.error, res=res)

            await self._record(row, res, {"ok": res.ok})
            logger.info("router.processed", approval_id=row.approval_id, status=row.status.value)
            return row.status
        except StoreError:
            raise
        except Exception as e:
            logger.warning(
                "router.dispatch_error",
                approval_id=row.approval_id,
                channel=row.channel.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self._fail(row, str(e), res=None)

    async def _fail(self, row: Approval, error: str, res: Optional[SendResult]) -> ApprovalStatus:
        row.status = ApprovalStatus.FAILED
        row.notes = failure_note(error)
        await self._record(row, res, {"ok": False, "error": error or "unknown"})
        logger.info("router.processed", approval_id=row.approval_id, status=row.status.value)
        return row.status

    async def _record(self, row: Approval, res: Optional[SendResult], extra: Dict[str, Any]) -> None:
        meta: Dict[str, Any] = {"approval_id": row.approval_id, "to": row.draft_to}
        meta.update(extra)
        await self.store.append_event(EventRow.create(
            event_type=row.status.value,
            lead_id=row.lead_id,
            channel=row.channel,
            campaign=self.campaign,
            message_id=res.message_id if res else "",
            meta=meta,
        ))
