# reengine/services/ingest.py
"""
Inbound message ingestion.

An inbound email/WhatsApp/Telegram message is matched to an existing lead (or
a new one is created), a pending reply approval is filed for human review and
an `ingested` event is logged. Replaying a message with the same
(channel, id) is a no-op.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from reengine.core.exceptions import StoreError, ValidationError
from reengine.core.logging import get_structlog_logger
from reengine.db.csv_store import CsvStore
from reengine.schemas.records import (
    CHAT_CHANNELS,
    ActionType,
    Approval,
    Channel,
    ContactChannel,
    EventRow,
    Lead,
    LeadStatus,
    utc_now,
)
from reengine.services.approvals import ApprovalService

logger = get_structlog_logger(__name__)

# Channels whose senders resolve to a lead identity (email address or phone)
INGEST_CHANNELS = frozenset({Channel.EMAIL}) | CHAT_CHANNELS


class IngestMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    from_: str = Field(alias="from", min_length=1)
    to: str = ""
    subject: str = ""
    body: str = ""
    timestamp: str = Field(default_factory=utc_now)
    channel: Channel
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("from_")
    @classmethod
    def validate_sender(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("sender must not be blank")
        return v


@dataclass
class IngestResult:
    message_id: str
    lead: Optional[Lead] = None
    approval: Optional[Approval] = None
    events: List[EventRow] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    is_new_lead: bool = False
    skipped: bool = False


class MessageSource(Protocol):
    async def connect(self) -> None:
        ...

    async def fetch(self) -> List[IngestMessage]:
        ...

    async def disconnect(self) -> None:
        ...

    def is_connected(self) -> bool:
        ...


class MemoryMessageSource:
    """In-process queue of messages; drained on every fetch."""

    def __init__(self, messages: Optional[Sequence[IngestMessage]] = None) -> None:
        self._messages: List[IngestMessage] = list(messages or [])
        self._connected = False

    def add(self, message: IngestMessage) -> None:
        self._messages.append(message)

    async def connect(self) -> None:
        self._connected = True

    async def fetch(self) -> List[IngestMessage]:
        if not self._connected:
            raise RuntimeError("memory source not connected")
        messages, self._messages = self._messages, []
        return messages

    async def disconnect(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected


class JsonlMessageSource:
    """Reads messages from a JSON-lines inbox file (one message per line)."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._connected = False

    async def connect(self) -> None:
        if not self.path.exists():
            raise FileNotFoundError(str(self.path))
        self._connected = True

    async def fetch(self) -> List[IngestMessage]:
        if not self._connected:
            raise RuntimeError("jsonl source not connected")
        messages = []
        with open(self.path, encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    messages.append(IngestMessage.model_validate(json.loads(line)))
                except (ValueError, PydanticValidationError) as e:
                    logger.warning("ingest.jsonl_invalid_line", path=str(self.path), line=line_no, error=str(e)[:200])
        return messages

    async def disconnect(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected


def default_reply_draft(message: IngestMessage) -> str:
    return (
        "Thank you for your message. We'll get back to you shortly.\n"
        "\n"
        "Original message:\n"
        f"{message.body}"
    )


class IngestService:
    def __init__(self, store: CsvStore, approvals: ApprovalService) -> None:
        self.store = store
        self.approvals = approvals

    def create_event(self, lead_id: str, channel: str, event_type: str, meta: Optional[Dict[str, Any]] = None) -> EventRow:
        meta = dict(meta or {})
        return EventRow.create(
            event_type=event_type,
            lead_id=lead_id,
            channel=channel,
            campaign=str(meta.get("campaign", "")),
            message_id=str(meta.get("message_id", "")),
            meta=meta,
        )

    async def find_or_create_lead(self, message: IngestMessage) -> Tuple[Lead, bool]:
        sender = message.from_.strip()
        lead: Optional[Lead] = None

        if message.channel == Channel.EMAIL:
            lead = await self.store.find_lead_by_email(sender)
        elif message.channel in CHAT_CHANNELS:
            contact = await self.store.find_contact(message.channel.value, sender)
            if contact is not None:
                lead = next((c for c in await self.store.list_leads() if c.lead_id == contact.lead_id), None)
            if lead is None:
                lead = await self.store.find_lead_by_phone(sender)

        is_new = False
        if lead is None:
            lead, is_new = await self.store.create_lead(
                email=sender if message.channel == Channel.EMAIL else "",
                phone_e164=sender if message.channel in CHAT_CHANNELS else "",
                source=f"ingest_{message.channel.value}",
                status=LeadStatus.NEW,
            )
            if is_new:
                logger.info("ingest.lead_created", lead_id=lead.lead_id, channel=message.channel.value)

        if message.channel in CHAT_CHANNELS:
            await self.store.upsert_contact(lead.lead_id, ContactChannel(message.channel.value), sender)

        return lead, is_new

    async def create_reply_approval(self, lead: Lead, message: IngestMessage) -> Approval:
        approval = await self.approvals.create_draft(
            lead_id=lead.lead_id,
            channel=message.channel,
            action_type=ActionType.REPLY,
            draft_to=message.from_.strip(),
            draft_subject=message.subject or f"Re: {message.channel.value} message",
            draft_text=default_reply_draft(message),
            notes=f"Auto-generated from inbound {message.channel.value} message",
        )
        logger.info("ingest.reply_drafted", approval_id=approval.approval_id, lead_id=lead.lead_id)
        return approval

    async def ingest_message(self, message: IngestMessage) -> IngestResult:
        if await self.store.has_event("ingested", message.channel.value, message.id):
            logger.info("ingest.duplicate_skipped", message_id=message.id, channel=message.channel.value)
            return IngestResult(message_id=message.id, skipped=True)

        if message.channel not in INGEST_CHANNELS:
            raise ValidationError(
                f"Cannot ingest messages from channel={message.channel.value}",
                code="unsupported_channel",
                details={"message_id": message.id},
            )

        lead, is_new = await self.find_or_create_lead(message)
        approval = await self.create_reply_approval(lead, message)

        event = self.create_event(lead.lead_id, message.channel.value, "ingested", {
            "message_id": message.id,
            "subject": message.subject,
            "approval_id": approval.approval_id,
            "is_new_lead": is_new,
        })
        await self.store.append_event(event)

        return IngestResult(
            message_id=message.id,
            lead=lead,
            approval=approval,
            events=[event],
            is_new_lead=is_new,
        )

    async def run(self, source: MessageSource) -> List[IngestResult]:
        await source.connect()
        try:
            messages = await source.fetch()
            results = []
            for message in messages:
                try:
                    results.append(await self.ingest_message(message))
                except (StoreError, ValidationError, PydanticValidationError) as e:
                    logger.error("ingest.message_failed", message_id=message.id, error=str(e))
                    results.append(IngestResult(message_id=message.id, errors=[str(e)]))
        finally:
            await source.disconnect()

        logger.info(
            "ingest.run_complete",
            total=len(results),
            skipped=sum(1 for r in results if r.skipped),
            errors=sum(1 for r in results if r.errors),
        )
        return results
