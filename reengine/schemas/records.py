# reengine/schemas/records.py
from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from reengine.core.exceptions import FieldError, RecordValidationError


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Channel(str, Enum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    LINKEDIN = "linkedin"
    FACEBOOK = "facebook"


# Channels where the adapter only opens a composition surface for a human.
SEMI_AUTOMATIC_CHANNELS = frozenset({Channel.LINKEDIN, Channel.FACEBOOK})
CHAT_CHANNELS = frozenset({Channel.WHATSAPP, Channel.TELEGRAM})


class ContactChannel(str, Enum):
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"


class LeadStatus(str, Enum):
    NEW = "new"
    DRAFTED = "drafted"
    SENT = "sent"
    REPLIED = "replied"
    HOT = "hot"
    DNC = "dnc"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SENT = "sent"
    FAILED = "failed"
    APPROVED_OPENED = "approved_opened"
    SENT_MANUAL = "sent_manual"


TERMINAL_STATUSES = frozenset({
    ApprovalStatus.REJECTED,
    ApprovalStatus.SENT,
    ApprovalStatus.FAILED,
    ApprovalStatus.APPROVED_OPENED,
    ApprovalStatus.SENT_MANUAL,
})


class ActionType(str, Enum):
    SEND_EMAIL = "send_email"
    REPLY = "reply"
    DM = "dm"
    POST = "post"
    CONTACT_CAPTURE = "contact_capture"


class Record(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    def to_row(self) -> Dict[str, str]:
        return {k: "" if v is None else str(v) for k, v in self.model_dump(mode="json").items()}


class Lead(Record):
    lead_id: str = Field(min_length=1)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone_e164: str = ""
    city: str = ""
    province: str = ""
    source: str = ""
    tags: str = ""
    status: LeadStatus
    created_at: str


class Approval(Record):
    approval_id: str = Field(min_length=1)
    ts_created: str
    lead_id: str = ""
    channel: Channel
    action_type: ActionType
    draft_subject: str = ""
    draft_text: str = ""
    draft_to: str = ""
    status: ApprovalStatus
    approved_by: str = ""
    approved_at: str = ""
    notes: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class EventRow(Record):
    event_id: str = Field(min_length=1)
    ts: str
    lead_id: str = ""
    channel: str = ""
    event_type: str = Field(min_length=1)
    campaign: str = ""
    message_id: str = ""
    meta_json: str = "{}"

    @classmethod
    def create(
        cls,
        *,
        event_type: str,
        lead_id: str = "",
        channel: str = "",
        campaign: str = "",
        message_id: str = "",
        meta: Optional[Mapping[str, Any]] = None,
    ) -> "EventRow":
        return cls(
            event_id=f"evt_{uuid.uuid4().hex}",
            ts=utc_now(),
            lead_id=lead_id,
            channel=channel.value if isinstance(channel, Enum) else channel,
            event_type=event_type,
            campaign=campaign,
            message_id=message_id,
            meta_json=json.dumps(dict(meta or {}), default=str),
        )

    @property
    def meta(self) -> Dict[str, Any]:
        try:
            value = json.loads(self.meta_json or "{}")
        except ValueError:
            return {}
        return value if isinstance(value, dict) else {}


class ContactMap(Record):
    lead_id: str = Field(min_length=1)
    channel: ContactChannel
    external_id: str = Field(min_length=1)


class DncEntry(Record):
    value: str = Field(min_length=1)
    reason: str = ""
    ts_added: str


R = TypeVar("R", bound=Record)


def _field_errors(exc: PydanticValidationError) -> List[FieldError]:
    errors = []
    for err in exc.errors():
        loc = err.get("loc") or ("__root__",)
        errors.append(FieldError(field=str(loc[0]), message=err.get("msg", "invalid"), value=err.get("input")))
    return errors


def parse_row(model: Type[R], table: str, row: Mapping[str, str], row_number: Optional[int] = None) -> R:
    """
    Deserialize one table row into a typed record.

    Empty cells of optional fields fall back to their defaults; enum fields
    must hold one of the declared values exactly.
    """
    data = {k: v for k, v in row.items() if not (v == "" and k in model.model_fields and not model.model_fields[k].is_required())}
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise RecordValidationError(table, _field_errors(exc), row_number=row_number) from exc


def validate_record(model: Type[R], table: str, record: Any) -> R:
    """Re-validate a record (or mapping) before it is written."""
    payload = record.model_dump() if isinstance(record, BaseModel) else dict(record)
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise RecordValidationError(table, _field_errors(exc)) from exc
