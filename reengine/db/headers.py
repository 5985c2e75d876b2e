# reengine/db/headers.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple, Type

from reengine.core.exceptions import HeaderMismatchError
from reengine.schemas.records import Approval, ContactMap, DncEntry, EventRow, Lead, Record

LEADS_HEADERS: Tuple[str, ...] = (
    "lead_id",
    "first_name",
    "last_name",
    "email",
    "phone_e164",
    "city",
    "province",
    "source",
    "tags",
    "status",
    "created_at",
)

APPROVALS_HEADERS: Tuple[str, ...] = (
    "approval_id",
    "ts_created",
    "lead_id",
    "channel",
    "action_type",
    "draft_subject",
    "draft_text",
    "draft_to",
    "status",
    "approved_by",
    "approved_at",
    "notes",
)

EVENTS_HEADERS: Tuple[str, ...] = (
    "event_id",
    "ts",
    "lead_id",
    "channel",
    "event_type",
    "campaign",
    "message_id",
    "meta_json",
)

CONTACTS_HEADERS: Tuple[str, ...] = ("lead_id", "channel", "external_id")
DNC_HEADERS: Tuple[str, ...] = ("value", "reason", "ts_added")


@dataclass(frozen=True)
class TableSchema:
    name: str
    filename: str
    headers: Tuple[str, ...]
    model: Type[Record]


LEADS = TableSchema("leads", "leads.csv", LEADS_HEADERS, Lead)
APPROVALS = TableSchema("approvals", "approvals.csv", APPROVALS_HEADERS, Approval)
EVENTS = TableSchema("events", "events.csv", EVENTS_HEADERS, EventRow)
CONTACTS = TableSchema("contacts", "contacts.csv", CONTACTS_HEADERS, ContactMap)
DNC = TableSchema("dnc", "dnc.csv", DNC_HEADERS, DncEntry)

TABLES = (LEADS, APPROVALS, EVENTS, CONTACTS, DNC)


def validate_headers(found: Sequence[str], expected: Sequence[str], file: str) -> None:
    """Exact, order-sensitive header check. Tables are never auto-migrated."""
    if list(found) != list(expected):
        raise HeaderMismatchError(file, list(expected), list(found))
