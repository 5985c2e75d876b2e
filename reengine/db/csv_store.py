# reengine/db/csv_store.py
"""
File-backed record store.

Each table is a delimited file with a mandatory, order-exact header row.
Reads load the whole table; writes re-serialize the whole table and replace
the file atomically. A single writer per table is assumed.
"""
from __future__ import annotations

import uuid
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from reengine.core.exceptions import HeaderMismatchError, NotFoundError, StorageWriteError
from reengine.core.logging import get_structlog_logger
from reengine.db.headers import (
    APPROVALS,
    CONTACTS,
    DNC,
    EVENTS,
    LEADS,
    TABLES,
    TableSchema,
    validate_headers,
)
from reengine.schemas.records import (
    Approval,
    ContactChannel,
    ContactMap,
    DncEntry,
    EventRow,
    Lead,
    LeadStatus,
    Record,
    parse_row,
    utc_now,
    validate_record,
)
from reengine.utils.normalization import email_key, identity_keys, phone_key
from reengine.utils import csv_io

logger = get_structlog_logger(__name__)


def new_lead_id() -> str:
    return f"lead_{uuid.uuid4().hex}"


class CsvStore:
    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)

    def path(self, table: TableSchema) -> Path:
        return self.data_dir / table.filename

    async def initialize(self) -> None:
        """Create any missing table and check the headers of existing ones."""
        for table in TABLES:
            await self._load(table)

    # ------------------------------------------------------------------
    # Generic table access
    # ------------------------------------------------------------------

    async def _load(self, table: TableSchema) -> List[Record]:
        file = self.path(table)
        await csv_io.ensure_table(file, table.headers)

        headers, rows = csv_io.parse(await csv_io.read(file))
        try:
            validate_headers(headers, table.headers, str(file))
        except HeaderMismatchError:
            logger.error("store.header_mismatch", table=table.name, file=str(file), found=headers)
            raise

        # Row numbers are 1-based and count the header line
        return [parse_row(table.model, table.name, row, row_number=i) for i, row in enumerate(rows, start=2)]

    async def _save(self, table: TableSchema, records: Sequence[Record]) -> None:
        validated = [validate_record(table.model, table.name, r) for r in records]
        content = csv_io.serialize(table.headers, [r.to_row() for r in validated])
        file = self.path(table)
        try:
            await csv_io.write(file, content)
        except OSError as e:
            logger.error("store.write_failed", table=table.name, file=str(file), error=str(e))
            raise StorageWriteError(
                f"Failed to write {file}: {e}",
                details={"table": table.name, "file": str(file)},
            ) from e
        logger.debug("store.saved", table=table.name, rows=len(validated))

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    async def list_leads(self) -> List[Lead]:
        return await self._load(LEADS)  # type: ignore[return-value]

    async def save_leads(self, leads: Sequence[Lead]) -> None:
        await self._save(LEADS, leads)

    async def get_lead(self, lead_id: str) -> Lead:
        for lead in await self.list_leads():
            if lead.lead_id == lead_id:
                return lead
        raise NotFoundError(f"lead_id not found: {lead_id}", code="lead_not_found")

    async def find_lead_by_email(self, email: str) -> Optional[Lead]:
        key = email_key(email)
        if not key:
            return None
        return next((lead for lead in await self.list_leads() if email_key(lead.email) == key), None)

    async def find_lead_by_phone(self, phone: str) -> Optional[Lead]:
        key = phone_key(phone)
        if not key:
            return None
        return next((lead for lead in await self.list_leads() if phone_key(lead.phone_e164) == key), None)

    async def create_lead(
        self,
        *,
        first_name: str = "",
        last_name: str = "",
        email: str = "",
        phone_e164: str = "",
        city: str = "",
        province: str = "",
        source: str = "",
        tags: str = "",
        status: LeadStatus = LeadStatus.NEW,
        lead_id: Optional[str] = None,
    ) -> Tuple[Lead, bool]:
        """
        Create a lead unless one already owns the email or phone.

        Returns (lead, created). An identity collision is not an error: the
        existing lead is returned with created=False.
        """
        leads = await self.list_leads()

        keys = identity_keys(email, phone_e164)
        for existing in leads:
            if keys.matches(identity_keys(existing.email, existing.phone_e164)):
                logger.info("store.lead_reused", lead_id=existing.lead_id)
                return existing, False

        lead = Lead(
            lead_id=lead_id or new_lead_id(),
            first_name=first_name,
            last_name=last_name,
            email=keys.email,
            phone_e164=keys.phone,
            city=city,
            province=province,
            source=source,
            tags=tags,
            status=status,
            created_at=utc_now(),
        )
        leads.append(lead)
        await self.save_leads(leads)
        logger.info("store.lead_created", lead_id=lead.lead_id, source=source)
        return lead, True

    async def update_lead_status(self, lead_id: str, status: LeadStatus) -> Lead:
        leads = await self.list_leads()
        for lead in leads:
            if lead.lead_id == lead_id:
                lead.status = status
                await self.save_leads(leads)
                return lead
        raise NotFoundError(f"lead_id not found: {lead_id}", code="lead_not_found")

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    async def list_approvals(self) -> List[Approval]:
        return await self._load(APPROVALS)  # type: ignore[return-value]

    async def save_approvals(self, approvals: Sequence[Approval]) -> None:
        await self._save(APPROVALS, approvals)

    # ------------------------------------------------------------------
    # Events (append-only)
    # ------------------------------------------------------------------

    async def list_events(self, lead_id: Optional[str] = None) -> List[EventRow]:
        events: List[EventRow] = await self._load(EVENTS)  # type: ignore[assignment]
        if lead_id is None:
            return events
        return [e for e in events if e.lead_id == lead_id]

    async def append_event(self, event: EventRow) -> EventRow:
        parsed = validate_record(EventRow, EVENTS.name, event)
        events = await self.list_events()
        events.append(parsed)
        await self._save(EVENTS, events)
        return parsed

    async def has_event(self, event_type: str, channel: str, message_id: str) -> bool:
        return any(
            e.event_type == event_type and e.channel == channel and e.message_id == message_id
            for e in await self.list_events()
        )

    # ------------------------------------------------------------------
    # Contacts
    # ------------------------------------------------------------------

    async def list_contacts(self) -> List[ContactMap]:
        return await self._load(CONTACTS)  # type: ignore[return-value]

    async def save_contacts(self, contacts: Sequence[ContactMap]) -> None:
        await self._save(CONTACTS, contacts)

    async def find_contact(self, channel: ContactChannel | str, external_id: str) -> Optional[ContactMap]:
        channel = ContactChannel(channel)
        return next(
            (c for c in await self.list_contacts() if c.channel == channel and c.external_id == external_id),
            None,
        )

    async def upsert_contact(self, lead_id: str, channel: ContactChannel | str, external_id: str) -> ContactMap:
        """Map (channel, external_id) to a lead; the pair stays unique."""
        channel = ContactChannel(channel)
        contacts = await self.list_contacts()
        for contact in contacts:
            if contact.channel == channel and contact.external_id == external_id:
                if contact.lead_id != lead_id:
                    contact.lead_id = lead_id
                    await self.save_contacts(contacts)
                return contact

        contact = ContactMap(lead_id=lead_id, channel=channel, external_id=external_id)
        contacts.append(contact)
        await self.save_contacts(contacts)
        return contact

    # ------------------------------------------------------------------
    # Do-not-contact
    # ------------------------------------------------------------------

    async def list_dnc(self) -> List[DncEntry]:
        return await self._load(DNC)  # type: ignore[return-value]

    async def save_dnc(self, entries: Sequence[DncEntry]) -> None:
        await self._save(DNC, entries)
