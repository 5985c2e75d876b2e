from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from reengine.core.logging import get_structlog_logger
from reengine.db.csv_store import CsvStore
from reengine.db.headers import DNC_HEADERS
from reengine.schemas.records import Approval, Channel, DncEntry, Lead, utc_now
from reengine.utils.normalization import looks_like_email, looks_like_phone, phone_key
from reengine.utils import csv_io

logger = get_structlog_logger(__name__)

_EMAIL_IN_TEXT = re.compile(r"[^\s@<>]+@[^\s@<>]+\.[^\s@<>]+")
_PHONE_IN_TEXT = re.compile(r"\+?\d[\d\s\-().]{5,}\d")


@dataclass(frozen=True)
class DncCheckResult:
    allowed: bool
    reason: str = ""
    entry: Optional[DncEntry] = None


def _value_key(value: str) -> str:
    return value.strip().lower()


class DncService:
    def __init__(self, store: CsvStore) -> None:
        self.store = store

    async def check_number(self, phone: str) -> DncCheckResult:
        if not phone:
            return DncCheckResult(allowed=True)

        wanted = phone_key(phone)
        for entry in await self.store.list_dnc():
            if wanted and phone_key(entry.value) == wanted:
                logger.info("dnc.number_blocked", phone=wanted, reason=entry.reason)
                return DncCheckResult(False, f"Number blocked by DNC: {entry.reason}", entry)
        return DncCheckResult(allowed=True)

    async def check_email(self, email: str) -> DncCheckResult:
        if not email:
            return DncCheckResult(allowed=True)

        wanted = _value_key(email)
        for entry in await self.store.list_dnc():
            if _value_key(entry.value) == wanted:
                logger.info("dnc.email_blocked", email=wanted, reason=entry.reason)
                return DncCheckResult(False, f"Email blocked by DNC: {entry.reason}", entry)
        return DncCheckResult(allowed=True)

    async def check_lead(self, lead: Lead) -> DncCheckResult:
        if lead.phone_e164:
            result = await self.check_number(lead.phone_e164)
            if not result.allowed:
                return result
        if lead.email:
            return await self.check_email(lead.email)
        return DncCheckResult(allowed=True)

    async def check_approval(self, approval: Approval) -> DncCheckResult:
        """Check the recipient of a draft according to its channel."""
        to = approval.draft_to.strip()
        if approval.channel == Channel.EMAIL:
            match = to if looks_like_email(to) else next(iter(_EMAIL_IN_TEXT.findall(to)), "")
            return await self.check_email(match)
        if approval.channel in (Channel.WHATSAPP, Channel.TELEGRAM):
            match = to if looks_like_phone(to) else next(iter(_PHONE_IN_TEXT.findall(to)), "")
            return await self.check_number(match)
        return DncCheckResult(allowed=True)

    async def add(self, value: str, reason: str = "", added_by: Optional[str] = None) -> DncEntry:
        entries = await self.store.list_dnc()
        existing = next((e for e in entries if _value_key(e.value) == _value_key(value)), None)
        if existing:
            logger.warning("dnc.already_listed", value=value, existing_reason=existing.reason)
            return existing

        entry = DncEntry(value=value.strip(), reason=reason or "Manual addition", ts_added=utc_now())
        entries.append(entry)
        await self.store.save_dnc(entries)
        logger.info("dnc.added", value=entry.value, reason=entry.reason, added_by=added_by)
        return entry

    async def remove(self, value: str) -> bool:
        entries = await self.store.list_dnc()
        kept = [e for e in entries if _value_key(e.value) != _value_key(value)]
        if len(kept) == len(entries):
            logger.warning("dnc.not_found", value=value)
            return False
        await self.store.save_dnc(kept)
        logger.info("dnc.removed", value=value)
        return True

    async def update_reason(self, value: str, reason: str) -> bool:
        entries = await self.store.list_dnc()
        entry = next((e for e in entries if _value_key(e.value) == _value_key(value)), None)
        if entry is None:
            logger.warning("dnc.not_found", value=value)
            return False
        entry.reason = reason
        await self.store.save_dnc(entries)
        return True

    async def bulk_add(self, items: Iterable[Mapping[str, str]], added_by: Optional[str] = None) -> Dict[str, int]:
        added = 0
        skipped = 0
        for item in items:
            value = (item.get("value") or "").strip()
            if not value:
                skipped += 1
                continue
            before = len(await self.store.list_dnc())
            await self.add(value, item.get("reason", ""), added_by=added_by)
            if len(await self.store.list_dnc()) > before:
                added += 1
            else:
                skipped += 1
        logger.info("dnc.bulk_added", added=added, skipped=skipped)
        return {"added": added, "skipped": skipped}

    async def stats(self) -> Dict[str, object]:
        entries = await self.store.list_dnc()
        by_reason: Dict[str, int] = {}
        emails = 0
        phones = 0
        for entry in entries:
            by_reason[entry.reason] = by_reason.get(entry.reason, 0) + 1
            if looks_like_email(entry.value):
                emails += 1
            elif looks_like_phone(entry.value):
                phones += 1
        return {
            "total_entries": len(entries),
            "by_reason": by_reason,
            "by_type": {"emails": emails, "phones": phones},
        }

    async def export_csv(self) -> str:
        entries: List[DncEntry] = await self.store.list_dnc()
        return csv_io.serialize(DNC_HEADERS, [e.to_row() for e in entries])
