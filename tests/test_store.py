import pytest

from reengine.core.exceptions import (
    HeaderMismatchError,
    NotFoundError,
    RecordValidationError,
    StorageWriteError,
)
from reengine.db.csv_store import CsvStore
from reengine.db.headers import APPROVALS, APPROVALS_HEADERS, LEADS, LEADS_HEADERS, TABLES
from reengine.schemas.records import Channel, ContactChannel, EventRow, LeadStatus
from reengine.utils import csv_io


@pytest.mark.asyncio
async def test_initialize_creates_every_table_with_exact_headers(store, tmp_path):
    await store.initialize()

    for table in TABLES:
        text = (tmp_path / table.filename).read_text()
        assert text == ",".join(table.headers) + "\n"


@pytest.mark.asyncio
async def test_missing_table_reads_as_empty(store):
    assert await store.list_leads() == []
    assert store.path(LEADS).exists()


@pytest.mark.asyncio
async def test_header_mismatch_is_fatal(store):
    reordered = list(LEADS_HEADERS)
    reordered[0], reordered[1] = reordered[1], reordered[0]
    store.path(LEADS).write_text(",".join(reordered) + "\n")

    with pytest.raises(HeaderMismatchError) as exc_info:
        await store.list_leads()

    assert exc_info.value.expected == list(LEADS_HEADERS)
    assert exc_info.value.found == reordered
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_extra_column_is_a_header_mismatch(store):
    store.path(APPROVALS).write_text(",".join(APPROVALS_HEADERS) + ",extra\n")

    with pytest.raises(HeaderMismatchError):
        await store.list_approvals()


@pytest.mark.asyncio
async def test_invalid_enum_value_is_rejected_with_row_number(store):
    row = {h: "" for h in APPROVALS_HEADERS}
    row.update(
        approval_id="appr_1",
        ts_created="2024-01-01T00:00:00.000Z",
        channel="carrier_pigeon",
        action_type="send_email",
        status="pending",
    )
    store.path(APPROVALS).write_text(csv_io.serialize(APPROVALS_HEADERS, [row]))

    with pytest.raises(RecordValidationError) as exc_info:
        await store.list_approvals()

    assert exc_info.value.row_number == 2
    assert [e.field for e in exc_info.value.errors] == ["channel"]


@pytest.mark.asyncio
async def test_status_is_not_coerced(store):
    row = {h: "" for h in APPROVALS_HEADERS}
    row.update(
        approval_id="appr_1",
        ts_created="2024-01-01T00:00:00.000Z",
        channel="email",
        action_type="send_email",
        status="APPROVED",
    )
    store.path(APPROVALS).write_text(csv_io.serialize(APPROVALS_HEADERS, [row]))

    with pytest.raises(RecordValidationError):
        await store.list_approvals()


@pytest.mark.asyncio
async def test_create_lead_dedups_on_email_case_insensitively(store):
    first, created = await store.create_lead(email="Jane@Example.com", source="import")
    again, created_again = await store.create_lead(email="  jane@example.COM ", first_name="Other")

    assert created is True
    assert created_again is False
    assert again.lead_id == first.lead_id
    assert len(await store.list_leads()) == 1


@pytest.mark.asyncio
async def test_create_lead_dedups_on_phone(store):
    first, _ = await store.create_lead(phone_e164="+1 (416) 555-0100")
    again, created = await store.create_lead(phone_e164="4165550100", email="new@example.com")

    assert first.phone_e164 == "+14165550100"
    assert created is False
    assert again.lead_id == first.lead_id


@pytest.mark.asyncio
async def test_distinct_leads_are_both_stored(store):
    await store.create_lead(email="a@example.com")
    await store.create_lead(email="b@example.com")

    leads = await store.list_leads()
    assert [lead.email for lead in leads] == ["a@example.com", "b@example.com"]
    assert all(lead.status == LeadStatus.NEW for lead in leads)


@pytest.mark.asyncio
async def test_get_lead_not_found(store):
    with pytest.raises(NotFoundError) as exc_info:
        await store.get_lead("lead_missing")
    assert exc_info.value.code == "lead_not_found"


@pytest.mark.asyncio
async def test_update_lead_status(store):
    lead, _ = await store.create_lead(email="a@example.com")
    await store.update_lead_status(lead.lead_id, LeadStatus.REPLIED)

    assert (await store.get_lead(lead.lead_id)).status == LeadStatus.REPLIED


@pytest.mark.asyncio
async def test_events_are_append_only_and_ordered(store):
    for i in range(3):
        await store.append_event(EventRow.create(event_type=f"e{i}", lead_id="lead_1", meta={"i": i}))
    await store.append_event(EventRow.create(event_type="other", lead_id="lead_2"))

    events = await store.list_events()
    assert [e.event_type for e in events] == ["e0", "e1", "e2", "other"]
    assert [e.meta["i"] for e in await store.list_events(lead_id="lead_1")] == [0, 1, 2]


@pytest.mark.asyncio
async def test_upsert_contact_keeps_pair_unique(store):
    await store.upsert_contact("lead_1", ContactChannel.WHATSAPP, "+14165550100")
    await store.upsert_contact("lead_2", ContactChannel.WHATSAPP, "+14165550100")
    await store.upsert_contact("lead_1", ContactChannel.TELEGRAM, "+14165550100")

    contacts = await store.list_contacts()
    assert len(contacts) == 2
    found = await store.find_contact("whatsapp", "+14165550100")
    assert found.lead_id == "lead_2"


@pytest.mark.asyncio
async def test_write_failure_is_wrapped(store, monkeypatch):
    async def broken_write(path, content):
        raise OSError("read-only filesystem")

    await store.initialize()
    monkeypatch.setattr(csv_io, "write", broken_write)

    with pytest.raises(StorageWriteError) as exc_info:
        await store.create_lead(email="a@example.com")
    assert exc_info.value.code == "storage_write_failed"
    assert exc_info.value.details["table"] == "leads"


@pytest.mark.asyncio
async def test_draft_text_whitespace_survives_reload(approvals, store):
    text = "  Hi Jane,\n\nStill looking in Elm St?\n  "
    row = await approvals.create_draft(
        channel=Channel.EMAIL,
        lead_id="",
        action_type="send_email",
        draft_to="jane@example.com",
        draft_text=text,
    )

    reloaded = await CsvStore(store.data_dir).list_approvals()

    assert [(r.approval_id, r.draft_text) for r in reloaded] == [(row.approval_id, text)]
