import json

import pytest

from reengine.core.exceptions import ValidationError
from reengine.schemas.records import ActionType, ApprovalStatus
from reengine.services.approvals import ApprovalService
from reengine.services.ingest import (
    IngestMessage,
    IngestService,
    JsonlMessageSource,
    MemoryMessageSource,
    default_reply_draft,
)


def _message(**overrides):
    data = {
        "id": "msg_1",
        "from": "Jane@Example.com",
        "to": "agent@example.com",
        "subject": "Question about 12 Elm St",
        "body": "Is it still available?",
        "channel": "email",
    }
    data.update(overrides)
    return IngestMessage.model_validate(data)


@pytest.fixture
def ingest(store):
    return IngestService(store, ApprovalService(store, campaign="test"))


@pytest.mark.asyncio
async def test_email_creates_lead_and_pending_reply(ingest, store):
    result = await ingest.ingest_message(_message())

    assert result.is_new_lead is True
    assert result.lead.email == "jane@example.com"
    assert result.lead.source == "ingest_email"

    approval = result.approval
    assert approval.status == ApprovalStatus.PENDING
    assert approval.action_type == ActionType.REPLY
    assert approval.draft_to == "Jane@Example.com"
    assert approval.draft_subject == "Question about 12 Elm St"
    assert approval.draft_text.endswith("Original message:\nIs it still available?")
    assert approval.notes == "Auto-generated from inbound email message"

    ingested = [e for e in await store.list_events() if e.event_type == "ingested"]
    assert len(ingested) == 1
    assert ingested[0].message_id == "msg_1"
    assert ingested[0].meta["approval_id"] == approval.approval_id


@pytest.mark.asyncio
async def test_known_sender_reuses_lead(ingest, store):
    existing, _ = await store.create_lead(email="jane@example.com", first_name="Jane")

    result = await ingest.ingest_message(_message())

    assert result.is_new_lead is False
    assert result.lead.lead_id == existing.lead_id
    assert len(await store.list_leads()) == 1


@pytest.mark.asyncio
async def test_replay_is_skipped(ingest, store):
    await ingest.ingest_message(_message())
    again = await ingest.ingest_message(_message())

    assert again.skipped is True
    assert len(await store.list_approvals()) == 1


@pytest.mark.asyncio
async def test_same_id_on_another_channel_is_not_a_replay(ingest, store):
    await ingest.ingest_message(_message())
    result = await ingest.ingest_message(_message(channel="whatsapp", **{"from": "+14165550100"}))

    assert result.skipped is False
    assert len(await store.list_approvals()) == 2


@pytest.mark.asyncio
async def test_chat_message_maps_contact(ingest, store):
    result = await ingest.ingest_message(
        _message(id="wa_1", channel="whatsapp", subject="", **{"from": "+1 416 555 0100"})
    )

    assert result.lead.phone_e164 == "+14165550100"
    assert result.approval.draft_subject == "Re: whatsapp message"

    contacts = await store.list_contacts()
    assert [(c.lead_id, c.channel.value, c.external_id) for c in contacts] == [
        (result.lead.lead_id, "whatsapp", "+1 416 555 0100"),
    ]

    follow_up = await ingest.ingest_message(
        _message(id="wa_2", channel="whatsapp", **{"from": "+1 416 555 0100"})
    )
    assert follow_up.lead.lead_id == result.lead.lead_id
    assert len(await store.list_contacts()) == 1


@pytest.mark.asyncio
async def test_run_from_memory_source(ingest):
    source = MemoryMessageSource([_message(id="a"), _message(id="b"), _message(id="a")])

    results = await ingest.run(source)

    assert [r.skipped for r in results] == [False, False, True]
    assert not source.is_connected()


@pytest.mark.asyncio
async def test_run_from_jsonl_source_skips_bad_lines(ingest, store, tmp_path):
    inbox = tmp_path / "inbox.jsonl"
    lines = [
        json.dumps({"id": "1", "from": "a@example.com", "body": "hi", "channel": "email"}),
        "not json",
        json.dumps({"id": "2", "from": "b@example.com", "body": "hi", "channel": "pager"}),
        "",
        json.dumps({"id": "3", "from": "+14165550100", "body": "hola", "channel": "telegram"}),
    ]
    inbox.write_text("\n".join(lines) + "\n")

    results = await ingest.run(JsonlMessageSource(inbox))

    assert [r.message_id for r in results] == ["1", "3"]
    assert len(await store.list_leads()) == 2


@pytest.mark.asyncio
async def test_missing_jsonl_file(ingest, tmp_path):
    with pytest.raises(FileNotFoundError):
        await ingest.run(JsonlMessageSource(tmp_path / "nope.jsonl"))


def test_message_requires_sender():
    with pytest.raises(ValueError):
        IngestMessage.model_validate({"id": "1", "from": "", "channel": "email"})


def test_default_reply_draft():
    text = default_reply_draft(_message(body="Hello"))
    assert text.startswith("Thank you for your message.")
    assert text.endswith("Original message:\nHello")


def test_blank_sender_is_rejected_and_sender_is_stripped():
    with pytest.raises(ValueError):
        _message(**{"from": "   "})
    assert _message(**{"from": "  jane@example.com "}).from_ == "jane@example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize("channel", ["linkedin", "facebook"])
async def test_handle_channels_are_not_ingested(ingest, store, channel):
    with pytest.raises(ValidationError) as exc_info:
        await ingest.ingest_message(_message(id="m0", channel=channel, **{"from": "jane-doe"}))

    assert exc_info.value.code == "unsupported_channel"
    assert await store.list_leads() == []
    assert await store.list_approvals() == []


@pytest.mark.asyncio
async def test_run_continues_past_rejected_messages(ingest, store):
    source = MemoryMessageSource([
        _message(id="m0", channel="linkedin", **{"from": "jane-doe"}),
        _message(id="m1", channel="linkedin", **{"from": "jane-doe"}),
        _message(id="m2"),
    ])

    results = await ingest.run(source)

    assert [bool(r.errors) for r in results] == [True, True, False]
    assert len(await store.list_leads()) == 1
