import re

import pytest

from reengine.core.exceptions import InvalidTransitionError, NotFoundError
from reengine.schemas.records import ApprovalStatus, Channel
from reengine.services.approvals import TRANSITIONS, can_transition


def test_transition_table():
    assert can_transition(ApprovalStatus.PENDING, ApprovalStatus.APPROVED)
    assert can_transition(ApprovalStatus.PENDING, ApprovalStatus.REJECTED)
    assert can_transition(ApprovalStatus.APPROVED, ApprovalStatus.SENT)
    assert can_transition(ApprovalStatus.APPROVED, ApprovalStatus.SENT_MANUAL)

    assert not can_transition(ApprovalStatus.PENDING, ApprovalStatus.SENT)
    assert not can_transition(ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)
    assert not can_transition(ApprovalStatus.APPROVED, ApprovalStatus.PENDING)


def test_terminal_statuses_have_no_exits():
    terminal = set(ApprovalStatus) - set(TRANSITIONS)
    assert terminal == {
        ApprovalStatus.REJECTED,
        ApprovalStatus.SENT,
        ApprovalStatus.FAILED,
        ApprovalStatus.APPROVED_OPENED,
        ApprovalStatus.SENT_MANUAL,
    }
    for status in terminal:
        assert not any(can_transition(status, target) for target in ApprovalStatus)


@pytest.mark.asyncio
async def test_create_draft_is_pending_and_audited(approvals, store):
    lead, _ = await store.create_lead(email="jane@example.com")
    row = await approvals.create_draft(
        lead_id=lead.lead_id,
        channel=Channel.EMAIL,
        action_type="send_email",
        draft_to="jane@example.com",
        draft_text="Hi Jane",
        campaign="spring",
    )

    assert re.fullmatch(r"appr_[0-9a-f]{12}", row.approval_id)
    assert row.status == ApprovalStatus.PENDING
    assert row.notes == "campaign=spring"

    events = await store.list_events()
    assert [e.event_type for e in events] == ["draft_created"]
    assert events[0].campaign == "spring"
    assert events[0].meta == {"approval_id": row.approval_id, "to": "jane@example.com"}


@pytest.mark.asyncio
async def test_approve_sets_approver(approvals, make_draft):
    draft = await make_draft()
    row = await approvals.approve(draft.approval_id, by="alice")

    assert row.status == ApprovalStatus.APPROVED
    assert row.approved_by == "alice"
    assert row.approved_at
    assert (await approvals.get(draft.approval_id)).status == ApprovalStatus.APPROVED


@pytest.mark.asyncio
async def test_reject_records_reason(approvals, make_draft, store):
    draft = await make_draft()
    row = await approvals.reject(draft.approval_id, reason="tone is off", by="bob")

    assert row.status == ApprovalStatus.REJECTED
    assert row.notes == "tone is off"
    assert [e.event_type for e in await store.list_events()] == ["draft_created", "reject"]


@pytest.mark.asyncio
async def test_terminal_approval_is_never_mutated(approvals, make_draft):
    draft = await make_draft()
    await approvals.reject(draft.approval_id)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await approvals.approve(draft.approval_id)

    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {"approval_id": draft.approval_id, "from": "rejected", "to": "approved"}
    assert (await approvals.get(draft.approval_id)).status == ApprovalStatus.REJECTED


@pytest.mark.asyncio
async def test_approved_cannot_be_rejected(approvals, make_draft):
    draft = await make_draft(approve=True)

    with pytest.raises(InvalidTransitionError):
        await approvals.reject(draft.approval_id)


@pytest.mark.asyncio
async def test_sent_manual_only_from_approved(approvals, make_draft):
    pending = await make_draft()
    with pytest.raises(InvalidTransitionError):
        await approvals.mark_sent_manual(pending.approval_id)

    approved = await make_draft(approve=True)
    row = await approvals.mark_sent_manual(approved.approval_id, by="carol", note="called instead")

    assert row.status == ApprovalStatus.SENT_MANUAL
    assert "sent manually by carol" in row.notes
    assert row.notes.endswith(": called instead")


@pytest.mark.asyncio
async def test_retry_creates_new_pending_copy(approvals, make_draft):
    draft = await make_draft(draft_subject="Original subject")
    await approvals.reject(draft.approval_id)

    retry = await approvals.retry(draft.approval_id)

    assert retry.approval_id != draft.approval_id
    assert retry.status == ApprovalStatus.PENDING
    assert retry.notes == f"retry_of={draft.approval_id}"
    assert retry.draft_subject == "Original subject"
    assert (await approvals.get(draft.approval_id)).status == ApprovalStatus.REJECTED


@pytest.mark.asyncio
async def test_retry_refuses_live_approvals(approvals, make_draft):
    draft = await make_draft()
    with pytest.raises(InvalidTransitionError):
        await approvals.retry(draft.approval_id)


@pytest.mark.asyncio
async def test_unknown_approval(approvals):
    with pytest.raises(NotFoundError) as exc_info:
        await approvals.approve("appr_missing")
    assert exc_info.value.code == "approval_not_found"


@pytest.mark.asyncio
async def test_list_by_status(approvals, make_draft):
    a = await make_draft()
    b = await make_draft(approve=True)

    assert [r.approval_id for r in await approvals.list_by_status("pending")] == [a.approval_id]
    assert [r.approval_id for r in await approvals.list_by_status("approved")] == [b.approval_id]
    assert len(await approvals.list_by_status()) == 2


@pytest.mark.asyncio
async def test_create_draft_for_unknown_lead(approvals, store):
    with pytest.raises(NotFoundError) as exc_info:
        await approvals.create_draft(
            lead_id="lead_missing",
            channel=Channel.EMAIL,
            action_type="send_email",
            draft_to="jane@example.com",
            draft_text="Hi Jane",
        )

    assert exc_info.value.code == "lead_not_found"
    assert await store.list_approvals() == []
