from typing import List, Optional

import pytest

from reengine.db.csv_store import CsvStore
from reengine.schemas.records import ActionType, Approval, Channel
from reengine.services.adapters import ChannelAdapters, SendResult
from reengine.services.approvals import ApprovalService


class FakeAdapter:
    """Records every approval it is asked to send."""

    def __init__(self, result: Optional[SendResult] = None, error: Optional[Exception] = None):
        self.result = result or SendResult(ok=True, message_id="fake_1")
        self.error = error
        self.calls: List[Approval] = []

    async def send(self, approval: Approval) -> SendResult:
        self.calls.append(approval)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def store(tmp_path) -> CsvStore:
    return CsvStore(tmp_path)


@pytest.fixture
def approvals(store) -> ApprovalService:
    return ApprovalService(store, campaign="test")


@pytest.fixture
def fake_adapters():
    adapters = {channel: FakeAdapter() for channel in Channel}
    return adapters


@pytest.fixture
def registry(fake_adapters) -> ChannelAdapters:
    return ChannelAdapters(fake_adapters)


@pytest.fixture
def make_draft(approvals):
    async def _make(channel=Channel.EMAIL, to="jane@example.com", approve=False, **kwargs):
        row = await approvals.create_draft(
            lead_id=kwargs.pop("lead_id", ""),
            channel=channel,
            action_type=kwargs.pop("action_type", ActionType.SEND_EMAIL),
            draft_to=to,
            draft_text=kwargs.pop("draft_text", "Hi there"),
            draft_subject=kwargs.pop("draft_subject", "Hello"),
            **kwargs,
        )
        if approve:
            row = await approvals.approve(row.approval_id, by="tester")
        return row

    return _make
