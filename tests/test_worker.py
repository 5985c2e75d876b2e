import pytest

from reengine.core.exceptions import StorageWriteError
from reengine.schemas.records import ApprovalStatus
from reengine.utils import csv_io
from workers.router_worker import build_router, run_pass


@pytest.mark.asyncio
async def test_run_pass_dispatches_approved(store, registry, make_draft):
    await make_draft(approve=True)

    result = await run_pass(build_router(store, registry))

    assert result.sent == 1
    assert [a.status for a in await store.list_approvals()] == [ApprovalStatus.SENT]


@pytest.mark.asyncio
async def test_run_pass_propagates_storage_failures(store, registry, make_draft, monkeypatch):
    await make_draft(approve=True)

    async def broken_write(path, content):
        raise OSError("disk full")

    monkeypatch.setattr(csv_io, "write", broken_write)

    with pytest.raises(StorageWriteError):
        await run_pass(build_router(store, registry))
