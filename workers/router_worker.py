"""
Router worker: dispatches approved drafts.

    python workers/router_worker.py            # one pass
    python workers/router_worker.py 60         # a pass every 60 seconds

A storage failure stops the worker; per-approval failures are recorded on the
approval and the loop carries on.
"""
import asyncio
import sys
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reengine.core.config import settings
from reengine.core.exceptions import StoreError
from reengine.core.logging import configure_structlog, get_structlog_logger
from reengine.db.csv_store import CsvStore
from reengine.services.adapters import ChannelAdapters, build_default_adapters
from reengine.services.dnc import DncService
from reengine.services.router import RouterResult, RouterService

configure_structlog()
logger = get_structlog_logger()


def build_router(store: CsvStore, adapters: Optional[ChannelAdapters] = None) -> RouterService:
    return RouterService(
        store,
        adapters or build_default_adapters(settings),
        dnc=DncService(store) if settings.router_enforce_dnc else None,
    )


async def run_pass(service: RouterService, max: Optional[int] = None) -> RouterResult:
    try:
        result = await service.process_approved(max=max)
    except StoreError as e:
        logger.error("router_worker.store_error", code=e.code, message=e.message)
        raise
    if result.processed:
        logger.info("router_worker.pass_complete", **result.to_dict())
    return result


async def worker_main(interval: Optional[float] = None) -> None:
    logger.info("router_worker.starting", data_dir=settings.data_dir, interval=interval)

    store = CsvStore(settings.data_dir)
    await store.initialize()
    service = build_router(store)

    await run_pass(service)
    while interval:
        await asyncio.sleep(interval)
        await run_pass(service)

    logger.info("router_worker.completed")


if __name__ == "__main__":
    asyncio.run(worker_main(float(sys.argv[1]) if len(sys.argv) > 1 else None))
