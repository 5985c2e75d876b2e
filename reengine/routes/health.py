# reengine/routes/health.py
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from reengine.core.config import settings
from reengine.core.logging import get_structlog_logger
from reengine.db.csv_store import CsvStore
from reengine.db.headers import TABLES
from reengine.db.session import get_store
from reengine.utils import csv_io

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])

STARTED_AT = time.monotonic()
VERSION = "1.0.0"


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    version: str
    timestamp: str
    uptime: float
    checks: Dict[str, Dict[str, str]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


async def check_tables(store: CsvStore) -> Dict[str, Dict[str, str]]:
    """Report each table as healthy, missing or unhealthy without creating it."""
    checks: Dict[str, Dict[str, str]] = {}
    for table in TABLES:
        path = store.path(table)
        if not await csv_io.file_exists(path):
            checks[table.name] = {"status": "missing", "file": str(path)}
            continue
        try:
            headers, rows = csv_io.parse(await csv_io.read(path))
        except OSError as e:
            checks[table.name] = {"status": "unhealthy", "error": str(e)}
            continue
        if tuple(headers) != tuple(table.headers):
            checks[table.name] = {"status": "unhealthy", "error": "header mismatch", "file": str(path)}
        else:
            checks[table.name] = {"status": "healthy", "rows": str(len(rows))}
    return checks


@router.get("/health", response_model=HealthCheckResponse, status_code=status.HTTP_200_OK)
async def health_check(store: CsvStore = Depends(get_store)):
    """Health check covering every table in the data directory."""
    checks = await check_tables(store)

    statuses = {c["status"] for c in checks.values()}
    if "unhealthy" in statuses:
        overall = "unhealthy"
    elif "missing" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"

    response = HealthCheckResponse(
        status=overall,
        service="reengine",
        environment=settings.environment,
        version=VERSION,
        timestamp=_now(),
        uptime=time.monotonic() - STARTED_AT,
        checks=checks,
    )

    if overall == "healthy":
        logger.info("health.check", status=overall)
    else:
        logger.warning("health.check", status=overall, checks=checks)
        if overall == "unhealthy":
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content=response.model_dump(),
            )

    return response


@router.get("/health/live", status_code=status.HTTP_200_OK)
async def liveness_probe():
    return {"status": "alive", "timestamp": _now()}
