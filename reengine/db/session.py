# reengine/db/session.py
from __future__ import annotations

from functools import lru_cache

from reengine.core.config import settings
from reengine.db.csv_store import CsvStore
from reengine.services.adapters import ChannelAdapters, build_default_adapters


def get_store() -> CsvStore:
    """FastAPI dependency for the file-backed store."""
    return CsvStore(settings.data_dir)


@lru_cache(maxsize=1)
def get_adapters() -> ChannelAdapters:
    """FastAPI dependency for the channel adapter registry."""
    return build_default_adapters(settings)
