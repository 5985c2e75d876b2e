# reengine/services/__init__.py
"""
Business logic services organized by domain functionality.
"""

from reengine.services.adapters import (
    ChannelAdapter,
    ChannelAdapters,
    SendResult,
    build_default_adapters,
)
from reengine.services.approvals import ApprovalService, can_transition
from reengine.services.dnc import DncCheckResult, DncService
from reengine.services.ingest import (
    IngestMessage,
    IngestResult,
    IngestService,
    JsonlMessageSource,
    MemoryMessageSource,
)
from reengine.services.router import RouterResult, RouterService

__all__ = [
    # Adapters
    "ChannelAdapter",
    "ChannelAdapters",
    "SendResult",
    "build_default_adapters",
    # Approvals
    "ApprovalService",
    "can_transition",
    # Do-not-contact
    "DncCheckResult",
    "DncService",
    # Ingestion
    "IngestMessage",
    "IngestResult",
    "IngestService",
    "JsonlMessageSource",
    "MemoryMessageSource",
    # Router
    "RouterResult",
    "RouterService",
]
