# reengine/schemas/__init__.py
"""
Pydantic record types for the file-backed tables.
"""

from reengine.schemas.records import (
    ActionType,
    Approval,
    ApprovalStatus,
    Channel,
    ContactChannel,
    ContactMap,
    DncEntry,
    EventRow,
    Lead,
    LeadStatus,
    TERMINAL_STATUSES,
)

__all__ = [
    "ActionType",
    "Approval",
    "ApprovalStatus",
    "Channel",
    "ContactChannel",
    "ContactMap",
    "DncEntry",
    "EventRow",
    "Lead",
    "LeadStatus",
    "TERMINAL_STATUSES",
]
