# reengine/schemas/api.py
from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field

from reengine.schemas.records import ActionType, Channel


class ApprovalCreateRequest(BaseModel):
    lead_id: str = Field(default="", max_length=128)
    channel: Channel
    action_type: ActionType
    draft_to: str = Field(min_length=1, max_length=320)
    draft_subject: str = Field(default="", max_length=500)
    draft_text: str = Field(min_length=1, max_length=10000)
    campaign: Optional[str] = Field(default=None, max_length=100)


class ApproveRequest(BaseModel):
    by: Optional[str] = Field(default=None, max_length=100)


class RejectRequest(BaseModel):
    reason: str = Field(default="rejected", max_length=1000)
    by: Optional[str] = Field(default=None, max_length=100)


class SentManualRequest(BaseModel):
    by: Optional[str] = Field(default=None, max_length=100)
    note: str = Field(default="", max_length=1000)


class RouterRunResponse(BaseModel):
    processed: int
    sent: int
    failed: int
    opened: int


class DncAddRequest(BaseModel):
    value: str = Field(min_length=1, max_length=320)
    reason: str = Field(default="", max_length=500)


class DncStatsResponse(BaseModel):
    total_entries: int
    by_reason: Dict[str, int]
    by_type: Dict[str, int]
