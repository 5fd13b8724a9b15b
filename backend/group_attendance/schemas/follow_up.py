from pydantic import BaseModel, Field, validator
from datetime import datetime
from typing import Optional, Dict, Any
import json

from group_attendance.models.follow_up import FollowUpCategory, FollowUpPriority, FollowUpStatus


class FollowUpResponse(BaseModel):
    id: int
    group_id: str
    participant_id: str
    category: FollowUpCategory
    priority: FollowUpPriority
    title: str
    description: str
    suggested_action: str
    trigger_reason: str
    trigger_data: Dict[str, Any] = {}
    due_date: Optional[datetime] = None
    status: FollowUpStatus
    assigned_to: Optional[str] = None
    contact_method: Optional[str] = None
    contact_notes: Optional[str] = None
    contacted_at: Optional[datetime] = None
    resolution: Optional[str] = None
    outcome: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @validator("trigger_data", pre=True)
    def parse_trigger_data(cls, v):
        if v is None:
            return {}
        if isinstance(v, str):
            return json.loads(v)
        return v

    class Config:
        from_attributes = True


class FollowUpUpdateRequest(BaseModel):
    status: Optional[FollowUpStatus] = None
    assigned_to: Optional[str] = Field(None, max_length=64)
    contact_method: Optional[str] = Field(None, max_length=50)
    contact_notes: Optional[str] = None
    contacted_at: Optional[datetime] = None
    resolution: Optional[str] = None
    outcome: Optional[str] = Field(None, max_length=200)
    resolved_at: Optional[datetime] = None

    @validator("status", pre=True)
    def normalize_status(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v
