"""
Follow-up suggestion model: outreach recommendations created by the rule engine
and worked through by group leaders.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum as SQLEnum, Index
import enum
import json
from datetime import datetime
from typing import Dict, Any

from group_attendance.core.database import Base


class FollowUpCategory(str, enum.Enum):
    """Trigger types that can produce a follow-up."""
    CONSECUTIVE_ABSENCES = "CONSECUTIVE_ABSENCES"
    LOW_ATTENDANCE_RATE = "LOW_ATTENDANCE_RATE"
    DECLINING_TREND = "DECLINING_TREND"
    FIRST_TIME_ABSENCE = "FIRST_TIME_ABSENCE"
    LONG_TERM_ABSENT = "LONG_TERM_ABSENT"


class FollowUpPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class FollowUpStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    CONTACTED = "CONTACTED"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


OPEN_STATUSES = (FollowUpStatus.PENDING, FollowUpStatus.IN_PROGRESS)

# Sort rank, most pressing first
PRIORITY_RANK = {
    FollowUpPriority.URGENT: 0,
    FollowUpPriority.HIGH: 1,
    FollowUpPriority.MEDIUM: 2,
    FollowUpPriority.LOW: 3,
}


class FollowUpSuggestion(Base):
    """
    A suggested outreach action for one participant in one group.
    At most one open suggestion per (participant, group, category) is created
    by the rule engine; there is no database constraint backing that.
    """
    __tablename__ = "follow_up_suggestions"
    __table_args__ = (
        Index("ix_follow_up_pair_category", "group_id", "participant_id", "category"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Target information
    group_id = Column(String(64), nullable=False, index=True)
    participant_id = Column(String(64), nullable=False, index=True)

    # Classification
    category = Column(SQLEnum(FollowUpCategory), nullable=False)
    priority = Column(SQLEnum(FollowUpPriority), nullable=False)

    # Content
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    suggested_action = Column(Text, nullable=False)

    # Trigger audit
    trigger_reason = Column(String(500), nullable=False)
    trigger_data = Column(Text, nullable=True)  # JSON snapshot of evaluated inputs

    due_date = Column(DateTime, nullable=True)

    # Workflow
    status = Column(SQLEnum(FollowUpStatus), nullable=False, default=FollowUpStatus.PENDING, index=True)
    assigned_to = Column(String(64), nullable=True)

    contact_method = Column(String(50), nullable=True)
    contact_notes = Column(Text, nullable=True)
    contacted_at = Column(DateTime, nullable=True)

    resolution = Column(Text, nullable=True)
    outcome = Column(String(200), nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    def set_trigger_data(self, data: Dict[str, Any]):
        """Set trigger snapshot as JSON."""
        self.trigger_data = json.dumps(data, default=str)

    def get_trigger_data(self) -> Dict[str, Any]:
        """Get trigger snapshot from JSON."""
        if self.trigger_data:
            return json.loads(self.trigger_data)
        return {}

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES
