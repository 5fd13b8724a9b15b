from .attendance import AttendanceEvent, AttendanceStatus, ATTENDED_STATUSES
from .attendance_pattern import AttendancePattern, TrendDirection
from .follow_up import (
    FollowUpSuggestion, FollowUpCategory, FollowUpPriority, FollowUpStatus,
    OPEN_STATUSES, PRIORITY_RANK
)

__all__ = [
    "AttendanceEvent",
    "AttendanceStatus",
    "ATTENDED_STATUSES",
    "AttendancePattern",
    "TrendDirection",
    "FollowUpSuggestion",
    "FollowUpCategory",
    "FollowUpPriority",
    "FollowUpStatus",
    "OPEN_STATUSES",
    "PRIORITY_RANK",
]
