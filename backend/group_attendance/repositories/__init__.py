from .base import (
    AttendanceEventRepository, AttendancePatternRepository, FollowUpRepository,
    AttendanceStore
)
from .sqlalchemy_store import SQLAlchemyAttendanceStore

__all__ = [
    "AttendanceEventRepository",
    "AttendancePatternRepository",
    "FollowUpRepository",
    "AttendanceStore",
    "SQLAlchemyAttendanceStore",
]
