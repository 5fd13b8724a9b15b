"""
Storage interface consumed by the attendance engine.

Services receive an AttendanceStore instead of reaching for a database client,
so they can run against any backend that implements these repositories.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional, List

from group_attendance.models.attendance import AttendanceEvent, AttendanceStatus
from group_attendance.models.attendance_pattern import AttendancePattern
from group_attendance.models.follow_up import (
    FollowUpSuggestion, FollowUpCategory, FollowUpPriority, FollowUpStatus
)
from group_attendance.services.pattern_aggregator import PatternSnapshot


class AttendanceEventRepository(ABC):
    """Append/overwrite log keyed by (group, participant, class date)."""

    @abstractmethod
    async def upsert(
        self,
        group_id: str,
        participant_id: str,
        class_date: date,
        status: AttendanceStatus,
        note: Optional[str] = None,
        recorded_by: Optional[str] = None
    ) -> AttendanceEvent:
        """Create the event or overwrite status/note/recorded_by of the existing one."""
        pass

    @abstractmethod
    async def list_for_participant(self, group_id: str, participant_id: str) -> List[AttendanceEvent]:
        """All events for the pair, newest class date first."""
        pass

    @abstractmethod
    async def list_for_group(
        self,
        group_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[AttendanceEvent]:
        pass

    @abstractmethod
    async def list_since(self, since: date, group_id: Optional[str] = None) -> List[AttendanceEvent]:
        pass

    @abstractmethod
    async def count_groups(self) -> int:
        pass


class AttendancePatternRepository(ABC):

    @abstractmethod
    async def get(self, group_id: str, participant_id: str) -> Optional[AttendancePattern]:
        pass

    @abstractmethod
    async def upsert(self, snapshot: PatternSnapshot) -> AttendancePattern:
        """Create the row or overwrite every derived field in place."""
        pass

    @abstractmethod
    async def count_needing_attention(self) -> int:
        pass


class FollowUpRepository(ABC):

    @abstractmethod
    async def find_open(
        self,
        group_id: str,
        participant_id: str,
        category: FollowUpCategory
    ) -> Optional[FollowUpSuggestion]:
        """An existing PENDING or IN_PROGRESS suggestion of this category, if any."""
        pass

    @abstractmethod
    async def find_created_since(
        self,
        group_id: str,
        participant_id: str,
        category: FollowUpCategory,
        since: datetime
    ) -> Optional[FollowUpSuggestion]:
        """Any suggestion of this category created at or after `since`, whatever its status."""
        pass

    @abstractmethod
    async def create(self, **data) -> FollowUpSuggestion:
        pass

    @abstractmethod
    async def get(self, suggestion_id: int) -> Optional[FollowUpSuggestion]:
        pass

    @abstractmethod
    async def list(
        self,
        group_id: Optional[str] = None,
        status: Optional[FollowUpStatus] = None,
        priority: Optional[FollowUpPriority] = None,
        assigned_to: Optional[str] = None
    ) -> List[FollowUpSuggestion]:
        pass

    @abstractmethod
    async def count_open(self, group_id: Optional[str] = None) -> int:
        pass

    @abstractmethod
    async def save(self, suggestion: FollowUpSuggestion) -> FollowUpSuggestion:
        pass


class AttendanceStore(ABC):
    """Bundle of the three repositories sharing one unit of work."""

    events: AttendanceEventRepository
    patterns: AttendancePatternRepository
    suggestions: FollowUpRepository

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Discard uncommitted work. Instances committed earlier stay readable."""
        pass
