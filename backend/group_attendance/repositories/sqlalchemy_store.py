"""
SQLAlchemy (asyncio) implementation of the attendance storage interface.
"""
import logging
from datetime import date, datetime
from typing import Optional, List

from sqlalchemy import select, and_, or_, func, case, distinct
from sqlalchemy.ext.asyncio import AsyncSession

from group_attendance.models.attendance import AttendanceEvent, AttendanceStatus
from group_attendance.models.attendance_pattern import AttendancePattern, TrendDirection
from group_attendance.models.follow_up import (
    FollowUpSuggestion, FollowUpCategory, FollowUpPriority, FollowUpStatus,
    OPEN_STATUSES, PRIORITY_RANK
)
from group_attendance.repositories.base import (
    AttendanceEventRepository, AttendancePatternRepository, FollowUpRepository,
    AttendanceStore
)
from group_attendance.services.pattern_aggregator import PatternSnapshot

logger = logging.getLogger(__name__)

# Derived columns copied verbatim from a snapshot on every upsert
PATTERN_FIELDS = (
    "total_classes_held",
    "total_present",
    "total_absent",
    "total_excused",
    "total_late",
    "attendance_rate",
    "consecutive_absences",
    "consecutive_presences",
    "prior_presence_streak",
    "last_attendance_date",
    "last_attendance_status",
    "last_4_weeks_rate",
    "last_8_weeks_rate",
    "trend_direction",
    "last_calculated_at",
)


class SQLAlchemyEventRepository(AttendanceEventRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def upsert(
        self,
        group_id: str,
        participant_id: str,
        class_date: date,
        status: AttendanceStatus,
        note: Optional[str] = None,
        recorded_by: Optional[str] = None
    ) -> AttendanceEvent:
        result = await self.db.execute(
            select(AttendanceEvent).where(
                and_(
                    AttendanceEvent.group_id == group_id,
                    AttendanceEvent.participant_id == participant_id,
                    AttendanceEvent.class_date == class_date
                )
            )
        )
        event = result.scalar_one_or_none()

        if event is None:
            event = AttendanceEvent(
                group_id=group_id,
                participant_id=participant_id,
                class_date=class_date,
                status=status,
                note=note,
                recorded_by=recorded_by
            )
            self.db.add(event)
        else:
            event.status = status
            event.note = note
            event.recorded_by = recorded_by

        await self.db.flush()
        return event

    async def list_for_participant(self, group_id: str, participant_id: str) -> List[AttendanceEvent]:
        result = await self.db.execute(
            select(AttendanceEvent)
            .where(
                and_(
                    AttendanceEvent.group_id == group_id,
                    AttendanceEvent.participant_id == participant_id
                )
            )
            .order_by(AttendanceEvent.class_date.desc())
        )
        return list(result.scalars().all())

    async def list_for_group(
        self,
        group_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[AttendanceEvent]:
        conditions = [AttendanceEvent.group_id == group_id]
        if start_date:
            conditions.append(AttendanceEvent.class_date >= start_date)
        if end_date:
            conditions.append(AttendanceEvent.class_date <= end_date)

        result = await self.db.execute(
            select(AttendanceEvent)
            .where(and_(*conditions))
            .order_by(AttendanceEvent.class_date.desc(), AttendanceEvent.participant_id)
        )
        return list(result.scalars().all())

    async def list_since(self, since: date, group_id: Optional[str] = None) -> List[AttendanceEvent]:
        query = select(AttendanceEvent).where(AttendanceEvent.class_date >= since)
        if group_id:
            query = query.where(AttendanceEvent.group_id == group_id)

        result = await self.db.execute(query.order_by(AttendanceEvent.class_date))
        return list(result.scalars().all())

    async def count_groups(self) -> int:
        result = await self.db.execute(
            select(func.count(distinct(AttendanceEvent.group_id)))
        )
        return result.scalar_one()


class SQLAlchemyPatternRepository(AttendancePatternRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, group_id: str, participant_id: str) -> Optional[AttendancePattern]:
        result = await self.db.execute(
            select(AttendancePattern).where(
                and_(
                    AttendancePattern.group_id == group_id,
                    AttendancePattern.participant_id == participant_id
                )
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, snapshot: PatternSnapshot) -> AttendancePattern:
        pattern = await self.get(snapshot.group_id, snapshot.participant_id)
        if pattern is None:
            pattern = AttendancePattern(
                group_id=snapshot.group_id,
                participant_id=snapshot.participant_id
            )
            self.db.add(pattern)

        for field in PATTERN_FIELDS:
            setattr(pattern, field, getattr(snapshot, field))

        await self.db.flush()
        return pattern

    async def count_needing_attention(self) -> int:
        result = await self.db.execute(
            select(func.count(AttendancePattern.id)).where(
                or_(
                    AttendancePattern.consecutive_absences >= 3,
                    and_(
                        AttendancePattern.attendance_rate < 50,
                        AttendancePattern.total_classes_held >= 4
                    ),
                    AttendancePattern.trend_direction == TrendDirection.DECLINING
                )
            )
        )
        return result.scalar_one()


class SQLAlchemyFollowUpRepository(FollowUpRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    def _pair_category(self, group_id: str, participant_id: str, category: FollowUpCategory):
        return and_(
            FollowUpSuggestion.group_id == group_id,
            FollowUpSuggestion.participant_id == participant_id,
            FollowUpSuggestion.category == category
        )

    async def find_open(
        self,
        group_id: str,
        participant_id: str,
        category: FollowUpCategory
    ) -> Optional[FollowUpSuggestion]:
        result = await self.db.execute(
            select(FollowUpSuggestion)
            .where(
                self._pair_category(group_id, participant_id, category),
                FollowUpSuggestion.status.in_(OPEN_STATUSES)
            )
            .order_by(FollowUpSuggestion.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_created_since(
        self,
        group_id: str,
        participant_id: str,
        category: FollowUpCategory,
        since: datetime
    ) -> Optional[FollowUpSuggestion]:
        result = await self.db.execute(
            select(FollowUpSuggestion)
            .where(
                self._pair_category(group_id, participant_id, category),
                FollowUpSuggestion.created_at >= since
            )
            .order_by(FollowUpSuggestion.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create(self, **data) -> FollowUpSuggestion:
        trigger_data = data.pop("trigger_data", None)
        suggestion = FollowUpSuggestion(**data)
        if trigger_data is not None:
            suggestion.set_trigger_data(trigger_data)

        self.db.add(suggestion)
        await self.db.flush()
        return suggestion

    async def get(self, suggestion_id: int) -> Optional[FollowUpSuggestion]:
        result = await self.db.execute(
            select(FollowUpSuggestion).where(FollowUpSuggestion.id == suggestion_id)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        group_id: Optional[str] = None,
        status: Optional[FollowUpStatus] = None,
        priority: Optional[FollowUpPriority] = None,
        assigned_to: Optional[str] = None
    ) -> List[FollowUpSuggestion]:
        query = select(FollowUpSuggestion)
        if group_id:
            query = query.where(FollowUpSuggestion.group_id == group_id)
        if status:
            query = query.where(FollowUpSuggestion.status == status)
        if priority:
            query = query.where(FollowUpSuggestion.priority == priority)
        if assigned_to:
            query = query.where(FollowUpSuggestion.assigned_to == assigned_to)

        priority_order = case(PRIORITY_RANK, value=FollowUpSuggestion.priority, else_=len(PRIORITY_RANK))
        query = query.order_by(
            priority_order,
            FollowUpSuggestion.due_date,
            FollowUpSuggestion.created_at.desc(),
            FollowUpSuggestion.id.desc()
        )

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_open(self, group_id: Optional[str] = None) -> int:
        query = select(func.count(FollowUpSuggestion.id)).where(
            FollowUpSuggestion.status.in_(OPEN_STATUSES)
        )
        if group_id:
            query = query.where(FollowUpSuggestion.group_id == group_id)

        result = await self.db.execute(query)
        return result.scalar_one()

    async def save(self, suggestion: FollowUpSuggestion) -> FollowUpSuggestion:
        await self.db.flush()
        return suggestion


class SQLAlchemyAttendanceStore(AttendanceStore):
    """Attendance store bound to one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = SQLAlchemyEventRepository(db)
        self.patterns = SQLAlchemyPatternRepository(db)
        self.suggestions = SQLAlchemyFollowUpRepository(db)

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        loaded = list(self.db.identity_map.values())
        await self.db.rollback()

        # Rollback expires every instance; reload the ones that survived it so
        # objects already handed to callers can still be read without lazy IO.
        for instance in loaded:
            if instance in self.db:
                await self.db.refresh(instance)
        logger.debug(f"Rolled back session, reloaded {len(loaded)} instances")
