"""
Attendance reporting for group leaders: per-group totals with a weekly
breakdown, and an overview across all groups.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from typing import Callable, List, Dict

from group_attendance.core.exceptions import AttendanceValidationError
from group_attendance.models.attendance import AttendanceEvent, AttendanceStatus
from group_attendance.repositories.base import AttendanceStore
from group_attendance.services.trend_calculator import attendance_rate


@dataclass
class AttendanceTotals:
    total_records: int = 0
    total_present: int = 0
    total_absent: int = 0
    total_excused: int = 0
    total_late: int = 0
    attendance_rate: float = 0.0
    unique_participants: int = 0


@dataclass
class WeeklyAttendance:
    week: date  # Monday of the week
    total: int = 0
    present: int = 0
    absent: int = 0
    excused: int = 0
    late: int = 0
    attendance_rate: float = 0.0


@dataclass
class GroupAttendanceStats:
    group_id: str
    weeks: int
    start_date: date
    end_date: date
    overall: AttendanceTotals
    weekly: List[WeeklyAttendance] = field(default_factory=list)


@dataclass
class DashboardOverview:
    overall_rate: float
    group_count: int
    pending_follow_up_count: int
    patterns_needing_attention_count: int
    period_days: int


def summarize(events: List[AttendanceEvent]) -> AttendanceTotals:
    counts: Dict[AttendanceStatus, int] = defaultdict(int)
    for event in events:
        counts[AttendanceStatus(event.status)] += 1

    return AttendanceTotals(
        total_records=len(events),
        total_present=counts[AttendanceStatus.PRESENT],
        total_absent=counts[AttendanceStatus.ABSENT],
        total_excused=counts[AttendanceStatus.EXCUSED],
        total_late=counts[AttendanceStatus.LATE],
        attendance_rate=round(attendance_rate(events), 1),
        unique_participants=len({event.participant_id for event in events}),
    )


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


class AttendanceAnalyticsService:
    """Read-only attendance reporting over the event store."""

    def __init__(self, store: AttendanceStore, clock: Callable[[], datetime] = None):
        self.store = store
        self.clock = clock or datetime.utcnow

        self.max_stats_weeks = 104
        self.dashboard_period_days = 30

    async def group_stats(self, group_id: str, weeks: int = 12) -> GroupAttendanceStats:
        if not group_id:
            raise AttendanceValidationError("group_id is required", field="group_id")
        if weeks < 1 or weeks > self.max_stats_weeks:
            raise AttendanceValidationError(
                f"weeks must be between 1 and {self.max_stats_weeks}", field="weeks"
            )

        today = self.clock().date()
        start_date = today - timedelta(weeks=weeks)
        events = await self.store.events.list_since(start_date, group_id=group_id)

        by_week: Dict[date, List[AttendanceEvent]] = defaultdict(list)
        for event in events:
            by_week[week_start(event.class_date)].append(event)

        weekly = []
        for week in sorted(by_week):
            totals = summarize(by_week[week])
            weekly.append(WeeklyAttendance(
                week=week,
                total=totals.total_records,
                present=totals.total_present,
                absent=totals.total_absent,
                excused=totals.total_excused,
                late=totals.total_late,
                attendance_rate=totals.attendance_rate,
            ))

        return GroupAttendanceStats(
            group_id=group_id,
            weeks=weeks,
            start_date=start_date,
            end_date=today,
            overall=summarize(events),
            weekly=weekly,
        )

    async def dashboard_overview(self) -> DashboardOverview:
        since = self.clock().date() - timedelta(days=self.dashboard_period_days)
        recent_events = await self.store.events.list_since(since)

        return DashboardOverview(
            overall_rate=round(attendance_rate(recent_events), 1),
            group_count=await self.store.events.count_groups(),
            pending_follow_up_count=await self.store.suggestions.count_open(),
            patterns_needing_attention_count=await self.store.patterns.count_needing_attention(),
            period_days=self.dashboard_period_days,
        )
