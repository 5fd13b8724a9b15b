"""
Pattern aggregation: turns the full attendance history of one participant in
one group into an AttendancePattern profile.

The profile is always recomputed from every event; counters are never patched
incrementally.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, date
from typing import Optional, List, Dict, Any

from group_attendance.models.attendance import AttendanceEvent, AttendanceStatus, ATTENDED_STATUSES
from group_attendance.models.attendance_pattern import TrendDirection
from group_attendance.services.trend_calculator import TrendCalculator, attendance_rate


@dataclass(frozen=True)
class PatternSnapshot:
    """Immutable profile evaluated by the follow-up rules."""
    group_id: str
    participant_id: str
    total_classes_held: int
    total_present: int
    total_absent: int
    total_excused: int
    total_late: int
    attendance_rate: float
    consecutive_absences: int
    consecutive_presences: int
    prior_presence_streak: int
    last_attendance_date: Optional[date]
    last_attendance_status: Optional[AttendanceStatus]
    last_4_weeks_rate: float
    last_8_weeks_rate: float
    trend_direction: TrendDirection
    last_calculated_at: datetime

    @property
    def has_history(self) -> bool:
        return self.total_classes_held > 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StreakResult:
    consecutive_absences: int
    consecutive_presences: int
    prior_presence_streak: int


def compute_streaks(events: List[AttendanceEvent]) -> StreakResult:
    """
    Walk events newest first and count the current absence or presence run.

    An EXCUSED event stops the walk outright: it neither extends nor resets
    the run, so anything older than the first EXCUSED is never looked at.
    A change of direction also ends the run.
    """
    consecutive_absences = 0
    consecutive_presences = 0

    for event in events:
        if event.status == AttendanceStatus.EXCUSED:
            break
        if event.status == AttendanceStatus.ABSENT:
            if consecutive_presences:
                break
            consecutive_absences += 1
        else:
            if consecutive_absences:
                break
            consecutive_presences += 1

    # Present/late run sitting right behind the current absence run; the same
    # EXCUSED stop applies.
    prior_presence_streak = 0
    if consecutive_absences:
        for event in events[consecutive_absences:]:
            if event.status not in ATTENDED_STATUSES:
                break
            prior_presence_streak += 1

    return StreakResult(
        consecutive_absences=consecutive_absences,
        consecutive_presences=consecutive_presences,
        prior_presence_streak=prior_presence_streak,
    )


class PatternAggregator:
    """Builds a PatternSnapshot from an event list ordered by class date descending."""

    def __init__(self, trend_calculator: TrendCalculator = None):
        self.trend_calculator = trend_calculator or TrendCalculator()

    def build(
        self,
        group_id: str,
        participant_id: str,
        events: List[AttendanceEvent],
        now: datetime
    ) -> PatternSnapshot:
        if not events:
            return self.empty(group_id, participant_id, now)

        counts = {status: 0 for status in AttendanceStatus}
        for event in events:
            counts[AttendanceStatus(event.status)] += 1

        streaks = compute_streaks(events)
        trend = self.trend_calculator.calculate(events, now)
        latest = events[0]

        return PatternSnapshot(
            group_id=group_id,
            participant_id=participant_id,
            total_classes_held=len(events),
            total_present=counts[AttendanceStatus.PRESENT],
            total_absent=counts[AttendanceStatus.ABSENT],
            total_excused=counts[AttendanceStatus.EXCUSED],
            total_late=counts[AttendanceStatus.LATE],
            attendance_rate=attendance_rate(events),
            consecutive_absences=streaks.consecutive_absences,
            consecutive_presences=streaks.consecutive_presences,
            prior_presence_streak=streaks.prior_presence_streak,
            last_attendance_date=latest.class_date,
            last_attendance_status=AttendanceStatus(latest.status),
            last_4_weeks_rate=trend.last_4_weeks_rate,
            last_8_weeks_rate=trend.last_8_weeks_rate,
            trend_direction=trend.trend_direction,
            last_calculated_at=now,
        )

    def empty(self, group_id: str, participant_id: str, now: datetime) -> PatternSnapshot:
        """Zeroed profile for a pair with no recorded events."""
        return PatternSnapshot(
            group_id=group_id,
            participant_id=participant_id,
            total_classes_held=0,
            total_present=0,
            total_absent=0,
            total_excused=0,
            total_late=0,
            attendance_rate=0.0,
            consecutive_absences=0,
            consecutive_presences=0,
            prior_presence_streak=0,
            last_attendance_date=None,
            last_attendance_status=None,
            last_4_weeks_rate=0.0,
            last_8_weeks_rate=0.0,
            trend_direction=TrendDirection.STABLE,
            last_calculated_at=now,
        )
