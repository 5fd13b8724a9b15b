"""
Trend calculation over two disjoint trailing windows of attendance events.
"""
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta
from typing import Iterable, List

from group_attendance.models.attendance import AttendanceEvent, ATTENDED_STATUSES
from group_attendance.models.attendance_pattern import TrendDirection


@dataclass(frozen=True)
class TrendResult:
    last_4_weeks_rate: float
    last_8_weeks_rate: float
    trend_direction: TrendDirection


def class_datetime(class_date: date) -> datetime:
    """Class dates are compared against timestamps as midnight of that day."""
    return datetime.combine(class_date, time.min)


def attendance_rate(events: Iterable[AttendanceEvent]) -> float:
    """Percentage (0-100) of events marked present or late; 0 for no events."""
    events = list(events)
    if not events:
        return 0.0
    attended = sum(1 for event in events if event.status in ATTENDED_STATUSES)
    return attended / len(events) * 100


class TrendCalculator:
    """
    Compares the attendance rate of the last four weeks with the four weeks
    before that. The prior window does not overlap the recent one.
    """

    def __init__(self):
        self.recent_window_days = 28
        self.prior_window_days = 56
        self.hysteresis_points = 10.0

    def calculate(self, events: List[AttendanceEvent], now: datetime) -> TrendResult:
        recent_start = now - timedelta(days=self.recent_window_days)
        prior_start = now - timedelta(days=self.prior_window_days)

        recent = [e for e in events if class_datetime(e.class_date) >= recent_start]
        prior = [
            e for e in events
            if prior_start <= class_datetime(e.class_date) < recent_start
        ]

        last_4_weeks_rate = attendance_rate(recent)
        last_8_weeks_rate = attendance_rate(prior)

        return TrendResult(
            last_4_weeks_rate=last_4_weeks_rate,
            last_8_weeks_rate=last_8_weeks_rate,
            trend_direction=self.classify(last_4_weeks_rate, last_8_weeks_rate),
        )

    def classify(self, last_4_weeks_rate: float, last_8_weeks_rate: float) -> TrendDirection:
        if last_4_weeks_rate > last_8_weeks_rate + self.hysteresis_points:
            return TrendDirection.IMPROVING
        if last_4_weeks_rate < last_8_weeks_rate - self.hysteresis_points:
            return TrendDirection.DECLINING
        return TrendDirection.STABLE
