"""Tests for pattern aggregation and streak counting."""

import pytest
from dataclasses import FrozenInstanceError
from datetime import timedelta

from group_attendance.models.attendance import AttendanceEvent, AttendanceStatus
from group_attendance.models.attendance_pattern import TrendDirection
from group_attendance.services.pattern_aggregator import PatternAggregator, PatternSnapshot, compute_streaks

from conftest import NOW

P = AttendanceStatus.PRESENT
A = AttendanceStatus.ABSENT
E = AttendanceStatus.EXCUSED
L = AttendanceStatus.LATE


def history(*statuses, step_days: int = 7):
    """Events newest first, one class every `step_days` ending today."""
    return [
        AttendanceEvent(
            group_id="G1",
            participant_id="P1",
            class_date=(NOW - timedelta(days=i * step_days)).date(),
            status=status
        )
        for i, status in enumerate(statuses)
    ]


class TestComputeStreaks:
    """Test cases for the newest-first streak walk."""

    def test_absence_run(self):
        streaks = compute_streaks(history(A, A, A, P, P))

        assert streaks.consecutive_absences == 3
        assert streaks.consecutive_presences == 0
        assert streaks.prior_presence_streak == 2

    def test_presence_run_counts_late(self):
        streaks = compute_streaks(history(P, L, P, A))

        assert streaks.consecutive_presences == 3
        assert streaks.consecutive_absences == 0
        assert streaks.prior_presence_streak == 0

    def test_excused_stops_the_walk(self):
        # Older absences behind the EXCUSED are never counted
        streaks = compute_streaks(history(A, A, E, A, A, A))

        assert streaks.consecutive_absences == 2

    def test_excused_newest_gives_no_streak(self):
        streaks = compute_streaks(history(E, A, A, A))

        assert streaks.consecutive_absences == 0
        assert streaks.consecutive_presences == 0

    def test_prior_presence_streak_stops_at_excused(self):
        streaks = compute_streaks(history(A, P, P, E, P, P, P))

        assert streaks.consecutive_absences == 1
        assert streaks.prior_presence_streak == 2

    def test_first_absence_after_regular_run(self):
        streaks = compute_streaks(history(A, P, P, L, P, P, A))

        assert streaks.consecutive_absences == 1
        assert streaks.prior_presence_streak == 5

    def test_empty(self):
        streaks = compute_streaks([])

        assert streaks.consecutive_absences == 0
        assert streaks.consecutive_presences == 0
        assert streaks.prior_presence_streak == 0


class TestPatternAggregator:
    """Test cases for PatternAggregator."""

    def test_build_counts_and_rate(self):
        aggregator = PatternAggregator()

        pattern = aggregator.build("G1", "P1", history(A, P, L, E, A), NOW)

        assert isinstance(pattern, PatternSnapshot)
        assert pattern.total_classes_held == 5
        assert pattern.total_present == 1
        assert pattern.total_late == 1
        assert pattern.total_excused == 1
        assert pattern.total_absent == 2
        assert pattern.attendance_rate == 40.0
        assert pattern.consecutive_absences == 1
        assert pattern.prior_presence_streak == 2
        assert pattern.last_attendance_date == NOW.date()
        assert pattern.last_attendance_status == AttendanceStatus.ABSENT
        assert pattern.last_calculated_at == NOW
        assert pattern.has_history

    def test_end_to_end_profile(self):
        events = history(A, A, A, A, A, A, L, P, step_days=3)

        pattern = PatternAggregator().build("G1", "P1", events, NOW)

        assert pattern.total_classes_held == 8
        assert pattern.attendance_rate == 25.0
        assert pattern.consecutive_absences == 6

    def test_trend_fields_come_from_calculator(self):
        events = history(A, A, P, P, P, P, P, P)

        pattern = PatternAggregator().build("G1", "P1", events, NOW)

        assert pattern.last_4_weeks_rate == 50.0
        assert pattern.last_8_weeks_rate == 100.0
        assert pattern.trend_direction == TrendDirection.DECLINING

    def test_empty_history(self):
        pattern = PatternAggregator().build("G1", "P1", [], NOW)

        assert not pattern.has_history
        assert pattern.attendance_rate == 0.0
        assert pattern.last_attendance_date is None
        assert pattern.last_attendance_status is None
        assert pattern.trend_direction == TrendDirection.STABLE

    def test_snapshot_is_immutable(self):
        pattern = PatternAggregator().build("G1", "P1", history(P), NOW)

        with pytest.raises(FrozenInstanceError):
            pattern.attendance_rate = 0.0

    def test_to_dict(self):
        pattern = PatternAggregator().build("G1", "P1", history(P, A), NOW)

        data = pattern.to_dict()

        assert data["group_id"] == "G1"
        assert data["total_classes_held"] == 2
        assert data["consecutive_presences"] == 1
