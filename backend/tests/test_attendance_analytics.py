"""Tests for group statistics and the dashboard overview."""

import pytest
from datetime import date, timedelta

from group_attendance.core.exceptions import AttendanceValidationError
from group_attendance.models.attendance import AttendanceStatus
from group_attendance.models.follow_up import FollowUpCategory, FollowUpPriority, FollowUpStatus
from group_attendance.services.attendance_analytics import AttendanceAnalyticsService, week_start
from group_attendance.services.pattern_aggregator import PatternAggregator

from conftest import NOW


@pytest.fixture
def analytics(store, clock):
    return AttendanceAnalyticsService(store, clock=clock)


async def seed_events(store):
    rows = [
        ("G1", "P1", date(2025, 3, 3), AttendanceStatus.PRESENT),
        ("G1", "P2", date(2025, 3, 3), AttendanceStatus.ABSENT),
        ("G1", "P1", date(2025, 3, 6), AttendanceStatus.LATE),
        ("G1", "P2", date(2025, 3, 6), AttendanceStatus.EXCUSED),
        ("G1", "P1", date(2025, 3, 10), AttendanceStatus.PRESENT),
        ("G2", "P3", date(2025, 3, 5), AttendanceStatus.ABSENT),
        # Outside every reporting window used below
        ("G1", "P1", date(2025, 1, 6), AttendanceStatus.PRESENT),
    ]
    for group_id, participant_id, class_date, status in rows:
        await store.events.upsert(
            group_id=group_id, participant_id=participant_id, class_date=class_date, status=status
        )
    await store.commit()


class TestGroupStats:
    """Test cases for per-group statistics."""

    def test_week_start_is_monday(self):
        assert week_start(date(2025, 3, 6)) == date(2025, 3, 3)
        assert week_start(date(2025, 3, 3)) == date(2025, 3, 3)
        assert week_start(date(2025, 3, 9)) == date(2025, 3, 3)

    @pytest.mark.asyncio
    async def test_overall_and_weekly(self, analytics, store):
        await seed_events(store)

        stats = await analytics.group_stats("G1", weeks=2)

        assert stats.start_date == NOW.date() - timedelta(weeks=2)
        assert stats.end_date == NOW.date()
        assert stats.overall.total_records == 5
        assert stats.overall.total_present == 2
        assert stats.overall.total_late == 1
        assert stats.overall.total_absent == 1
        assert stats.overall.total_excused == 1
        assert stats.overall.attendance_rate == 60.0
        assert stats.overall.unique_participants == 2

        assert [w.week for w in stats.weekly] == [date(2025, 3, 3), date(2025, 3, 10)]
        assert stats.weekly[0].total == 4
        assert stats.weekly[0].attendance_rate == 50.0
        assert stats.weekly[1].present == 1
        assert stats.weekly[1].attendance_rate == 100.0

    @pytest.mark.asyncio
    async def test_rate_rounded(self, analytics, store):
        for day, status in [(3, AttendanceStatus.PRESENT), (4, AttendanceStatus.ABSENT), (5, AttendanceStatus.ABSENT)]:
            await store.events.upsert(
                group_id="G3", participant_id="P1", class_date=date(2025, 3, day), status=status
            )
        await store.commit()

        stats = await analytics.group_stats("G3")

        assert stats.overall.attendance_rate == 33.3

    @pytest.mark.asyncio
    async def test_empty_group(self, analytics):
        stats = await analytics.group_stats("nobody")

        assert stats.overall.total_records == 0
        assert stats.overall.attendance_rate == 0.0
        assert stats.weekly == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("weeks", [0, -1, 105])
    async def test_weeks_out_of_range(self, analytics, weeks):
        with pytest.raises(AttendanceValidationError) as exc_info:
            await analytics.group_stats("G1", weeks=weeks)

        assert exc_info.value.field == "weeks"


class TestDashboardOverview:
    """Test cases for the cross-group overview."""

    @pytest.mark.asyncio
    async def test_overview(self, analytics, store):
        await seed_events(store)

        for status in (FollowUpStatus.PENDING, FollowUpStatus.IN_PROGRESS, FollowUpStatus.RESOLVED):
            await store.suggestions.create(
                group_id="G1",
                participant_id="P2",
                category=FollowUpCategory.CONSECUTIVE_ABSENCES,
                priority=FollowUpPriority.MEDIUM,
                title="t",
                description="d",
                suggested_action="a",
                trigger_reason="r",
                status=status,
                created_at=NOW,
            )

        aggregator = PatternAggregator()
        p1_events = await store.events.list_for_participant("G1", "P1")
        await store.patterns.upsert(aggregator.build("G1", "P1", p1_events, NOW))
        absent_events = await store.events.list_for_participant("G2", "P3")
        snapshot = aggregator.build("G2", "P3", absent_events, NOW)
        await store.patterns.upsert(snapshot)
        await store.commit()

        overview = await analytics.dashboard_overview()

        assert overview.period_days == 30
        assert overview.overall_rate == 50.0
        assert overview.group_count == 2
        assert overview.pending_follow_up_count == 2
        assert overview.patterns_needing_attention_count == 0

    @pytest.mark.asyncio
    async def test_patterns_needing_attention(self, analytics, store):
        for i in range(3):
            await store.events.upsert(
                group_id="G1",
                participant_id="P9",
                class_date=NOW.date() - timedelta(days=i),
                status=AttendanceStatus.ABSENT
            )
        events = await store.events.list_for_participant("G1", "P9")
        await store.patterns.upsert(PatternAggregator().build("G1", "P9", events, NOW))
        await store.commit()

        overview = await analytics.dashboard_overview()

        assert overview.patterns_needing_attention_count == 1

    @pytest.mark.asyncio
    async def test_empty_store(self, analytics):
        overview = await analytics.dashboard_overview()

        assert overview.overall_rate == 0.0
        assert overview.group_count == 0
        assert overview.pending_follow_up_count == 0
