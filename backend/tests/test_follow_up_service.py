"""Tests for the follow-up lifecycle service."""

import pytest
from datetime import datetime, timedelta

from group_attendance.core.exceptions import FollowUpNotFoundError, AttendanceValidationError
from group_attendance.models.follow_up import FollowUpCategory, FollowUpPriority, FollowUpStatus
from group_attendance.services.follow_up_service import FollowUpService

from conftest import NOW


@pytest.fixture
def service(store, clock):
    return FollowUpService(store, clock=clock)


async def create_suggestion(store, priority=FollowUpPriority.MEDIUM, created_days_ago=0, **overrides):
    data = dict(
        group_id="G1",
        participant_id="P1",
        category=FollowUpCategory.CONSECUTIVE_ABSENCES,
        priority=priority,
        title="Missed 3 classes in a row",
        description="Absent for the last 3 classes.",
        suggested_action="Reach out personally.",
        trigger_reason="3 consecutive absences",
        trigger_data={"consecutive_absences": 3},
        due_date=NOW + timedelta(days=7),
        status=FollowUpStatus.PENDING,
        created_at=NOW - timedelta(days=created_days_ago),
    )
    data.update(overrides)
    suggestion = await store.suggestions.create(**data)
    await store.commit()
    return suggestion


class TestFollowUpUpdates:
    """Test cases for status changes and contact logging."""

    @pytest.mark.asyncio
    async def test_in_progress_sets_no_timestamps(self, service, store):
        suggestion = await create_suggestion(store)

        updated = await service.update_follow_up(suggestion.id, {"status": "IN_PROGRESS", "assigned_to": "leader-1"})

        assert updated.status == FollowUpStatus.IN_PROGRESS
        assert updated.assigned_to == "leader-1"
        assert updated.contacted_at is None
        assert updated.resolved_at is None

    @pytest.mark.asyncio
    async def test_contact_method_implies_contacted(self, service, store):
        suggestion = await create_suggestion(store)

        updated = await service.update_follow_up(
            suggestion.id, {"contact_method": "phone", "contact_notes": "Left a voicemail"}
        )

        assert updated.status == FollowUpStatus.CONTACTED
        assert updated.contact_method == "phone"
        assert updated.contacted_at == NOW

    @pytest.mark.asyncio
    async def test_explicit_status_wins_over_contact_method(self, service, store):
        suggestion = await create_suggestion(store)

        updated = await service.update_follow_up(
            suggestion.id, {"status": FollowUpStatus.RESOLVED, "contact_method": "email"}
        )

        assert updated.status == FollowUpStatus.RESOLVED
        assert updated.resolved_at == NOW
        assert updated.contacted_at is None

    @pytest.mark.asyncio
    async def test_supplied_contacted_at_is_kept(self, service, store):
        suggestion = await create_suggestion(store)
        contacted = datetime(2025, 3, 8, 9, 0)

        updated = await service.update_follow_up(
            suggestion.id, {"status": "CONTACTED", "contacted_at": contacted}
        )

        assert updated.contacted_at == contacted

    @pytest.mark.asyncio
    async def test_resolved_at_stamped_once(self, service, store, clock):
        suggestion = await create_suggestion(store)

        await service.update_follow_up(suggestion.id, {"status": "RESOLVED", "outcome": "Coming back next week"})
        clock.advance(days=2)
        updated = await service.update_follow_up(suggestion.id, {"status": "RESOLVED", "resolution": "Returned"})

        assert updated.resolved_at == NOW
        assert updated.outcome == "Coming back next week"
        assert updated.resolution == "Returned"

    @pytest.mark.asyncio
    async def test_transitions_are_not_policed(self, service, store):
        suggestion = await create_suggestion(store)
        await service.update_follow_up(suggestion.id, {"status": "RESOLVED"})

        updated = await service.update_follow_up(suggestion.id, {"status": "pending"})

        assert updated.status == FollowUpStatus.PENDING
        assert updated.is_open

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, service, store):
        suggestion = await create_suggestion(store)

        with pytest.raises(AttendanceValidationError):
            await service.update_follow_up(suggestion.id, {"priority": "LOW"})

    @pytest.mark.asyncio
    async def test_invalid_status_rejected(self, service, store):
        suggestion = await create_suggestion(store)

        with pytest.raises(AttendanceValidationError) as exc_info:
            await service.update_follow_up(suggestion.id, {"status": "DONE"})

        assert exc_info.value.field == "status"

    @pytest.mark.asyncio
    async def test_missing_suggestion(self, service):
        with pytest.raises(FollowUpNotFoundError) as exc_info:
            await service.update_follow_up(999, {"status": "RESOLVED"})

        assert exc_info.value.status_code == 404


class TestFollowUpDismissal:
    """Test cases for dismissal."""

    @pytest.mark.asyncio
    async def test_dismiss_pending(self, service, store):
        suggestion = await create_suggestion(store)

        dismissed = await service.dismiss_follow_up(suggestion.id)

        assert dismissed.status == FollowUpStatus.DISMISSED
        assert dismissed.resolved_at == NOW
        assert not dismissed.is_open

    @pytest.mark.asyncio
    async def test_dismiss_overwrites_resolved_at(self, service, store, clock):
        suggestion = await create_suggestion(store)
        await service.update_follow_up(suggestion.id, {"status": "RESOLVED"})
        clock.advance(days=1)

        dismissed = await service.dismiss_follow_up(suggestion.id)

        assert dismissed.status == FollowUpStatus.DISMISSED
        assert dismissed.resolved_at == NOW + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_dismiss_missing(self, service):
        with pytest.raises(FollowUpNotFoundError):
            await service.dismiss_follow_up(42)


class TestFollowUpListing:
    """Test cases for listing and filtering."""

    @pytest.mark.asyncio
    async def test_ordered_by_priority_then_due_date(self, service, store):
        low = await create_suggestion(store, priority=FollowUpPriority.LOW)
        urgent = await create_suggestion(store, priority=FollowUpPriority.URGENT, participant_id="P2")
        high_later = await create_suggestion(
            store, priority=FollowUpPriority.HIGH, participant_id="P3", due_date=NOW + timedelta(days=14)
        )
        high_sooner = await create_suggestion(
            store, priority=FollowUpPriority.HIGH, participant_id="P4", due_date=NOW + timedelta(days=3)
        )

        suggestions = await service.list_follow_ups()

        assert [s.id for s in suggestions] == [urgent.id, high_sooner.id, high_later.id, low.id]

    @pytest.mark.asyncio
    async def test_filters(self, service, store):
        await create_suggestion(store, assigned_to="leader-1")
        other_group = await create_suggestion(store, group_id="G2")
        resolved = await create_suggestion(store, participant_id="P2", status=FollowUpStatus.RESOLVED)
        urgent = await create_suggestion(store, participant_id="P3", priority=FollowUpPriority.URGENT)

        assert [s.id for s in await service.list_follow_ups(group_id="G2")] == [other_group.id]
        assert [s.id for s in await service.list_follow_ups(status=FollowUpStatus.RESOLVED)] == [resolved.id]
        assert [s.id for s in await service.list_follow_ups(priority=FollowUpPriority.URGENT)] == [urgent.id]
        assert len(await service.list_follow_ups(assigned_to="leader-1")) == 1

    @pytest.mark.asyncio
    async def test_get_follow_up(self, service, store):
        suggestion = await create_suggestion(store)

        found = await service.get_follow_up(suggestion.id)

        assert found.id == suggestion.id
        assert found.get_trigger_data() == {"consecutive_absences": 3}
