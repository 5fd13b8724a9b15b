"""
Follow-up lifecycle: leader-driven status changes, contact logging and
dismissal of suggestions created by the rule engine.
"""
import logging
from datetime import datetime
from typing import Callable, Optional, List, Dict, Any

from group_attendance.core.exceptions import FollowUpNotFoundError, AttendanceValidationError
from group_attendance.models.follow_up import FollowUpSuggestion, FollowUpStatus, FollowUpPriority
from group_attendance.repositories.base import AttendanceStore

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "status",
    "assigned_to",
    "contact_method",
    "contact_notes",
    "contacted_at",
    "resolution",
    "outcome",
    "resolved_at",
)


class FollowUpService:
    """
    Status machine for follow-up suggestions:

        PENDING -> IN_PROGRESS | CONTACTED | DISMISSED
        IN_PROGRESS -> CONTACTED | RESOLVED
        CONTACTED -> RESOLVED

    Transitions are not policed; any status may be set from any other,
    including moving a resolved suggestion back to PENDING.
    """

    def __init__(self, store: AttendanceStore, clock: Callable[[], datetime] = None):
        self.store = store
        self.clock = clock or datetime.utcnow

    async def list_follow_ups(
        self,
        group_id: Optional[str] = None,
        status: Optional[FollowUpStatus] = None,
        priority: Optional[FollowUpPriority] = None,
        assigned_to: Optional[str] = None
    ) -> List[FollowUpSuggestion]:
        return await self.store.suggestions.list(
            group_id=group_id,
            status=status,
            priority=priority,
            assigned_to=assigned_to
        )

    async def get_follow_up(self, suggestion_id: int) -> FollowUpSuggestion:
        suggestion = await self.store.suggestions.get(suggestion_id)
        if suggestion is None:
            raise FollowUpNotFoundError(f"Follow-up suggestion {suggestion_id} not found")
        return suggestion

    async def update_follow_up(self, suggestion_id: int, patch: Dict[str, Any]) -> FollowUpSuggestion:
        """
        Apply a partial update. Supplying a contact method without a status
        marks the suggestion CONTACTED; reaching CONTACTED or RESOLVED stamps
        contacted_at / resolved_at unless they are already set.
        """
        unknown = set(patch) - set(UPDATABLE_FIELDS)
        if unknown:
            raise AttendanceValidationError(
                f"Cannot update follow-up fields: {', '.join(sorted(unknown))}"
            )

        suggestion = await self.get_follow_up(suggestion_id)
        now = self.clock()
        old_status = suggestion.status

        changes = dict(patch)
        if "status" in changes and changes["status"] is not None:
            changes["status"] = self._coerce_status(changes["status"])
        elif changes.get("contact_method"):
            changes["status"] = FollowUpStatus.CONTACTED

        for field, value in changes.items():
            if field == "status" and value is None:
                continue
            setattr(suggestion, field, value)

        if suggestion.status == FollowUpStatus.CONTACTED and suggestion.contacted_at is None:
            suggestion.contacted_at = now
        if suggestion.status == FollowUpStatus.RESOLVED and suggestion.resolved_at is None:
            suggestion.resolved_at = now

        await self.store.suggestions.save(suggestion)
        await self.store.commit()

        if suggestion.status != old_status:
            logger.info(
                f"Follow-up {suggestion.id} moved from {old_status.value} to {suggestion.status.value}"
            )
        return suggestion

    async def dismiss_follow_up(self, suggestion_id: int) -> FollowUpSuggestion:
        """Terminal dismissal; always stamps resolved_at with the dismissal time."""
        suggestion = await self.get_follow_up(suggestion_id)
        old_status = suggestion.status

        suggestion.status = FollowUpStatus.DISMISSED
        suggestion.resolved_at = self.clock()

        await self.store.suggestions.save(suggestion)
        await self.store.commit()

        logger.info(f"Follow-up {suggestion.id} dismissed (was {old_status.value})")
        return suggestion

    @staticmethod
    def _coerce_status(value) -> FollowUpStatus:
        if isinstance(value, FollowUpStatus):
            return value
        try:
            return FollowUpStatus(str(value).upper())
        except ValueError:
            raise AttendanceValidationError(f"Invalid follow-up status: {value}", field="status")
