"""
Attendance engine: records attendance events and drives the
recompute -> evaluate pipeline for the affected participant.

Recording is the only part the caller depends on. Pattern recomputation and
suggestion generation run afterwards on a best-effort basis and report their
outcome in the returned result instead of failing the write.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, date
from typing import Callable, Optional, List, Dict, Any, Union

from group_attendance.core.exceptions import AttendanceValidationError, PatternNotFoundError
from group_attendance.core.locks import ParticipantLockRegistry, participant_locks
from group_attendance.models.attendance import AttendanceEvent, AttendanceStatus
from group_attendance.models.attendance_pattern import AttendancePattern
from group_attendance.models.follow_up import FollowUpSuggestion
from group_attendance.repositories.base import AttendanceStore
from group_attendance.services.follow_up_rules import FollowUpRuleEngine, RuleEvaluationResult, RuleError
from group_attendance.services.pattern_aggregator import PatternAggregator, PatternSnapshot

logger = logging.getLogger(__name__)


@dataclass
class PatternRecalculation:
    """Result of recomputing one participant's pattern and evaluating rules on it."""
    pattern: PatternSnapshot
    persisted: bool
    suggestions_created: List[FollowUpSuggestion] = field(default_factory=list)
    suggestion_errors: List[RuleError] = field(default_factory=list)


@dataclass
class AttendanceRecordResult:
    """
    A written attendance event plus what happened downstream of it.
    `event` is always set; the rest may be empty if recomputation failed.
    """
    event: AttendanceEvent
    pattern: Optional[PatternSnapshot] = None
    suggestions_created: List[FollowUpSuggestion] = field(default_factory=list)
    suggestion_errors: List[RuleError] = field(default_factory=list)
    pattern_error: Optional[str] = None

    @property
    def suggestions_evaluated(self) -> bool:
        return self.pattern_error is None and not self.suggestion_errors


@dataclass
class BulkEntryFailure:
    index: int
    participant_id: Optional[str]
    error: str


@dataclass
class BulkAttendanceResult:
    recorded: List[AttendanceRecordResult] = field(default_factory=list)
    failed: List[BulkEntryFailure] = field(default_factory=list)

    @property
    def events(self) -> List[AttendanceEvent]:
        return [result.event for result in self.recorded]

    @property
    def suggestions_created(self) -> int:
        return sum(len(result.suggestions_created) for result in self.recorded)


class AttendanceEngine:
    """Core attendance recording engine."""

    def __init__(
        self,
        store: AttendanceStore,
        clock: Callable[[], datetime] = None,
        aggregator: PatternAggregator = None,
        rule_engine: FollowUpRuleEngine = None,
        locks: ParticipantLockRegistry = None
    ):
        self.store = store
        self.clock = clock or datetime.utcnow
        self.aggregator = aggregator or PatternAggregator()
        self.rule_engine = rule_engine or FollowUpRuleEngine(store, clock=self.clock)
        self.locks = locks or participant_locks

    async def record_attendance(
        self,
        group_id: str,
        participant_id: str,
        class_date: Union[date, datetime, str],
        status: Union[AttendanceStatus, str],
        note: Optional[str] = None,
        recorded_by: Optional[str] = None
    ) -> AttendanceRecordResult:
        """
        Create or overwrite the event for (group, participant, class date),
        then recompute the participant's pattern and evaluate follow-up rules.
        """
        group_id = self._require_id(group_id, "group_id")
        participant_id = self._require_id(participant_id, "participant_id")
        class_date = self._parse_class_date(class_date)
        status = self._parse_status(status)

        async with self.locks.hold(group_id, participant_id):
            event = await self.store.events.upsert(
                group_id=group_id,
                participant_id=participant_id,
                class_date=class_date,
                status=status,
                note=note,
                recorded_by=recorded_by
            )
            await self.store.commit()

            logger.info(
                f"Recorded {status.value} for participant {participant_id} in group {group_id} "
                f"on {class_date.isoformat()}"
            )

            result = AttendanceRecordResult(event=event)
            try:
                recalculation = await self._recalculate(group_id, participant_id)
            except Exception as e:
                logger.error(
                    f"Pattern recalculation failed for participant {participant_id} "
                    f"in group {group_id}: {e}",
                    exc_info=True
                )
                await self.store.rollback()
                result.pattern_error = str(e)
                return result

            result.pattern = recalculation.pattern
            result.suggestions_created = recalculation.suggestions_created
            result.suggestion_errors = recalculation.suggestion_errors
            return result

    async def record_bulk_attendance(
        self,
        group_id: str,
        class_date: Union[date, datetime, str],
        entries: List[Dict[str, Any]]
    ) -> BulkAttendanceResult:
        """
        Record one class date for many participants, one at a time. A failed
        entry is reported and skipped; entries already written stay written.
        """
        group_id = self._require_id(group_id, "group_id")
        class_date = self._parse_class_date(class_date)

        result = BulkAttendanceResult()
        for index, entry in enumerate(entries):
            participant_id = entry.get("participant_id")
            try:
                recorded = await self.record_attendance(
                    group_id=group_id,
                    participant_id=participant_id,
                    class_date=class_date,
                    status=entry.get("status"),
                    note=entry.get("note"),
                    recorded_by=entry.get("recorded_by")
                )
            except AttendanceValidationError as e:
                logger.warning(f"Bulk attendance entry {index} for group {group_id} rejected: {e.message}")
                result.failed.append(BulkEntryFailure(index=index, participant_id=participant_id, error=e.message))
                continue
            except Exception as e:
                logger.error(
                    f"Bulk attendance entry {index} for group {group_id} failed: {e}",
                    exc_info=True
                )
                await self.store.rollback()
                result.failed.append(BulkEntryFailure(index=index, participant_id=participant_id, error=str(e)))
                continue

            result.recorded.append(recorded)

        logger.info(
            f"Bulk attendance for group {group_id} on {class_date.isoformat()}: "
            f"{len(result.recorded)} recorded, {len(result.failed)} failed"
        )
        return result

    async def recalculate_pattern(self, group_id: str, participant_id: str) -> PatternRecalculation:
        """Recompute and store the pattern for a pair without recording anything new."""
        group_id = self._require_id(group_id, "group_id")
        participant_id = self._require_id(participant_id, "participant_id")

        async with self.locks.hold(group_id, participant_id):
            return await self._recalculate(group_id, participant_id)

    async def get_pattern(self, group_id: str, participant_id: str) -> AttendancePattern:
        pattern = await self.store.patterns.get(group_id, participant_id)
        if pattern is None:
            raise PatternNotFoundError(
                f"No attendance pattern for participant {participant_id} in group {group_id}"
            )
        return pattern

    async def list_group_attendance(
        self,
        group_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> List[AttendanceEvent]:
        group_id = self._require_id(group_id, "group_id")
        if start_date and end_date and start_date > end_date:
            raise AttendanceValidationError("start_date must not be after end_date", field="start_date")
        return await self.store.events.list_for_group(group_id, start_date, end_date)

    async def _recalculate(self, group_id: str, participant_id: str) -> PatternRecalculation:
        events = await self.store.events.list_for_participant(group_id, participant_id)
        now = self.clock()
        snapshot = self.aggregator.build(group_id, participant_id, events, now)

        if not snapshot.has_history:
            # Nothing to store and nothing to evaluate
            return PatternRecalculation(pattern=snapshot, persisted=False)

        await self.store.patterns.upsert(snapshot)
        await self.store.commit()

        logger.info(
            f"Recalculated pattern for participant {participant_id} in group {group_id}: "
            f"rate={snapshot.attendance_rate:.1f}% absences={snapshot.consecutive_absences} "
            f"trend={snapshot.trend_direction.value}"
        )

        evaluation = await self._evaluate_rules(snapshot, now)
        return PatternRecalculation(
            pattern=snapshot,
            persisted=True,
            suggestions_created=evaluation.created,
            suggestion_errors=evaluation.errors
        )

    async def _evaluate_rules(self, snapshot: PatternSnapshot, now: datetime) -> RuleEvaluationResult:
        try:
            return await self.rule_engine.evaluate(snapshot, now)
        except Exception as e:
            logger.error(
                f"Follow-up evaluation failed for participant {snapshot.participant_id} "
                f"in group {snapshot.group_id}: {e}",
                exc_info=True
            )
            await self.store.rollback()
            return RuleEvaluationResult(errors=[RuleError(category=None, error=str(e))])

    @staticmethod
    def _require_id(value, field_name: str) -> str:
        if value is None or not str(value).strip():
            raise AttendanceValidationError(f"{field_name} is required", field=field_name)
        return str(value).strip()

    @staticmethod
    def _parse_class_date(value) -> date:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str) and value.strip():
            try:
                return date.fromisoformat(value.strip()[:10])
            except ValueError:
                pass
        raise AttendanceValidationError(f"Invalid class_date: {value!r}", field="class_date")

    @staticmethod
    def _parse_status(value) -> AttendanceStatus:
        if isinstance(value, AttendanceStatus):
            return value
        if isinstance(value, str):
            try:
                return AttendanceStatus(value.strip().upper())
            except ValueError:
                pass
        raise AttendanceValidationError(
            f"Invalid status: {value!r}. Expected one of "
            f"{', '.join(s.value for s in AttendanceStatus)}",
            field="status"
        )
