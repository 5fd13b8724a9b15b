"""
Follow-up suggestion rules.

Each rule is an independent predicate over one immutable PatternSnapshot,
paired with a priority function, a due-date offset and a dedup policy.
Rules run in a fixed order and a pattern may trigger several categories
at once.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, List, Dict, Any

from group_attendance.models.attendance import AttendanceStatus
from group_attendance.models.attendance_pattern import TrendDirection
from group_attendance.models.follow_up import FollowUpSuggestion, FollowUpCategory, FollowUpPriority, FollowUpStatus
from group_attendance.repositories.base import AttendanceStore
from group_attendance.services.pattern_aggregator import PatternSnapshot
from group_attendance.services.trend_calculator import class_datetime

logger = logging.getLogger(__name__)


class DedupPolicy(str, Enum):
    """How a rule decides an earlier suggestion already covers the pattern."""
    OPEN_SUGGESTION = "open_suggestion"  # any PENDING/IN_PROGRESS of the category
    RECENT_CREATION = "recent_creation"  # any status, created inside the dedup window


@dataclass(frozen=True)
class SuggestionContent:
    """Human-readable text plus the audit snapshot for one suggestion."""
    title: str
    description: str
    suggested_action: str
    trigger_reason: str
    trigger_data: Dict[str, Any]


@dataclass(frozen=True)
class FollowUpRule:
    category: FollowUpCategory
    applies: Callable[[PatternSnapshot, datetime], bool]
    priority: Callable[[PatternSnapshot], FollowUpPriority]
    due_in_days: int
    dedup_policy: DedupPolicy
    content: Callable[[PatternSnapshot, datetime], SuggestionContent]
    dedup_window_days: int = 0


@dataclass
class RuleError:
    category: Optional[FollowUpCategory]  # None when the whole pass failed
    error: str


@dataclass
class RuleEvaluationResult:
    """Outcome of one pass of the rule set over a pattern."""
    created: List[FollowUpSuggestion] = field(default_factory=list)
    skipped: List[FollowUpCategory] = field(default_factory=list)
    errors: List[RuleError] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class FollowUpRuleEngine:
    """Evaluates the follow-up rules and persists new suggestions."""

    def __init__(self, store: AttendanceStore, clock: Callable[[], datetime] = None):
        self.store = store
        self.clock = clock or datetime.utcnow

        # Consecutive absences
        self.consecutive_absence_threshold = 3
        self.high_consecutive_absences = 4
        self.urgent_consecutive_absences = 5

        # Overall rate
        self.low_attendance_rate = 50.0
        self.critical_attendance_rate = 30.0
        self.min_classes_for_rate = 4

        # Recent rate that makes a declining trend worth a call
        self.declining_recent_rate = 60.0

        # First absence after a regular run
        self.first_absence_prior_streak = 5
        self.first_absence_dedup_days = 7

        self.long_term_absent_days = 42

        self.rules = self._build_rules()

    def _build_rules(self) -> List[FollowUpRule]:
        return [
            FollowUpRule(
                category=FollowUpCategory.CONSECUTIVE_ABSENCES,
                applies=self._consecutive_absences_applies,
                priority=self._consecutive_absences_priority,
                due_in_days=7,
                dedup_policy=DedupPolicy.OPEN_SUGGESTION,
                content=self._consecutive_absences_content,
            ),
            FollowUpRule(
                category=FollowUpCategory.LOW_ATTENDANCE_RATE,
                applies=self._low_rate_applies,
                priority=self._low_rate_priority,
                due_in_days=14,
                dedup_policy=DedupPolicy.OPEN_SUGGESTION,
                content=self._low_rate_content,
            ),
            FollowUpRule(
                category=FollowUpCategory.DECLINING_TREND,
                applies=self._declining_trend_applies,
                priority=lambda pattern: FollowUpPriority.MEDIUM,
                due_in_days=7,
                dedup_policy=DedupPolicy.OPEN_SUGGESTION,
                content=self._declining_trend_content,
            ),
            FollowUpRule(
                category=FollowUpCategory.FIRST_TIME_ABSENCE,
                applies=self._first_absence_applies,
                priority=lambda pattern: FollowUpPriority.LOW,
                due_in_days=3,
                dedup_policy=DedupPolicy.RECENT_CREATION,
                dedup_window_days=self.first_absence_dedup_days,
                content=self._first_absence_content,
            ),
            FollowUpRule(
                category=FollowUpCategory.LONG_TERM_ABSENT,
                applies=self._long_term_absent_applies,
                priority=lambda pattern: FollowUpPriority.URGENT,
                due_in_days=3,
                dedup_policy=DedupPolicy.OPEN_SUGGESTION,
                content=self._long_term_absent_content,
            ),
        ]

    async def evaluate(self, pattern: PatternSnapshot, now: Optional[datetime] = None) -> RuleEvaluationResult:
        """
        Run every rule against the pattern. A failing rule is logged and
        recorded in the result; the remaining rules still run.
        """
        now = now or self.clock()
        result = RuleEvaluationResult()

        if not pattern.has_history:
            return result

        for rule in self.rules:
            try:
                suggestion = await self.apply_rule(rule, pattern, now)
            except Exception as e:
                logger.error(
                    f"Follow-up rule {rule.category.value} failed for participant "
                    f"{pattern.participant_id} in group {pattern.group_id}: {e}",
                    exc_info=True
                )
                result.errors.append(RuleError(category=rule.category, error=str(e)))
                await self.store.rollback()
                continue

            if suggestion is None:
                if rule.applies(pattern, now):
                    result.skipped.append(rule.category)
                continue

            result.created.append(suggestion)

        return result

    async def apply_rule(
        self,
        rule: FollowUpRule,
        pattern: PatternSnapshot,
        now: datetime
    ) -> Optional[FollowUpSuggestion]:
        """Create the rule's suggestion if it triggers and is not a duplicate."""
        if not rule.applies(pattern, now):
            return None

        if await self.is_duplicate(rule, pattern, now):
            logger.debug(
                f"Skipping {rule.category.value} for participant {pattern.participant_id} "
                f"in group {pattern.group_id}: already covered"
            )
            return None

        content = rule.content(pattern, now)
        suggestion = await self.store.suggestions.create(
            group_id=pattern.group_id,
            participant_id=pattern.participant_id,
            category=rule.category,
            priority=rule.priority(pattern),
            title=content.title,
            description=content.description,
            suggested_action=content.suggested_action,
            trigger_reason=content.trigger_reason,
            trigger_data=content.trigger_data,
            due_date=now + timedelta(days=rule.due_in_days),
            status=FollowUpStatus.PENDING,
            created_at=now,
        )
        await self.store.commit()

        logger.info(
            f"Created {suggestion.priority.value} {rule.category.value} follow-up {suggestion.id} "
            f"for participant {pattern.participant_id} in group {pattern.group_id}"
        )
        return suggestion

    async def is_duplicate(self, rule: FollowUpRule, pattern: PatternSnapshot, now: datetime) -> bool:
        if rule.dedup_policy == DedupPolicy.RECENT_CREATION:
            since = now - timedelta(days=rule.dedup_window_days)
            existing = await self.store.suggestions.find_created_since(
                pattern.group_id, pattern.participant_id, rule.category, since
            )
        else:
            existing = await self.store.suggestions.find_open(
                pattern.group_id, pattern.participant_id, rule.category
            )
        return existing is not None

    # Rule 1: consecutive absences

    def _consecutive_absences_applies(self, pattern: PatternSnapshot, now: datetime) -> bool:
        return pattern.consecutive_absences >= self.consecutive_absence_threshold

    def _consecutive_absences_priority(self, pattern: PatternSnapshot) -> FollowUpPriority:
        if pattern.consecutive_absences >= self.urgent_consecutive_absences:
            return FollowUpPriority.URGENT
        if pattern.consecutive_absences >= self.high_consecutive_absences:
            return FollowUpPriority.HIGH
        return FollowUpPriority.MEDIUM

    def _consecutive_absences_content(self, pattern: PatternSnapshot, now: datetime) -> SuggestionContent:
        count = pattern.consecutive_absences
        return SuggestionContent(
            title=f"Missed {count} classes in a row",
            description=(
                f"This participant has been absent for the last {count} classes. "
                f"Overall attendance is {pattern.attendance_rate:.1f}%."
            ),
            suggested_action=(
                "Reach out personally by phone or message to check in, ask how they are "
                "doing and let them know they are missed."
            ),
            trigger_reason=f"{count} consecutive absences",
            trigger_data={
                "consecutive_absences": count,
                "attendance_rate": pattern.attendance_rate,
                "last_attendance_date": pattern.last_attendance_date,
            },
        )

    # Rule 2: low overall attendance rate

    def _low_rate_applies(self, pattern: PatternSnapshot, now: datetime) -> bool:
        return (
            pattern.attendance_rate < self.low_attendance_rate
            and pattern.total_classes_held >= self.min_classes_for_rate
        )

    def _low_rate_priority(self, pattern: PatternSnapshot) -> FollowUpPriority:
        if pattern.attendance_rate < self.critical_attendance_rate:
            return FollowUpPriority.HIGH
        return FollowUpPriority.MEDIUM

    def _low_rate_content(self, pattern: PatternSnapshot, now: datetime) -> SuggestionContent:
        attended = pattern.total_present + pattern.total_late
        return SuggestionContent(
            title=f"Low attendance rate ({pattern.attendance_rate:.0f}%)",
            description=(
                f"This participant has attended {attended} of "
                f"{pattern.total_classes_held} classes ({pattern.attendance_rate:.1f}%)."
            ),
            suggested_action=(
                "Have a conversation about what is getting in the way of attending "
                "and whether the meeting time or format still works for them."
            ),
            trigger_reason=f"Attendance rate {pattern.attendance_rate:.1f}% below {self.low_attendance_rate:.0f}%",
            trigger_data={
                "attendance_rate": pattern.attendance_rate,
                "total_classes_held": pattern.total_classes_held,
                "total_present": pattern.total_present,
                "total_late": pattern.total_late,
                "total_absent": pattern.total_absent,
            },
        )

    # Rule 3: declining trend with a low recent rate

    def _declining_trend_applies(self, pattern: PatternSnapshot, now: datetime) -> bool:
        return (
            pattern.trend_direction == TrendDirection.DECLINING
            and pattern.last_4_weeks_rate < self.declining_recent_rate
        )

    def _declining_trend_content(self, pattern: PatternSnapshot, now: datetime) -> SuggestionContent:
        return SuggestionContent(
            title="Attendance is dropping off",
            description=(
                f"Attendance over the last 4 weeks is {pattern.last_4_weeks_rate:.1f}%, "
                f"down from {pattern.last_8_weeks_rate:.1f}% in the 4 weeks before."
            ),
            suggested_action=(
                "Check in informally to see whether anything has changed for them "
                "recently and encourage them to come back."
            ),
            trigger_reason=(
                f"Recent rate {pattern.last_4_weeks_rate:.1f}% vs prior "
                f"{pattern.last_8_weeks_rate:.1f}%"
            ),
            trigger_data={
                "last_4_weeks_rate": pattern.last_4_weeks_rate,
                "last_8_weeks_rate": pattern.last_8_weeks_rate,
                "trend_direction": pattern.trend_direction.value,
            },
        )

    # Rule 4: first absence after a regular run

    def _first_absence_applies(self, pattern: PatternSnapshot, now: datetime) -> bool:
        return (
            pattern.consecutive_absences == 1
            and pattern.prior_presence_streak >= self.first_absence_prior_streak
            and pattern.last_attendance_status == AttendanceStatus.ABSENT
        )

    def _first_absence_content(self, pattern: PatternSnapshot, now: datetime) -> SuggestionContent:
        return SuggestionContent(
            title="Missed class after a regular run",
            description=(
                f"This participant attended {pattern.prior_presence_streak} classes in a row "
                f"before missing the class on {pattern.last_attendance_date}."
            ),
            suggested_action="Send a quick friendly note saying they were missed.",
            trigger_reason=f"First absence after {pattern.prior_presence_streak} consecutive attendances",
            trigger_data={
                "consecutive_absences": pattern.consecutive_absences,
                "prior_presence_streak": pattern.prior_presence_streak,
                "last_attendance_date": pattern.last_attendance_date,
                "last_attendance_status": pattern.last_attendance_status.value,
            },
        )

    # Rule 5: nothing recorded for a long time

    def _long_term_absent_applies(self, pattern: PatternSnapshot, now: datetime) -> bool:
        if pattern.last_attendance_date is None:
            return False
        cutoff = now - timedelta(days=self.long_term_absent_days)
        return class_datetime(pattern.last_attendance_date) < cutoff

    def _long_term_absent_content(self, pattern: PatternSnapshot, now: datetime) -> SuggestionContent:
        days_since = (now - class_datetime(pattern.last_attendance_date)).days
        weeks_since = days_since // 7
        return SuggestionContent(
            title=f"No attendance recorded in {weeks_since} weeks",
            description=(
                f"The last recorded class for this participant was {pattern.last_attendance_date}, "
                f"{weeks_since} weeks ago."
            ),
            suggested_action=(
                "Contact them directly to find out whether they plan to return, and "
                "update their group membership if they have moved on."
            ),
            trigger_reason=f"Last attendance {weeks_since} weeks ago",
            trigger_data={
                "weeks_since_attendance": weeks_since,
                "days_since_attendance": days_since,
                "last_attendance_date": pattern.last_attendance_date,
                "last_attendance_status": (
                    pattern.last_attendance_status.value if pattern.last_attendance_status else None
                ),
            },
        )
