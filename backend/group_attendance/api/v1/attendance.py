"""
API endpoints for group attendance recording, participant patterns and
follow-up suggestions.
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from typing import Optional, List
import logging

from group_attendance.core.database import get_db
from group_attendance.core.exceptions import AttendanceServiceError
from group_attendance.models.follow_up import FollowUpStatus, FollowUpPriority
from group_attendance.repositories import AttendanceStore, SQLAlchemyAttendanceStore
from group_attendance.services.attendance_engine import AttendanceEngine
from group_attendance.services.attendance_analytics import AttendanceAnalyticsService
from group_attendance.services.follow_up_service import FollowUpService
from group_attendance.schemas.attendance import (
    AttendanceRecordRequest, AttendanceRecordResponse, BulkAttendanceRequest,
    BulkAttendanceResponse, BulkEntryFailureResponse, AttendanceEventResponse,
    AttendancePatternResponse, PatternRecalculationResponse,
    GroupAttendanceStatsResponse, DashboardOverviewResponse
)
from group_attendance.schemas.follow_up import FollowUpResponse, FollowUpUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter()


async def get_store(db: AsyncSession = Depends(get_db)) -> AttendanceStore:
    return SQLAlchemyAttendanceStore(db)


def _http_error(error: AttendanceServiceError) -> HTTPException:
    logger.info(f"Request rejected with {error.status_code}: {error.message}")
    return HTTPException(status_code=error.status_code, detail=error.message)


@router.post("/record", response_model=AttendanceRecordResponse, status_code=201)
async def record_attendance(
    request: AttendanceRecordRequest,
    store: AttendanceStore = Depends(get_store)
):
    """Record (or overwrite) one participant's attendance for a class date."""
    engine = AttendanceEngine(store)
    try:
        result = await engine.record_attendance(
            group_id=request.group_id,
            participant_id=request.participant_id,
            class_date=request.class_date,
            status=request.status,
            note=request.note,
            recorded_by=request.recorded_by
        )
    except AttendanceServiceError as e:
        raise _http_error(e)

    return AttendanceRecordResponse(
        success=True,
        event=AttendanceEventResponse.model_validate(result.event),
        pattern=AttendancePatternResponse.model_validate(result.pattern) if result.pattern else None,
        suggestions_created=len(result.suggestions_created),
        suggestions=[FollowUpResponse.model_validate(s) for s in result.suggestions_created],
        suggestions_evaluated=result.suggestions_evaluated
    )


@router.post("/record-bulk", response_model=BulkAttendanceResponse, status_code=201)
async def record_bulk_attendance(
    request: BulkAttendanceRequest,
    store: AttendanceStore = Depends(get_store)
):
    """Record one class date for many participants; failed entries are reported, not rolled back."""
    engine = AttendanceEngine(store)
    entries = []
    for entry in request.entries:
        data = entry.model_dump()
        data["recorded_by"] = data.get("recorded_by") or request.recorded_by
        entries.append(data)

    try:
        result = await engine.record_bulk_attendance(request.group_id, request.class_date, entries)
    except AttendanceServiceError as e:
        raise _http_error(e)

    return BulkAttendanceResponse(
        success=not result.failed,
        message=f"Recorded {len(result.recorded)} of {len(entries)} entries",
        recorded_count=len(result.recorded),
        failed_count=len(result.failed),
        suggestions_created=result.suggestions_created,
        events=[AttendanceEventResponse.model_validate(e) for e in result.events],
        failed=[BulkEntryFailureResponse.model_validate(f) for f in result.failed]
    )


@router.get("/group/{group_id}", response_model=List[AttendanceEventResponse])
async def get_group_attendance(
    group_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    store: AttendanceStore = Depends(get_store)
):
    engine = AttendanceEngine(store)
    try:
        events = await engine.list_group_attendance(group_id, start_date, end_date)
    except AttendanceServiceError as e:
        raise _http_error(e)
    return [AttendanceEventResponse.model_validate(e) for e in events]


@router.get("/group/{group_id}/stats", response_model=GroupAttendanceStatsResponse)
async def get_group_stats(
    group_id: str,
    weeks: int = Query(12),
    store: AttendanceStore = Depends(get_store)
):
    """Totals and weekly breakdown for a group over the last `weeks` weeks."""
    analytics = AttendanceAnalyticsService(store)
    try:
        stats = await analytics.group_stats(group_id, weeks)
    except AttendanceServiceError as e:
        raise _http_error(e)
    return GroupAttendanceStatsResponse.model_validate(stats)


@router.get("/patterns/{participant_id}/{group_id}", response_model=AttendancePatternResponse)
async def get_participant_pattern(
    participant_id: str,
    group_id: str,
    store: AttendanceStore = Depends(get_store)
):
    engine = AttendanceEngine(store)
    try:
        pattern = await engine.get_pattern(group_id, participant_id)
    except AttendanceServiceError as e:
        raise _http_error(e)
    return AttendancePatternResponse.model_validate(pattern)


@router.post("/patterns/{participant_id}/{group_id}/recalculate", response_model=PatternRecalculationResponse)
async def recalculate_participant_pattern(
    participant_id: str,
    group_id: str,
    store: AttendanceStore = Depends(get_store)
):
    """Manually recompute a participant's pattern and evaluate follow-up rules."""
    engine = AttendanceEngine(store)
    try:
        recalculation = await engine.recalculate_pattern(group_id, participant_id)
    except AttendanceServiceError as e:
        raise _http_error(e)

    return PatternRecalculationResponse(
        pattern=AttendancePatternResponse.model_validate(recalculation.pattern),
        persisted=recalculation.persisted,
        suggestions_created=[FollowUpResponse.model_validate(s) for s in recalculation.suggestions_created]
    )


@router.get("/follow-ups", response_model=List[FollowUpResponse])
async def list_follow_ups(
    group_id: Optional[str] = Query(None),
    status: Optional[FollowUpStatus] = Query(None),
    priority: Optional[FollowUpPriority] = Query(None),
    assigned_to: Optional[str] = Query(None),
    store: AttendanceStore = Depends(get_store)
):
    service = FollowUpService(store)
    suggestions = await service.list_follow_ups(
        group_id=group_id, status=status, priority=priority, assigned_to=assigned_to
    )
    return [FollowUpResponse.model_validate(s) for s in suggestions]


@router.get("/follow-ups/{suggestion_id}", response_model=FollowUpResponse)
async def get_follow_up(
    suggestion_id: int,
    store: AttendanceStore = Depends(get_store)
):
    service = FollowUpService(store)
    try:
        suggestion = await service.get_follow_up(suggestion_id)
    except AttendanceServiceError as e:
        raise _http_error(e)
    return FollowUpResponse.model_validate(suggestion)


@router.patch("/follow-ups/{suggestion_id}", response_model=FollowUpResponse)
async def update_follow_up(
    suggestion_id: int,
    update: FollowUpUpdateRequest,
    store: AttendanceStore = Depends(get_store)
):
    """Change status, assignment or contact details of a follow-up."""
    service = FollowUpService(store)
    try:
        suggestion = await service.update_follow_up(suggestion_id, update.model_dump(exclude_unset=True))
    except AttendanceServiceError as e:
        raise _http_error(e)
    return FollowUpResponse.model_validate(suggestion)


@router.delete("/follow-ups/{suggestion_id}", response_model=FollowUpResponse)
async def dismiss_follow_up(
    suggestion_id: int,
    store: AttendanceStore = Depends(get_store)
):
    service = FollowUpService(store)
    try:
        suggestion = await service.dismiss_follow_up(suggestion_id)
    except AttendanceServiceError as e:
        raise _http_error(e)
    return FollowUpResponse.model_validate(suggestion)


@router.get("/dashboard", response_model=DashboardOverviewResponse)
async def get_dashboard_overview(store: AttendanceStore = Depends(get_store)):
    analytics = AttendanceAnalyticsService(store)
    overview = await analytics.dashboard_overview()
    return DashboardOverviewResponse.model_validate(overview)
