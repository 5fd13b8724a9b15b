from pydantic import BaseModel, Field, validator
from datetime import datetime, date
from typing import Optional, List

from group_attendance.models.attendance import AttendanceStatus
from group_attendance.models.attendance_pattern import TrendDirection
from group_attendance.schemas.follow_up import FollowUpResponse


# Recording Schemas
class AttendanceRecordRequest(BaseModel):
    group_id: str = Field(..., min_length=1, max_length=64)
    participant_id: str = Field(..., min_length=1, max_length=64)
    class_date: date
    status: AttendanceStatus
    note: Optional[str] = Field(None, max_length=1000)
    recorded_by: Optional[str] = Field(None, max_length=64)

    @validator("status", pre=True)
    def normalize_status(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class BulkAttendanceEntry(BaseModel):
    participant_id: str = Field(..., min_length=1, max_length=64)
    # Checked per entry by the engine so one bad status only fails its own entry
    status: str
    note: Optional[str] = Field(None, max_length=1000)
    recorded_by: Optional[str] = Field(None, max_length=64)


class BulkAttendanceRequest(BaseModel):
    group_id: str = Field(..., min_length=1, max_length=64)
    class_date: date
    entries: List[BulkAttendanceEntry] = Field(..., min_length=1)
    recorded_by: Optional[str] = Field(None, max_length=64)


class AttendanceEventResponse(BaseModel):
    id: int
    group_id: str
    participant_id: str
    class_date: date
    status: AttendanceStatus
    note: Optional[str] = None
    recorded_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Pattern Schemas
class AttendancePatternResponse(BaseModel):
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
    last_attendance_date: Optional[date] = None
    last_attendance_status: Optional[AttendanceStatus] = None
    last_4_weeks_rate: float
    last_8_weeks_rate: float
    trend_direction: TrendDirection
    last_calculated_at: datetime

    class Config:
        from_attributes = True


class AttendanceRecordResponse(BaseModel):
    success: bool
    event: AttendanceEventResponse
    pattern: Optional[AttendancePatternResponse] = None
    suggestions_created: int = 0
    suggestions: List[FollowUpResponse] = []
    suggestions_evaluated: bool = True


class BulkEntryFailureResponse(BaseModel):
    index: int
    participant_id: Optional[str] = None
    error: str

    class Config:
        from_attributes = True


class BulkAttendanceResponse(BaseModel):
    success: bool
    message: str
    recorded_count: int
    failed_count: int
    suggestions_created: int
    events: List[AttendanceEventResponse] = []
    failed: List[BulkEntryFailureResponse] = []


class PatternRecalculationResponse(BaseModel):
    pattern: AttendancePatternResponse
    persisted: bool
    suggestions_created: List[FollowUpResponse] = []


# Statistics Schemas
class AttendanceTotalsResponse(BaseModel):
    total_records: int
    total_present: int
    total_absent: int
    total_excused: int
    total_late: int
    attendance_rate: float
    unique_participants: int

    class Config:
        from_attributes = True


class WeeklyAttendanceResponse(BaseModel):
    week: date
    total: int
    present: int
    absent: int
    excused: int
    late: int
    attendance_rate: float

    class Config:
        from_attributes = True


class GroupAttendanceStatsResponse(BaseModel):
    group_id: str
    weeks: int
    start_date: date
    end_date: date
    overall: AttendanceTotalsResponse
    weekly: List[WeeklyAttendanceResponse] = []

    class Config:
        from_attributes = True


class DashboardOverviewResponse(BaseModel):
    overall_rate: float
    group_count: int
    pending_follow_up_count: int
    patterns_needing_attention_count: int
    period_days: int

    class Config:
        from_attributes = True
