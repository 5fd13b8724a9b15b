"""
Attendance pattern model holding the derived per-participant profile for a group.
Rows are only ever written by the pattern aggregator; users never edit them.
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, Float, Enum as SQLEnum, UniqueConstraint
import enum
from datetime import datetime

from group_attendance.core.database import Base
from group_attendance.models.attendance import AttendanceStatus


class TrendDirection(str, enum.Enum):
    """Momentum of recent attendance compared to the prior window."""
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class AttendancePattern(Base):
    """
    Rolling statistical profile of one participant within one group.
    Always a full recompute of every attendance event for the pair.
    """
    __tablename__ = "attendance_patterns"
    __table_args__ = (
        UniqueConstraint("group_id", "participant_id", name="uq_attendance_pattern_pair"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Target information
    group_id = Column(String(64), nullable=False, index=True)
    participant_id = Column(String(64), nullable=False, index=True)

    # Totals
    total_classes_held = Column(Integer, nullable=False, default=0)
    total_present = Column(Integer, nullable=False, default=0)
    total_absent = Column(Integer, nullable=False, default=0)
    total_excused = Column(Integer, nullable=False, default=0)
    total_late = Column(Integer, nullable=False, default=0)
    attendance_rate = Column(Float, nullable=False, default=0.0)  # 0-100

    # Streaks (at most one of the two is nonzero)
    consecutive_absences = Column(Integer, nullable=False, default=0)
    consecutive_presences = Column(Integer, nullable=False, default=0)
    # Present/late run directly preceding the current absence run
    prior_presence_streak = Column(Integer, nullable=False, default=0)

    last_attendance_date = Column(Date, nullable=True)
    last_attendance_status = Column(SQLEnum(AttendanceStatus), nullable=True)

    # Trend windows
    last_4_weeks_rate = Column(Float, nullable=False, default=0.0)
    last_8_weeks_rate = Column(Float, nullable=False, default=0.0)
    trend_direction = Column(SQLEnum(TrendDirection), nullable=False, default=TrendDirection.STABLE)

    last_calculated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return (
            f"<AttendancePattern group={self.group_id} participant={self.participant_id} "
            f"rate={self.attendance_rate:.1f} trend={self.trend_direction}>"
        )
