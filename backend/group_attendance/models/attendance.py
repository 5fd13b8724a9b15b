from sqlalchemy import Column, Integer, String, Date, DateTime, Enum as SQLEnum, UniqueConstraint
from datetime import datetime
import enum

from group_attendance.core.database import Base


class AttendanceStatus(str, enum.Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"
    EXCUSED = "EXCUSED"
    LATE = "LATE"


# Statuses that count toward the attendance rate
ATTENDED_STATUSES = (AttendanceStatus.PRESENT, AttendanceStatus.LATE)


class AttendanceEvent(Base):
    """One attendance mark for a participant at one class date of a group."""
    __tablename__ = "attendance_events"
    __table_args__ = (
        UniqueConstraint("group_id", "participant_id", "class_date", name="uq_attendance_event_key"),
    )

    id = Column(Integer, primary_key=True, index=True)

    group_id = Column(String(64), nullable=False, index=True)
    participant_id = Column(String(64), nullable=False, index=True)
    class_date = Column(Date, nullable=False)

    status = Column(SQLEnum(AttendanceStatus), nullable=False)
    note = Column(String(1000), nullable=True)
    recorded_by = Column(String(64), nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    def __repr__(self):
        return (
            f"<AttendanceEvent group={self.group_id} participant={self.participant_id} "
            f"date={self.class_date} status={self.status}>"
        )
