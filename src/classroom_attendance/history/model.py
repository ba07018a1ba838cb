from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AttendanceStatus, SessionState, SessionType


@dataclass(frozen=True)
class HistoryRecord:
    """Durable outcome of one student in one session, keyed by (student, session)."""

    student_id: int
    session_id: int
    class_id: int
    status: AttendanceStatus
    marked_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class HistoryRow:
    """Read-model for a student's history screens (history joined with session and class)."""

    record: HistoryRecord
    class_name: Optional[str] = None
    subject: Optional[str] = None
    attendance_date: Optional[datetime] = None
    session_type: Optional[SessionType] = None
    session_state: Optional[SessionState] = None
    duration_minutes: Optional[int] = None

    def to_dict(self) -> dict:
        r = self.record
        return {
            "attendance": {
                "id": r.session_id,
                "attendanceDate": self.attendance_date.isoformat() if self.attendance_date else None,
                "attendanceType": self.session_type.value if self.session_type else None,
                "status": self.session_state.value if self.session_state else None,
                "duration": self.duration_minutes,
            },
            "class": {"id": r.class_id, "className": self.class_name, "subject": self.subject},
            "status": r.status.value,
            "markedAt": r.marked_at.isoformat() if r.marked_at else None,
            "notes": r.notes,
        }
