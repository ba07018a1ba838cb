from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class CachedStats:
    """Materialized attendance summary stored on the student's user row.

    Derived data: always rebuilt from history and enrollments, never patched
    incrementally.
    """

    sessions_count: int = 0
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    percentage: int = 0
    enrolled_classes_count: int = 0
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "totalAttendanceSessions": self.sessions_count,
            "totalPresent": self.present,
            "totalAbsent": self.absent,
            "totalLate": self.late,
            "totalExcused": self.excused,
            "attendancePercentage": self.percentage,
            "totalClassesEnrolled": self.enrolled_classes_count,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
