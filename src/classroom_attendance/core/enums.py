from __future__ import annotations

from enum import Enum


class EnrollmentState(str, Enum):
    """State of one student's entry in one class."""

    PENDING = "pending"  # invited by the teacher
    REQUESTED = "requested"  # asked to join by the student
    ACCEPTED = "accepted"


class SessionType(str, Enum):
    QUICK = "quick"
    SCHEDULED = "scheduled"


class SessionState(str, Enum):
    """Lifecycle of an attendance session."""

    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AttendanceStatus(str, Enum):
    """Per-student outcome inside a session."""

    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"
