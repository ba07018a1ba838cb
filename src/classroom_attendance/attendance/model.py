from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import percentage
from ..core.enums import AttendanceStatus, SessionState, SessionType


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Location:
    """Where the session was taken. Stored as given, never validated against a geofence."""

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    accuracy: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Location"]:
        if not data:
            return None

        def _num(key: str) -> Optional[float]:
            value = data.get(key)
            return float(value) if value not in (None, "") else None

        address = data.get("address")
        if address is not None:
            address = str(address).strip() or None
        return cls(latitude=_num("latitude"), longitude=_num("longitude"), address=address, accuracy=_num("accuracy"))

    def to_dict(self) -> dict:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "accuracy": self.accuracy,
        }


@dataclass(frozen=True)
class StudentRecord:
    """One student's live status inside one session."""

    student_id: int
    status: AttendanceStatus = AttendanceStatus.ABSENT
    marked_at: Optional[datetime] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "student": self.student_id,
            "status": self.status.value,
            "markedAt": _iso(self.marked_at),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class SessionTotals:
    students: int = 0
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0

    @property
    def percentage(self) -> int:
        return percentage(self.present, self.students)

    @classmethod
    def from_records(cls, records: Sequence[StudentRecord]) -> "SessionTotals":
        statuses = [r.status for r in records]
        return cls(
            students=len(statuses),
            present=statuses.count(AttendanceStatus.PRESENT),
            absent=statuses.count(AttendanceStatus.ABSENT),
            late=statuses.count(AttendanceStatus.LATE),
            excused=statuses.count(AttendanceStatus.EXCUSED),
        )

    def to_dict(self) -> dict:
        return {
            "totalStudents": self.students,
            "totalPresent": self.present,
            "totalAbsent": self.absent,
            "totalLate": self.late,
            "totalExcused": self.excused,
            "attendancePercentage": self.percentage,
        }


@dataclass(frozen=True)
class AttendanceSession:
    """Domain entity: one attendance-taking event for a class."""

    session_id: int
    class_id: int
    owner_id: int
    session_type: SessionType
    state: SessionState
    attendance_date: datetime
    started_at: datetime
    scheduled_for: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    location: Optional[Location] = None
    notes: Optional[str] = None
    records: tuple[StudentRecord, ...] = ()
    totals: SessionTotals = SessionTotals()

    @property
    def is_in_progress(self) -> bool:
        return self.state == SessionState.IN_PROGRESS

    def is_owner(self, user_id: int) -> bool:
        return int(user_id) == self.owner_id

    def record_for(self, student_id: int) -> Optional[StudentRecord]:
        for record in self.records:
            if record.student_id == int(student_id):
                return record
        return None

    def student_ids(self) -> list[int]:
        return [r.student_id for r in self.records]

    def summary(self) -> dict:
        data = {
            "attendanceId": self.session_id,
            "class": self.class_id,
            "attendanceDate": _iso(self.attendance_date),
            "attendanceType": self.session_type.value,
            "status": self.state.value,
            "duration": self.duration_minutes,
        }
        data.update(self.totals.to_dict())
        return data

    def to_dict(self, *, include_records: bool = True) -> dict:
        data = {
            "id": self.session_id,
            "class": self.class_id,
            "takenBy": self.owner_id,
            "attendanceType": self.session_type.value,
            "status": self.state.value,
            "attendanceDate": _iso(self.attendance_date),
            "scheduledFor": _iso(self.scheduled_for),
            "startedAt": _iso(self.started_at),
            "finishedAt": _iso(self.finished_at),
            "duration": self.duration_minutes,
            "location": self.location.to_dict() if self.location else None,
            "notes": self.notes,
        }
        data.update(self.totals.to_dict())
        if include_records:
            data["studentRecords"] = [r.to_dict() for r in self.records]
        return data


@dataclass(frozen=True)
class StudentMark:
    """One requested status change."""

    student_id: int
    status: AttendanceStatus
    notes: Optional[str] = None


@dataclass(frozen=True)
class RemovalResult:
    removed: tuple[int, ...]
    skipped: tuple[int, ...]

    def to_dict(self) -> dict:
        return {
            "removedCount": len(self.removed),
            "skippedCount": len(self.skipped),
            "removed": list(self.removed),
            "skipped": list(self.skipped),
        }


@dataclass(frozen=True)
class SessionPatch:
    """Fields a teacher may change on an existing session.

    ``None`` leaves a field untouched; an empty ``notes`` string clears the notes.
    """

    attendance_date: Optional[datetime] = None
    scheduled_for: Optional[datetime] = None
    location: Optional[Location] = None
    notes: Optional[str] = None
    state: Optional[SessionState] = None
