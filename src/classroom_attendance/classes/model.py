from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import EnrollmentState


@dataclass(frozen=True)
class EnrollmentEntry:
    """One student's enrollment within one class."""

    class_id: int
    student_id: int
    state: EnrollmentState
    enrolled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "classId": self.class_id,
            "studentId": self.student_id,
            "status": self.state.value,
            "enrolledAt": self.enrolled_at.isoformat() if self.enrolled_at else None,
        }


@dataclass(frozen=True)
class EnrollmentCounts:
    accepted: int = 0
    pending: int = 0
    requested: int = 0

    @property
    def total(self) -> int:
        return self.accepted + self.pending + self.requested

    @classmethod
    def from_entries(cls, entries: Sequence[EnrollmentEntry]) -> "EnrollmentCounts":
        states = [e.state for e in entries]
        return cls(
            accepted=states.count(EnrollmentState.ACCEPTED),
            pending=states.count(EnrollmentState.PENDING),
            requested=states.count(EnrollmentState.REQUESTED),
        )

    def to_dict(self) -> dict:
        return {
            "studentCount": self.total,
            "acceptedStudentCount": self.accepted,
            "pendingStudentCount": self.pending,
            "requestedStudentCount": self.requested,
        }


@dataclass(frozen=True)
class Classroom:
    """Domain entity: a class owned by its creating teacher."""

    class_id: int
    class_name: str
    subject: str
    owner_id: int
    entries: tuple[EnrollmentEntry, ...] = ()
    created_at: Optional[datetime] = None

    def is_owner(self, user_id: int) -> bool:
        return int(user_id) == self.owner_id

    def entry_for(self, student_id: int) -> Optional[EnrollmentEntry]:
        for entry in self.entries:
            if entry.student_id == int(student_id):
                return entry
        return None

    def has_access(self, user_id: int) -> bool:
        return self.is_owner(user_id) or self.entry_for(user_id) is not None

    def accepted_student_ids(self) -> list[int]:
        return [e.student_id for e in self.entries if e.state == EnrollmentState.ACCEPTED]

    def counts(self) -> EnrollmentCounts:
        return EnrollmentCounts.from_entries(self.entries)

    def to_dict(self, *, include_entries: bool = True) -> dict:
        data = {
            "id": self.class_id,
            "className": self.class_name,
            "subject": self.subject,
            "createdBy": self.owner_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        data.update(self.counts().to_dict())
        if include_entries:
            data["students"] = [e.to_dict() for e in self.entries]
        return data
