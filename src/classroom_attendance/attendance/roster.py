from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Iterable, Iterator, Optional, Sequence

from ..core.enums import AttendanceStatus
from ..core.exceptions import NotFoundError
from .model import RemovalResult, SessionTotals, StudentMark, StudentRecord


class SessionRoster:
    """The student records of one session.

    Built once from the class's accepted students; afterwards students can only
    be marked or removed, never added.
    """

    def __init__(self, records: Iterable[StudentRecord] = ()):
        self._records: dict[int, StudentRecord] = {}
        for record in records:
            self._records[int(record.student_id)] = record

    @classmethod
    def snapshot(cls, student_ids: Iterable[int]) -> "SessionRoster":
        return cls(StudentRecord(student_id=int(sid), status=AttendanceStatus.ABSENT) for sid in student_ids)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, student_id) -> bool:
        return int(student_id) in self._records

    def __iter__(self) -> Iterator[StudentRecord]:
        return iter(self._records.values())

    @property
    def records(self) -> tuple[StudentRecord, ...]:
        return tuple(self._records.values())

    def student_ids(self) -> list[int]:
        return list(self._records)

    def get(self, student_id: int) -> Optional[StudentRecord]:
        return self._records.get(int(student_id))

    def missing(self, student_ids: Iterable[int]) -> list[int]:
        return [int(sid) for sid in student_ids if int(sid) not in self._records]

    def mark(self, mark: StudentMark, *, at: datetime) -> StudentRecord:
        return self.mark_many([mark], at=at)[0]

    def mark_many(self, marks: Sequence[StudentMark], *, at: datetime) -> list[StudentRecord]:
        """Apply marks all-or-nothing. A student marked twice keeps the last mark."""

        missing = self.missing(m.student_id for m in marks)
        if missing:
            ids = ", ".join(str(sid) for sid in dict.fromkeys(missing))
            raise NotFoundError(f"Student(s) not part of this attendance: {ids}")

        changed: dict[int, StudentRecord] = {}
        for m in marks:
            sid = int(m.student_id)
            record = replace(self._records[sid], status=m.status, marked_at=at, notes=m.notes)
            self._records[sid] = record
            changed[sid] = record
        return list(changed.values())

    def remove(self, student_ids: Iterable[int]) -> RemovalResult:
        removed: list[int] = []
        skipped: list[int] = []
        for sid in dict.fromkeys(int(s) for s in student_ids):
            if self._records.pop(sid, None) is None:
                skipped.append(sid)
            else:
                removed.append(sid)
        return RemovalResult(removed=tuple(removed), skipped=tuple(skipped))

    def totals(self) -> SessionTotals:
        return SessionTotals.from_records(self.records)
