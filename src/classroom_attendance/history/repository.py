from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence

from ..common.pagination import Page
from ..core.enums import AttendanceStatus
from .model import HistoryRecord, HistoryRow

StatusCounts = Mapping[AttendanceStatus, int]


class HistoryRepository(Protocol):
    """Durable per-(student, session) outcomes.

    Independent of the live session document: statistics and personal history
    read from here so session edits or deletions never lose the audit trail
    of finished work.
    """

    def upsert_many(self, records: Sequence[HistoryRecord]) -> int:
        raise NotImplementedError

    def delete_for_session(self, session_id: int) -> int:
        raise NotImplementedError

    def delete_for_session_students(self, session_id: int, student_ids: Sequence[int]) -> int:
        raise NotImplementedError

    def delete_for_class(self, class_id: int) -> int:
        raise NotImplementedError

    def student_ids_for_session(self, session_id: int) -> Sequence[int]:
        raise NotImplementedError

    def student_ids_for_class(self, class_id: int) -> Sequence[int]:
        raise NotImplementedError

    def list_for_student(
        self,
        student_id: int,
        *,
        class_id: Optional[int] = None,
        status: Optional[AttendanceStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page[HistoryRow]:
        """Most recently marked first."""

        raise NotImplementedError

    def status_counts(self, student_ids: Sequence[int]) -> Mapping[int, StatusCounts]:
        """Per-student counts by status in a single aggregation."""

        raise NotImplementedError

    def status_counts_by_class(self, student_id: int) -> Mapping[int, StatusCounts]:
        """One student's counts by status, grouped per class."""

        raise NotImplementedError
