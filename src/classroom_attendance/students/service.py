from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ..classes.model import Classroom
from ..classes.repository import ClassRepository
from ..common.pagination import Page, normalize_page
from ..common.validators import require_choice, require_positive_id
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import AttendanceStatus, EnrollmentState
from ..core.exceptions import AuthorizationError, NotFoundError
from ..history.model import HistoryRow
from ..history.repository import HistoryRepository
from ..stats.aggregator import StatsAggregator, compute_stats
from ..stats.model import CachedStats
from ..users.repository import UserRepository


@dataclass(frozen=True)
class ClassAttendance:
    classroom: Classroom
    records: Page[HistoryRow]
    stats: CachedStats

    def to_dict(self) -> dict:
        return {
            "class": self.classroom.to_dict(include_entries=False),
            "attendanceRecords": [r.to_dict() for r in self.records.items],
            "statistics": self.stats.to_dict(),
            "pagination": self.records.pagination(),
        }


@dataclass(frozen=True)
class StudentSummary:
    overall: CachedStats
    per_class: Sequence[tuple[Classroom, CachedStats]]

    def to_dict(self) -> dict:
        return {
            "overallStats": self.overall.to_dict(),
            "classSummaries": [
                {"class": c.to_dict(include_entries=False), "statistics": s.to_dict()} for c, s in self.per_class
            ],
        }


class StudentService:
    """Read side for the logged-in student: classes, invitations and history."""

    def __init__(
        self,
        classes: ClassRepository,
        history: HistoryRepository,
        users: UserRepository,
        stats: StatsAggregator,
    ):
        self._classes = classes
        self._history = history
        self._users = users
        self._stats = stats

    def enrolled_classes(self, student_id: int) -> Sequence[Classroom]:
        return self._classes.list_for_student(int(student_id), state=EnrollmentState.ACCEPTED)

    def invitations(self, student_id: int) -> Sequence[Classroom]:
        return self._classes.list_for_student(int(student_id), state=EnrollmentState.PENDING)

    def my_records(self, student_id: int, *, class_id=None, status=None, page=None, limit=None) -> Page[HistoryRow]:
        page, limit = normalize_page(page, limit, default_limit=DEFAULT_HISTORY_LIMIT)
        return self._history.list_for_student(
            int(student_id),
            class_id=require_positive_id(class_id, "Class ID") if class_id not in (None, "") else None,
            status=require_choice(status, AttendanceStatus, "Status") if status else None,
            page=page,
            limit=limit,
        )

    def class_attendance(self, student_id: int, class_id: int, *, page=None, limit=None) -> ClassAttendance:
        klass = self._classes.get_by_id(int(class_id))
        if not klass:
            raise NotFoundError("Class not found")
        entry = klass.entry_for(student_id)
        if entry is None or entry.state != EnrollmentState.ACCEPTED:
            raise AuthorizationError("You are not enrolled in this class")

        page, limit = normalize_page(page, limit, default_limit=DEFAULT_HISTORY_LIMIT)
        records = self._history.list_for_student(int(student_id), class_id=klass.class_id, page=page, limit=limit)
        counts = self._history.status_counts_by_class(int(student_id)).get(klass.class_id, {})
        return ClassAttendance(classroom=klass, records=records, stats=compute_stats(counts, 1))

    def summary(self, student_id: int) -> StudentSummary:
        overall = self.get_stats(student_id)
        by_class = self._history.status_counts_by_class(int(student_id))
        per_class = [
            (klass, compute_stats(by_class.get(klass.class_id, {}), 1)) for klass in self.enrolled_classes(student_id)
        ]
        return StudentSummary(overall=overall, per_class=per_class)

    def get_stats(self, student_id: int) -> CachedStats:
        user = self._users.get_by_id(int(student_id))
        if not user:
            raise NotFoundError("User not found")
        return user.stats

    def refresh_stats(self, student_id: int) -> CachedStats:
        if not self._users.get_by_id(int(student_id)):
            raise NotFoundError("User not found")
        return self._stats.recompute(int(student_id))
