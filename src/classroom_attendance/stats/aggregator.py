from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional

from ..classes.repository import ClassRepository
from ..common.datetime_utils import utc_now, percentage
from ..core.enums import AttendanceStatus
from ..history.repository import HistoryRepository, StatusCounts
from ..users.repository import UserRepository
from .model import CachedStats

logger = logging.getLogger(__name__)


def compute_stats(
    counts: StatusCounts,
    enrolled_classes_count: int,
    *,
    updated_at: Optional[datetime] = None,
) -> CachedStats:
    """Pure derivation of a student's summary from their status counts."""

    present = int(counts.get(AttendanceStatus.PRESENT, 0))
    absent = int(counts.get(AttendanceStatus.ABSENT, 0))
    late = int(counts.get(AttendanceStatus.LATE, 0))
    excused = int(counts.get(AttendanceStatus.EXCUSED, 0))
    sessions = present + absent + late + excused
    return CachedStats(
        sessions_count=sessions,
        present=present,
        absent=absent,
        late=late,
        excused=excused,
        percentage=percentage(present, sessions),
        enrolled_classes_count=int(enrolled_classes_count),
        updated_at=updated_at,
    )


class StatsAggregator:
    """Rebuilds cached per-student statistics from history and enrollments.

    Every run is a full re-derivation, so concurrent runs for the same student
    converge on the same snapshot regardless of write order.
    """

    def __init__(
        self,
        history: HistoryRepository,
        classes: ClassRepository,
        users: UserRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._history = history
        self._classes = classes
        self._users = users
        self._clock = clock

    def recompute(self, student_id: int) -> CachedStats:
        return self.bulk_recompute([student_id])[int(student_id)]

    def bulk_recompute(self, student_ids: Iterable[int]) -> dict[int, CachedStats]:
        ids = list(dict.fromkeys(int(s) for s in student_ids))
        if not ids:
            return {}

        counts_by_student: Mapping[int, StatusCounts] = self._history.status_counts(ids)
        enrolled_by_student: Mapping[int, int] = self._classes.count_accepted_for_students(ids)
        at = self._clock()

        snapshots = {
            sid: compute_stats(counts_by_student.get(sid, {}), enrolled_by_student.get(sid, 0), updated_at=at)
            for sid in ids
        }
        self._users.save_stats_many(snapshots)
        logger.debug("Recomputed stats for %d student(s)", len(snapshots))
        return snapshots

    def refresh_quietly(self, student_ids: Iterable[int], *, reason: str) -> None:
        """Best-effort refresh used after a primary write already succeeded."""

        ids = list(student_ids)
        if not ids:
            return
        try:
            self.bulk_recompute(ids)
        except Exception:
            logger.exception("Failed to refresh stats for %d student(s) after %s", len(ids), reason)
